"""LLM config schema.

Only settings the stream route and ``ModelService`` read. Model weights
and per-model marker rules live in registry manifests, not here.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class LLMConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_model: str | None = None
    registry_dir: str = "llm/registry"
    max_output_tokens: int = 1024
    temperature: float = 0.7
    generation_timeout_s: float = 120.0
    skip_checksum: bool = True
    n_gpu_layers: int | str = Field("auto")

    @field_validator("temperature")
    @classmethod
    def _temp_range(cls, v: float) -> float:  # noqa: D401
        if not (0 <= v <= 2):
            raise ValueError("temperature out of range 0..2")
        return v

    @field_validator("generation_timeout_s")
    @classmethod
    def _timeout_positive(cls, v: float) -> float:  # noqa: D401
        if v <= 0:
            raise ValueError("generation_timeout_s must be >0")
        return v
