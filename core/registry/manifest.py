"""Model manifest schema (one YAML file per model)."""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ThinkingRuleSpec(BaseModel):
    """Seed marker rule; ``start_word`` empty means end-only."""

    start_word: str = ""
    end_word: str

    model_config = ConfigDict(extra="forbid")

    @field_validator("end_word")
    @classmethod
    def _end_not_empty(cls, v: str) -> str:  # noqa: D401
        if not v.strip():
            raise ValueError("end_word cannot be empty")
        return v.strip()


class ModelManifest(BaseModel):
    id: str
    family: str
    path: str
    context_length: int
    capabilities: List[str] = Field(default_factory=lambda: ["chat"])
    checksum_sha256: Optional[str] = None
    revision: Optional[str] = None
    thinking_rules: List[ThinkingRuleSpec] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @field_validator("id")
    @classmethod
    def _id_not_empty(cls, v: str) -> str:  # noqa: D401
        if not v.strip():
            raise ValueError("id cannot be empty")
        return v

    def resolve_model_path(self, repo_root: Path) -> Path:
        p = Path(self.path)
        if not p.is_absolute():
            p = repo_root / p
        return p
