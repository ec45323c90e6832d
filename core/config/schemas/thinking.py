"""Thinking detection schema (marker rules + persistence dispatch)."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

MAX_TAIL_WINDOW_CHARS = 128


class ThinkingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    tail_window_chars: int = Field(
        MAX_TAIL_WINDOW_CHARS, ge=1, le=MAX_TAIL_WINDOW_CHARS
    )
    persist_workers: int = Field(2, ge=1, le=16)
    drain_timeout_s: float = Field(2.0, ge=0)
