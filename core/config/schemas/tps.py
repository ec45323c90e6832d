"""TPS statistics schema (query defaults for /tps endpoints)."""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class TPSConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    chat_stats_limit: int = Field(50, ge=1)
    user_stats_limit: int = Field(100, ge=1)
    user_stats_days_back: int = Field(30, ge=1)
    chars_per_token: int = Field(4, ge=1)
