"""HTTP layer schema."""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class APIConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    cors_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )
    host: str = "127.0.0.1"
    port: int = 8000
