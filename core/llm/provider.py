"""ModelProvider interface.

Providers must not allocate heavy resources on import; call load()
explicitly or let the first ``stream()`` do it. Tests supply
their own lightweight fake providers.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Iterable


@dataclass(frozen=True)
class ModelInfo:
    id: str
    capabilities: tuple[str, ...]
    context_length: int
    revision: str | None = None
    metadata: Dict[str, Any] | None = None


class ModelProvider(ABC):
    @abstractmethod
    def load(self) -> None:
        """Load underlying model weights/resources (idempotent)."""

    @abstractmethod
    def stream(self, prompt: str, **kwargs: Any) -> Iterable[str]:
        """Yield incremental text chunks in generation order."""

    @abstractmethod
    def info(self) -> ModelInfo:
        """Return static model information."""

    def unload(self) -> None:  # optional hook
        """Release resources (default no-op)."""
        return None
