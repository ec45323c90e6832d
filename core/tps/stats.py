"""Aggregate TPS statistics over stored message samples."""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Iterable, List, Sequence


@dataclass(slots=True)
class TPSSample:
    message_id: str
    tokens_per_second: float
    token_count: int = 0
    generation_time_ms: int = 0
    model_id: str | None = None
    chat_id: str | None = None
    user_id: str | None = None
    created_at: float = 0.0
    role: str = "assistant"

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(slots=True)
class TPSStats:
    message_count: int = 0
    average_tps: float = 0.0
    min_tps: float = 0.0
    max_tps: float = 0.0
    median_tps: float = 0.0
    total_tokens: int = 0
    total_generation_time_ms: int = 0
    average_generation_time_ms: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(slots=True)
class ModelTPSStats:
    model_id: str
    message_count: int
    average_tps: float
    total_tokens: int

    def to_dict(self) -> dict:
        return asdict(self)


def median(values: Sequence[float]) -> float:
    """Median over a sorted copy; the caller's sequence is left untouched."""
    if not values:
        return 0
    ordered = sorted(values)
    mid = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def summarize(samples: Iterable[TPSSample]) -> TPSStats:
    valid = [s for s in samples if s.tokens_per_second and s.tokens_per_second > 0]
    if not valid:
        return TPSStats()
    values = [s.tokens_per_second for s in valid]
    total_tokens = sum(s.token_count or 0 for s in valid)
    total_time = sum(s.generation_time_ms or 0 for s in valid)
    return TPSStats(
        message_count=len(valid),
        average_tps=sum(values) / len(values),
        min_tps=min(values),
        max_tps=max(values),
        median_tps=median(values),
        total_tokens=total_tokens,
        total_generation_time_ms=total_time,
        average_generation_time_ms=total_time / len(valid),
    )


def summarize_by_model(samples: Iterable[TPSSample]) -> List[ModelTPSStats]:
    buckets: dict[str, list[TPSSample]] = {}
    for s in samples:
        if not s.tokens_per_second or s.tokens_per_second <= 0:
            continue
        buckets.setdefault(str(s.model_id), []).append(s)
    out = []
    for model_id, items in buckets.items():
        out.append(
            ModelTPSStats(
                model_id=model_id,
                message_count=len(items),
                average_tps=sum(i.tokens_per_second for i in items) / len(items),
                total_tokens=sum(i.token_count or 0 for i in items),
            )
        )
    return out


__all__ = [
    "TPSSample",
    "TPSStats",
    "ModelTPSStats",
    "median",
    "summarize",
    "summarize_by_model",
]
