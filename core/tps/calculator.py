"""Tokens-per-second calculator (pure functions, no I/O).

Every entry point returns ``0.0`` for unusable input (zero, negative,
non-numeric, NaN/inf) instead of raising.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

TPS_BANDS: tuple[tuple[float, str, str], ...] = (
    (50.0, "excellent", "Very fast generation"),
    (20.0, "good", "Fast generation"),
    (10.0, "average", "Normal generation speed"),
    (5.0, "slow", "Slow generation"),
)
_SLOWEST = ("very_slow", "Very slow generation")


@dataclass(frozen=True, slots=True)
class TPSRating:
    rating: str
    description: str

    def to_dict(self) -> dict:
        return {"rating": self.rating, "description": self.description}


@dataclass(frozen=True, slots=True)
class TPSMeasurement:
    token_count: float
    duration_ms: float

    @property
    def tokens_per_second(self) -> float:
        return calculate_tps(self.token_count, self.duration_ms)

    @classmethod
    def from_timestamps(
        cls, token_count: Any, start_time: Any, end_time: Any
    ) -> "TPSMeasurement":
        start_ms = to_epoch_ms(start_time)
        end_ms = to_epoch_ms(end_time)
        duration = (
            end_ms - start_ms
            if start_ms is not None and end_ms is not None
            else 0.0
        )
        return cls(token_count=_as_number(token_count) or 0.0,
                   duration_ms=duration)


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    elif isinstance(value, str):
        try:
            num = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(num) or math.isinf(num):
        return None
    return num


def to_epoch_ms(value: Any) -> float | None:
    """Normalise a datetime / date / ms number / ISO string to epoch ms."""
    if isinstance(value, datetime):
        return value.timestamp() * 1000.0
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day).timestamp() * 1000.0
    num = _as_number(value)
    if num is not None:
        return num
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed.timestamp() * 1000.0
    return None


def calculate_tps(token_count: Any, duration_ms: Any) -> float:
    tokens = _as_number(token_count)
    duration = _as_number(duration_ms)
    if not tokens or tokens <= 0 or not duration or duration <= 0:
        return 0.0
    return tokens / (duration / 1000.0)


def calculate_tps_from_timestamps(
    token_count: Any, start_time: Any, end_time: Any
) -> float:
    """TPS over ``end_time - start_time``; no clamping of negative spans."""
    start_ms = to_epoch_ms(start_time)
    end_ms = to_epoch_ms(end_time)
    if start_ms is None or end_ms is None:
        return 0.0
    return calculate_tps(token_count, end_ms - start_ms)


def format_tps(tps: Any) -> str:
    value = _as_number(tps)
    if not value:
        return "0.0 t/s"
    if value < 1:
        return f"{value:.2f} t/s"
    if value < 10:
        return f"{value:.1f} t/s"
    return f"{math.floor(value + 0.5)} t/s"


def get_tps_rating(tps: Any) -> TPSRating:
    value = _as_number(tps) or 0.0
    for threshold, rating, description in TPS_BANDS:
        if value >= threshold:
            return TPSRating(rating, description)
    return TPSRating(*_SLOWEST)


def estimate_tokens(text: str, chars_per_token: int = 4) -> int:
    """Rough token estimate used for live stream counters."""
    if not text:
        return 0
    return math.ceil(len(text) / max(1, chars_per_token))


def live_tps(token_count: int, elapsed_ms: float) -> float | None:
    """TPS shown while streaming: elapsed floored at 1ms, 2 decimals."""
    if not token_count or token_count <= 0:
        return None
    elapsed_s = max(0.001, (elapsed_ms or 0) / 1000.0)
    return round(token_count / elapsed_s, 2)


__all__ = [
    "TPSRating",
    "TPSMeasurement",
    "TPS_BANDS",
    "calculate_tps",
    "calculate_tps_from_timestamps",
    "format_tps",
    "get_tps_rating",
    "to_epoch_ms",
    "estimate_tokens",
    "live_tps",
]
