"""TPS (tokens-per-second) calculator and aggregate statistics."""

from .calculator import (  # noqa: F401
    TPSMeasurement,
    TPSRating,
    calculate_tps,
    calculate_tps_from_timestamps,
    estimate_tokens,
    format_tps,
    get_tps_rating,
    live_tps,
    to_epoch_ms,
)
from .stats import (  # noqa: F401
    ModelTPSStats,
    TPSSample,
    TPSStats,
    median,
    summarize,
    summarize_by_model,
)

__all__ = [
    "TPSMeasurement",
    "TPSRating",
    "calculate_tps",
    "calculate_tps_from_timestamps",
    "estimate_tokens",
    "format_tps",
    "get_tps_rating",
    "live_tps",
    "to_epoch_ms",
    "ModelTPSStats",
    "TPSSample",
    "TPSStats",
    "median",
    "summarize",
    "summarize_by_model",
]
