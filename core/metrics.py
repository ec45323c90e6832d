"""Minimal in-memory metrics collector.

Purpose:
    - Counters and simple latency samples for stream health.
    - Zero external deps; exposed read-only via ``GET /metrics``.

Core API (intentionally tiny):
    inc(name, labels=None, value=1)
    observe(name, value, labels=None)
    snapshot() -> dict (copy for safe reading)

Thread-safety: coarse RLock; overhead negligible for low event volume.

Thinking / TPS metric names (documented for discoverability):
    - thinking_segments_total{model,mode}
    - thinking_persist_failures_total{error_type}
    - thinking_rules_load_failures_total{model}
    - thinking_rules_loaded_total{model,mode}
    - generation_tps{model}                           (histogram)
    - generation_cancelled_total{model,reason}
    - sse_stream_open_total{model}
"""
from __future__ import annotations

from threading import RLock
from time import time
from typing import Dict, Tuple, Any

_COUNTERS: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], float] = {}
_HIST: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], list] = {}
_LOCK = RLock()


def _norm_labels(labels: dict[str, Any] | None) -> Tuple[Tuple[str, str], ...]:
    if not labels:
        return tuple()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


def _label_str(labels: Tuple[Tuple[str, str], ...]) -> str:
    if not labels:
        return ""
    return "{" + ",".join(f"{k}={v}" for k, v in labels) + "}"


def inc(
    name: str,
    labels: dict[str, Any] | None = None,
    value: float = 1.0,
) -> None:
    key = (name, _norm_labels(labels))
    with _LOCK:
        _COUNTERS[key] = _COUNTERS.get(key, 0.0) + value


def observe(
    name: str,
    value: float,
    labels: dict[str, Any] | None = None,
) -> None:
    key = (name, _norm_labels(labels))
    with _LOCK:
        _HIST.setdefault(key, []).append(value)


def snapshot() -> dict[str, Any]:
    with _LOCK:
        counters: dict[str, float] = {}
        for (name, labels), v in _COUNTERS.items():
            counters[name + _label_str(labels)] = v
        hist = {}
        for (name, labels), vals in _HIST.items():
            if not vals:
                continue
            ordered = sorted(vals)
            hist[name + _label_str(labels)] = {
                "count": len(vals),
                "min": ordered[0],
                "max": ordered[-1],
                "p50": ordered[len(ordered) // 2],
                "last": vals[-1],
            }
        return {
            "ts": time(),
            "counters": counters,
            "histograms": hist,
        }


def reset_for_tests() -> None:  # pragma: no cover
    with _LOCK:
        _COUNTERS.clear()
        _HIST.clear()


__all__ = [
    "inc",
    "observe",
    "snapshot",
    "reset_for_tests",
]


# ------------------- Helper wrappers (thinking / tps) -------------------

def inc_thinking_segment(model: str, mode: str) -> None:
    """Increment detected thinking segment counter.

    mode: end_only | dual
    """
    inc("thinking_segments_total", {"model": model, "mode": mode})


def inc_thinking_persist_failure(error_type: str) -> None:
    if error_type:
        inc("thinking_persist_failures_total", {"error_type": error_type})


def inc_thinking_rules_load_failure(model: str) -> None:
    inc("thinking_rules_load_failures_total", {"model": model})


def observe_tps(model: str, tps: float) -> None:
    """Record a completed message TPS sample (zero samples skipped)."""
    if tps and tps > 0:
        observe("generation_tps", float(tps), {"model": model})


__all__ += [
    "inc_thinking_segment",
    "inc_thinking_persist_failure",
    "inc_thinking_rules_load_failure",
    "observe_tps",
]
