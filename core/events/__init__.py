"""Event dataclasses + any-subscriber bridge.

Per-event subscriptions go through `core.eventbus`. This module exposes
typed event payloads plus `on(handler)` / `subscribe(handler)` where
handler(name, payload) receives every event (used by the metrics
collector and by tests).
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from time import time
from typing import Any, Callable, Dict, List, Protocol

from core import metrics as _metrics
from core.eventbus import emit as _emit_bus

EventHandler = Callable[[str, Dict[str, Any]], None]


class SupportsEvent(Protocol):  # pragma: no cover
    def to_event(self) -> Dict[str, Any]:  # noqa: D401
        ...


@dataclass(slots=True)
class BaseEvent:
    def to_event(self) -> Dict[str, Any]:  # noqa: D401
        data = asdict(self)
        data["ts"] = data.get("ts") or time()
        return data


@dataclass(slots=True)
class ModelLoaded(BaseEvent):
    model_id: str
    load_ms: int
    backend: str


@dataclass(slots=True)
class ModelLoadFailed(BaseEvent):
    model_id: str
    error_type: str
    message: str | None = None


@dataclass(slots=True)
class ModelUnloaded(BaseEvent):
    model_id: str
    reason: str  # shutdown|explicit


@dataclass(slots=True)
class ThinkingRulesLoaded(BaseEvent):
    model_id: str
    count: int
    mode: str  # none|end_only|dual


@dataclass(slots=True)
class ThinkingSegmentDetected(BaseEvent):
    message_id: str
    model_id: str
    section_id: int
    content_len: int
    start_time: int
    end_time: int
    mode: str  # end_only|dual


@dataclass(slots=True)
class ThinkingPersistFailed(BaseEvent):
    message_id: str
    section_id: int
    error_type: str
    message: str | None = None


@dataclass(slots=True)
class GenerationStarted(BaseEvent):
    request_id: str
    message_id: str
    model_id: str
    prompt_chars: int
    rules_mode: str


@dataclass(slots=True)
class GenerationCompleted(BaseEvent):
    request_id: str
    message_id: str
    model_id: str
    status: str  # ok|error
    output_tokens: int
    latency_ms: int
    thinking_sections: int
    tokens_per_second: float
    error_type: str | None = None
    message: str | None = None


@dataclass(slots=True)
class GenerationCancelled(BaseEvent):
    """Generation cancelled mid-flight (user abort or timeout)."""
    request_id: str
    message_id: str
    model_id: str
    reason: str  # user_abort|timeout
    latency_ms: int
    thinking_sections: int


_ANY_SUBS: List[EventHandler] = []


def _metrics_collector(
    name: str, payload: Dict[str, Any]
) -> None:  # noqa: D401
    if name in {
        "GenerationStarted",
        "GenerationCompleted",
        "GenerationCancelled",
    }:
        _metrics.inc("events_generation", {"type": name[10:].lower()})
        if name == "GenerationCancelled":
            _metrics.inc(
                "generation_cancelled_total",
                {
                    "model": payload.get("model_id", "unknown"),
                    "reason": payload.get("reason", "unknown"),
                },
            )
    elif name in {"ModelLoaded", "ModelUnloaded"}:
        _metrics.inc(
            "events_" + name.lower(), {"model": payload.get("model_id")}
        )
    elif name == "ThinkingRulesLoaded":
        _metrics.inc(
            "thinking_rules_loaded_total",
            {
                "model": payload.get("model_id", "unknown"),
                "mode": payload.get("mode", "none"),
            },
        )
    elif name == "ThinkingSegmentDetected":
        _metrics.inc_thinking_segment(
            payload.get("model_id", "unknown"),
            payload.get("mode", "end_only"),
        )
    elif name == "ThinkingPersistFailed":
        _metrics.inc_thinking_persist_failure(
            payload.get("error_type", "persist-failed")
        )


_ANY_SUBS.append(_metrics_collector)


def emit(ev: BaseEvent | SupportsEvent) -> None:
    name = ev.__class__.__name__
    payload = ev.to_event()
    _emit_bus(name, payload)
    for h in list(_ANY_SUBS):  # copy for isolation
        try:
            h(name, dict(payload))
        except Exception:  # noqa: BLE001
            _metrics.inc("handler_exceptions_total", {"event": name})


def on(handler: EventHandler) -> None:
    _ANY_SUBS.append(handler)


def subscribe(handler: EventHandler):
    on(handler)

    def _unsub() -> None:  # noqa: D401
        try:
            _ANY_SUBS.remove(handler)
        except ValueError:
            pass
    return _unsub


def reset_listeners_for_tests() -> None:  # pragma: no cover
    _ANY_SUBS.clear()
    _ANY_SUBS.append(_metrics_collector)


__all__ = [
    "emit",
    "on",
    "subscribe",
    "BaseEvent",
    "ModelLoaded",
    "ModelLoadFailed",
    "ModelUnloaded",
    "ThinkingRulesLoaded",
    "ThinkingSegmentDetected",
    "ThinkingPersistFailed",
    "GenerationStarted",
    "GenerationCompleted",
    "GenerationCancelled",
    "reset_listeners_for_tests",
]
