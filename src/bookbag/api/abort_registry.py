"""Abort registry for in-flight generation streams.

Thread-safe map request_id -> aborted flag; the stream loop polls it
between chunks.
"""
from __future__ import annotations

from threading import RLock
from time import time

_ABORTS: dict[str, bool] = {}
_ABORT_START: dict[str, float] = {}
_LOCK = RLock()


def register(request_id: str) -> None:  # noqa: D401
    with _LOCK:
        _ABORTS[request_id] = False


def abort(request_id: str) -> bool:
    """Flag a registered request; False for unknown ids."""
    with _LOCK:
        if request_id not in _ABORTS:
            return False
        _ABORTS[request_id] = True
        _ABORT_START.setdefault(request_id, time())
        return True


def is_aborted(request_id: str) -> bool:  # noqa: D401
    with _LOCK:
        return _ABORTS.get(request_id, False)


def abort_started_at(request_id: str) -> float | None:  # noqa: D401
    with _LOCK:
        return _ABORT_START.get(request_id)


def clear(request_id: str) -> None:  # noqa: D401
    with _LOCK:
        _ABORTS.pop(request_id, None)
        _ABORT_START.pop(request_id, None)


def active() -> list[str]:
    with _LOCK:
        return [rid for rid, flag in _ABORTS.items() if not flag]


def reset_for_tests() -> None:  # pragma: no cover - test helper
    with _LOCK:
        _ABORTS.clear()
        _ABORT_START.clear()


__all__ = [
    "register",
    "abort",
    "is_aborted",
    "abort_started_at",
    "clear",
    "active",
    "reset_for_tests",
]
