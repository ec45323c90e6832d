"""Pytest configuration ensuring project root is importable.

Adds repository root and ``src`` to sys.path explicitly to avoid
interpreter/path quirks.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
SRC = ROOT / "src"
if SRC.exists() and str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


@pytest.fixture(autouse=True)
def _isolate_config_env():  # noqa: D401
    """Ensure global config/env side effects do not leak between tests.

    - Clear aggregated config cache between tests
    - Restore BOOKBAG_CONFIG_DIR to original value
    - Reset metrics and event listeners
    """
    from core import eventbus, metrics
    from core.config import clear_config_cache
    from core.events import reset_listeners_for_tests

    prev = os.environ.get("BOOKBAG_CONFIG_DIR")
    clear_config_cache()
    metrics.reset_for_tests()
    reset_listeners_for_tests()
    eventbus.reset_for_tests()
    try:
        yield
    finally:
        clear_config_cache()
        if prev is None:
            os.environ.pop("BOOKBAG_CONFIG_DIR", None)
        else:
            os.environ["BOOKBAG_CONFIG_DIR"] = prev


class RecordingSink:
    """Sync sink collecting saved sections in memory."""

    def __init__(self, fail: bool = False) -> None:
        self.saved: list[tuple] = []
        self.fail = fail

    def save_thinking_section(
        self, message_id, section_id, content, start_time, end_time,
        tokens_used=0,
    ):
        if self.fail:
            raise RuntimeError("db down")
        self.saved.append(
            (message_id, section_id, content, start_time, end_time, tokens_used)
        )


@pytest.fixture()
def recording_sink():
    return RecordingSink()


@pytest.fixture()
def tick_clock():
    """Deterministic ms clock advancing 10ms per call."""
    state = {"now": 1_000}

    def _clock() -> int:
        state["now"] += 10
        return state["now"]

    return _clock
