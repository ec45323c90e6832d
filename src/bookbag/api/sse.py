"""SSE frame formatting."""
from __future__ import annotations

import json
from typing import Any


def format_event(event: str | None, data: str) -> str:
    lines = []
    if event:
        lines.append(f"event: {event}")
    # multi-line payloads become one data: line each
    for line in data.splitlines() or [""]:
        lines.append(f"data: {line}")
    return "\n".join(lines) + "\n\n"


def json_event(event: str, payload: dict[str, Any]) -> str:
    return format_event(event, json.dumps(payload, ensure_ascii=False))


def parse_events(body: str) -> list[tuple[str | None, str]]:
    """Split an SSE body back into (event, data) pairs (tests, clients)."""
    out: list[tuple[str | None, str]] = []
    for block in body.split("\n\n"):
        if not block.strip():
            continue
        event = None
        data_lines = []
        for line in block.splitlines():
            if line.startswith("event: "):
                event = line[len("event: "):]
            elif line.startswith("data: "):
                data_lines.append(line[len("data: "):])
        out.append((event, "\n".join(data_lines)))
    return out


__all__ = ["format_event", "json_event", "parse_events"]
