"""In-memory thinking section store.

Implements the ``ThinkingSink`` contract used by the stream segmenter and
the read/update operations behind the ``/thinking`` endpoints. Records
are kept per message ordered by ``section_id``; a message -> chat map lets
a whole chat be listed at once.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass, asdict
from itertools import count
from threading import RLock
from typing import Dict, List


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(slots=True)
class ThinkingRecord:
    id: int
    message_id: str
    section_id: int
    content: str
    start_time: int
    end_time: int
    tokens_used: int = 0
    created_at: int = 0
    updated_at: int = 0

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = self.duration_ms
        data["duration_seconds"] = math.ceil(self.duration_ms / 1000)
        return data


class ThinkingStore:
    def __init__(self) -> None:
        self._records: Dict[int, ThinkingRecord] = {}
        self._by_message: Dict[str, List[int]] = {}
        self._message_chat: Dict[str, str] = {}
        self._ids = count(1)
        self._lock = RLock()

    # sink contract -----------------------------------------------------
    def save_thinking_section(
        self,
        message_id: str,
        section_id: int,
        content: str,
        start_time: int,
        end_time: int,
        tokens_used: int = 0,
    ) -> ThinkingRecord:
        now = _now_ms()
        mid = str(message_id)
        with self._lock:
            rec = ThinkingRecord(
                id=next(self._ids),
                message_id=mid,
                section_id=int(section_id),
                content=content,
                start_time=int(start_time),
                end_time=int(end_time),
                tokens_used=int(tokens_used or 0),
                created_at=now,
                updated_at=now,
            )
            self._records[rec.id] = rec
            ids = self._by_message.setdefault(mid, [])
            ids.append(rec.id)
            ids.sort(key=lambda i: self._records[i].section_id)
        return rec

    def create(
        self,
        message_id: str,
        section_id: int | None,
        content: str,
        start_time: int | None,
        end_time: int | None,
        tokens_used: int | None = 0,
    ) -> ThinkingRecord:
        """Validated insert used by the HTTP layer.

        ``section_id`` 0 is valid; only a missing value is rejected.
        """
        missing = [
            name
            for name, val in (
                ("message_id", message_id),
                ("section_id", section_id),
                ("content", content),
                ("start_time", start_time),
                ("end_time", end_time),
            )
            if val is None or val == ""
        ]
        if missing:
            raise ValueError("missing required fields: " + ", ".join(missing))
        return self.save_thinking_section(
            message_id,
            section_id,  # type: ignore[arg-type]
            content,
            start_time,  # type: ignore[arg-type]
            end_time,  # type: ignore[arg-type]
            tokens_used or 0,
        )

    # message/chat index ------------------------------------------------
    def bind_message(self, message_id: str, chat_id: str) -> None:
        with self._lock:
            self._message_chat[str(message_id)] = str(chat_id)

    def chat_of(self, message_id: str) -> str | None:
        with self._lock:
            return self._message_chat.get(str(message_id))

    # reads -------------------------------------------------------------
    def get(self, thinking_id: int) -> ThinkingRecord | None:
        with self._lock:
            return self._records.get(int(thinking_id))

    def list_by_message(self, message_id: str) -> List[ThinkingRecord]:
        with self._lock:
            ids = self._by_message.get(str(message_id), [])
            return [self._records[i] for i in ids]

    def list_by_chat(self, chat_id: str) -> Dict[str, List[ThinkingRecord]]:
        """Sections grouped by message, messages in creation order."""
        with self._lock:
            grouped = []
            for mid, cid in self._message_chat.items():
                if cid != str(chat_id):
                    continue
                records = self.list_by_message(mid)
                if records:
                    grouped.append(records)
            # record ids grow with insertion, so they break created_at ties
            grouped.sort(key=lambda recs: min((r.created_at, r.id) for r in recs))
            return {recs[0].message_id: recs for recs in grouped}

    # update ------------------------------------------------------------
    def update(
        self,
        thinking_id: int,
        *,
        content: str | None = None,
        end_time: int | None = None,
        tokens_used: int | None = None,
    ) -> ThinkingRecord | None:
        with self._lock:
            rec = self._records.get(int(thinking_id))
            if rec is None:
                return None
            if content is not None:
                rec.content = content
            if end_time is not None:
                rec.end_time = max(int(end_time), rec.start_time)
            if tokens_used is not None:
                rec.tokens_used = int(tokens_used)
            rec.updated_at = _now_ms()
            return rec

    def stats(self) -> dict:
        with self._lock:
            return {
                "sections": len(self._records),
                "messages": len(self._by_message),
            }


__all__ = ["ThinkingStore", "ThinkingRecord"]
