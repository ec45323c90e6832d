"""Streaming thinking segmenter.

Consumes provider text chunks in arrival order, keeps the rolling buffers
of one generation and cuts "thinking" spans out of the response text
using the model's marker rules. Completed spans are handed to a
``SinkDispatcher`` (fire-and-forget) and reflected in the returned
``ChunkSnapshot``.

Modes:
  * no rules -> everything is response text
  * end-only -> whole accumulated response buffer becomes a thinking
    segment the moment an end word (or any start word) shows up; repeats
    for every later cut within the same message
  * dual (start + end words) -> start word opens a capture, matching end
    word closes it; only the in-between span (markers included) is cut
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List

from core.events import ThinkingSegmentDetected, emit
from core.thinking.rules import (
    MarkerRule,
    find_whole_word,
    has_end_only_rules,
    has_start_rules,
    rules_mode,
)
from core.thinking.sink import SinkDispatcher, ThinkingSegment

logger = logging.getLogger("thinking.segmenter")

TAIL_WINDOW_CHARS = 128


def now_ms() -> int:
    return int(time.time() * 1000)


class SegmenterState(str, Enum):
    NO_RULES = "no_rules"
    END_ONLY_AWAITING_START = "end_only_awaiting_start"
    END_ONLY_IN_THINKING = "end_only_in_thinking"
    IDLE = "idle"
    IN_THINKING = "in_thinking"


@dataclass(slots=True)
class ChunkSnapshot:
    raw_buffer: str
    thinking_buffer: str
    response_buffer: str
    tail_window: str
    thinking_start_time: int | None = None
    thinking_end_time: int | None = None
    # segments cut by this chunk only; the session does not keep them
    new_segments: tuple[ThinkingSegment, ...] = ()

    def to_dict(self) -> dict:
        return {
            "raw_buffer": self.raw_buffer,
            "thinking_buffer": self.thinking_buffer,
            "response_buffer": self.response_buffer,
            "tail_window": self.tail_window,
            "thinking_start_time": self.thinking_start_time,
            "thinking_end_time": self.thinking_end_time,
            "new_segments": [seg.to_dict() for seg in self.new_segments],
        }


@dataclass(slots=True)
class StreamSession:
    message_id: str
    model_id: str
    generation_start_time: int
    raw_buffer: str = ""
    response_buffer: str = ""
    thinking_buffer: str = ""
    tail_window: str = ""
    capture_buffer: str = ""
    section_counter: int = 0
    last_thinking_start: int | None = None
    last_thinking_end: int | None = None
    cancelled: bool = False


class StreamingSegmenter:
    def __init__(
        self,
        rules: List[MarkerRule],
        dispatcher: SinkDispatcher | None,
        *,
        message_id: str,
        model_id: str,
        generation_start_time: int | None = None,
        tail_window_chars: int = TAIL_WINDOW_CHARS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.rules = list(rules or [])
        self._dispatcher = dispatcher
        self._clock = clock
        self._tail_chars = max(1, min(int(tail_window_chars), TAIL_WINDOW_CHARS))
        self.session = StreamSession(
            message_id=str(message_id),
            model_id=str(model_id),
            generation_start_time=(
                generation_start_time
                if generation_start_time is not None
                else clock()
            ),
        )
        self._has_start = has_start_rules(self.rules)
        self._has_end_only = has_end_only_rules(self.rules)
        self.mode = rules_mode(self.rules)
        # triggers checked against the response buffer in end-only mode
        self._end_only_triggers = [
            r.end_word for r in self.rules if r.is_end_only
        ] + [r.start_word for r in self.rules if r.start_word]
        self._open_rules: List[MarkerRule] = []
        self._open_offset = 0
        self._cut: List[ThinkingSegment] = []
        if not self.rules:
            self.state = SegmenterState.NO_RULES
        elif self._has_start:
            self.state = SegmenterState.IDLE
        else:
            self.state = SegmenterState.END_ONLY_AWAITING_START

    # ---------------- public -----------------
    @property
    def detected_sections_count(self) -> int:
        return self.session.section_counter

    def snapshot(self, just_completed: bool = False) -> ChunkSnapshot:
        s = self.session
        return ChunkSnapshot(
            raw_buffer=s.raw_buffer,
            thinking_buffer=s.thinking_buffer,
            response_buffer=s.response_buffer,
            tail_window=s.tail_window,
            thinking_start_time=s.last_thinking_start,
            thinking_end_time=s.last_thinking_end if just_completed else None,
            new_segments=tuple(self._cut) if just_completed else (),
        )

    def abort(self) -> None:
        """Stop processing; an open capture is dropped, never persisted."""
        self.session.cancelled = True
        self.session.capture_buffer = ""

    def finish(self) -> ChunkSnapshot:
        """Natural end of stream: an unclosed capture returns to response."""
        s = self.session
        if self.state is SegmenterState.IN_THINKING and not s.cancelled:
            s.response_buffer += s.capture_buffer
            s.capture_buffer = ""
            self._open_rules = []
            self.state = SegmenterState.IDLE
        return self.snapshot()

    def process_chunk(self, chunk: str) -> ChunkSnapshot:
        if not chunk or not isinstance(chunk, str) or self.session.cancelled:
            return self.snapshot()
        s = self.session
        self._cut = []
        s.raw_buffer += chunk
        s.tail_window = (s.tail_window + chunk)[-self._tail_chars:]
        if self.state is SegmenterState.NO_RULES:
            s.response_buffer += chunk
            return self.snapshot()
        if self._has_start:
            completed = self._process_dual(chunk)
        else:
            completed = self._process_end_only(chunk)
        return self.snapshot(just_completed=completed)

    # ---------------- end-only -----------------
    def _process_end_only(self, chunk: str) -> bool:
        s = self.session
        s.response_buffer += chunk
        hit = any(
            find_whole_word(s.response_buffer, w) is not None
            for w in self._end_only_triggers
        )
        if not hit:
            self.state = SegmenterState.END_ONLY_IN_THINKING
            return False
        content = s.response_buffer
        s.thinking_buffer = content
        s.response_buffer = ""
        self._emit_segment(content, s.generation_start_time)
        self.state = SegmenterState.END_ONLY_AWAITING_START
        return True

    # ---------------- dual (start + end) -----------------
    def _process_dual(self, chunk: str) -> bool:
        s = self.session
        if self.state is SegmenterState.IN_THINKING:
            s.capture_buffer += chunk
        else:
            s.response_buffer += chunk
        completed = False
        while True:
            if self.state is SegmenterState.IDLE:
                if not self._open_capture():
                    return completed
            if not self._close_capture():
                return completed
            completed = True

    def _open_capture(self) -> bool:
        s = self.session
        best = None
        for r in self.rules:
            if not r.start_word:
                continue
            m = find_whole_word(s.response_buffer, r.start_word)
            if m and (best is None or m.start() < best[0].start()):
                best = (m, r.start_word)
        if best is None:
            return False
        m, start_word = best
        s.capture_buffer = s.response_buffer[m.start():]
        s.response_buffer = s.response_buffer[:m.start()]
        self._open_rules = [
            r for r in self.rules
            if r.is_end_only or (
                r.start_word.lower() == start_word.lower() and r.end_word
            )
        ]
        self._open_offset = m.end() - m.start()
        s.last_thinking_start = self._clock()
        self.state = SegmenterState.IN_THINKING
        return True

    def _close_capture(self) -> bool:
        s = self.session
        best = None
        for r in self._open_rules:
            m = find_whole_word(
                s.capture_buffer, r.end_word, self._open_offset
            )
            if m and (best is None or m.end() < best.end()):
                best = m
        if best is None:
            return False
        content = s.capture_buffer[:best.end()]
        remainder = s.capture_buffer[best.end():]
        s.capture_buffer = ""
        s.thinking_buffer = content
        s.response_buffer += remainder
        self._open_rules = []
        self.state = SegmenterState.IDLE
        start = s.last_thinking_start or s.generation_start_time
        self._emit_segment(content, start)
        return True

    # ---------------- persistence -----------------
    def _emit_segment(self, content: str, start_time: int) -> None:
        s = self.session
        end_time = max(self._clock(), start_time)
        segment = ThinkingSegment(
            message_id=s.message_id,
            section_id=s.section_counter,
            content=content,
            start_time=start_time,
            end_time=end_time,
            tokens_used=0,
        )
        s.section_counter += 1
        s.last_thinking_start = start_time
        s.last_thinking_end = end_time
        self._cut.append(segment)
        logger.debug(
            "thinking cut message=%s section=%s len=%s mode=%s",
            s.message_id, segment.section_id, len(content), self.mode,
        )
        emit(
            ThinkingSegmentDetected(
                message_id=s.message_id,
                model_id=s.model_id,
                section_id=segment.section_id,
                content_len=len(content),
                start_time=start_time,
                end_time=end_time,
                mode=self.mode,
            )
        )
        if self._dispatcher is not None:
            try:
                self._dispatcher.submit(segment)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "thinking dispatch failed message=%s", s.message_id
                )


__all__ = [
    "ChunkSnapshot",
    "SegmenterState",
    "StreamSession",
    "StreamingSegmenter",
    "TAIL_WINDOW_CHARS",
    "now_ms",
]
