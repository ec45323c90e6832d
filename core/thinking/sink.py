"""Persistence sink contract and fire-and-forget dispatch.

The segmenter never stores anything itself. Detected segments are handed
to ``SinkDispatcher.submit`` which returns immediately:

  * coroutine sinks on a running event loop -> scheduled as tasks
  * everything else -> run on a small thread pool

Failures are logged, counted and emitted as ``ThinkingPersistFailed``;
they never reach the stream.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, asdict
from threading import RLock
from typing import Any, Awaitable, Protocol, Set

from core.errors import map_exception, validate_error_type
from core.events import ThinkingPersistFailed, emit

logger = logging.getLogger("thinking.sink")


@dataclass(frozen=True, slots=True)
class ThinkingSegment:
    message_id: str
    section_id: int
    content: str
    start_time: int
    end_time: int
    tokens_used: int = 0

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = self.duration_ms
        return data


class ThinkingSink(Protocol):  # pragma: no cover
    def save_thinking_section(
        self,
        message_id: str,
        section_id: int,
        content: str,
        start_time: int,
        end_time: int,
        tokens_used: int = 0,
    ) -> Any | Awaitable[Any]:
        ...


class SinkDispatcher:
    def __init__(self, sink: ThinkingSink | None, max_workers: int = 2):
        self._sink = sink
        self._max_workers = max_workers
        self._executor: ThreadPoolExecutor | None = None
        self._futures: Set[Future] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._lock = RLock()

    @property
    def sink(self) -> ThinkingSink | None:
        return self._sink

    def _get_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="thinking-sink",
                )
            return self._executor

    def _failed(self, segment: ThinkingSegment, exc: BaseException) -> None:
        code = validate_error_type(
            map_exception(exc, "thinking.persist")  # type: ignore[arg-type]
        )
        logger.warning(
            "thinking persist failed message=%s section=%s: %s",
            segment.message_id, segment.section_id, exc,
        )
        emit(
            ThinkingPersistFailed(
                message_id=segment.message_id,
                section_id=segment.section_id,
                error_type=code,
                message=str(exc)[:400],
            )
        )

    def _call_sink(self, segment: ThinkingSegment) -> Any:
        assert self._sink is not None
        return self._sink.save_thinking_section(
            segment.message_id,
            segment.section_id,
            segment.content,
            segment.start_time,
            segment.end_time,
            segment.tokens_used,
        )

    def _run_blocking(self, segment: ThinkingSegment) -> None:
        try:
            result = self._call_sink(segment)
            if inspect.isawaitable(result):
                asyncio.run(_await(result))
        except Exception as e:  # noqa: BLE001
            self._failed(segment, e)

    async def _run_async(self, segment: ThinkingSegment) -> None:
        try:
            result = self._call_sink(segment)
            if inspect.isawaitable(result):
                await result
        except Exception as e:  # noqa: BLE001
            self._failed(segment, e)

    def submit(self, segment: ThinkingSegment) -> None:
        """Schedule persistence of ``segment`` and return immediately."""
        if self._sink is None:
            return
        save = getattr(self._sink, "save_thinking_section", None)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None and inspect.iscoroutinefunction(save):
            task = loop.create_task(self._run_async(segment))
            with self._lock:
                self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return
        try:
            fut = self._get_executor().submit(self._run_blocking, segment)
        except RuntimeError as e:  # executor already shut down
            self._failed(segment, e)
            return
        with self._lock:
            self._futures.add(fut)
        fut.add_done_callback(self._forget)

    def _forget(self, fut: Future) -> None:
        with self._lock:
            self._futures.discard(fut)

    def pending(self) -> int:
        with self._lock:
            return len(self._futures) + len(self._tasks)

    def drain(self, timeout: float | None = None) -> bool:
        """Block until thread-pool saves finish. True if nothing pending."""
        with self._lock:
            futures = list(self._futures)
        if futures:
            wait(futures, timeout=timeout)
        with self._lock:
            return not self._futures

    async def drain_async(self, timeout: float | None = None) -> bool:
        with self._lock:
            tasks = list(self._tasks)
        if tasks:
            await asyncio.wait(tasks, timeout=timeout)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.drain, timeout)

    def shutdown(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)


async def _await(aw: Awaitable[Any]) -> Any:
    return await aw


__all__ = ["ThinkingSegment", "ThinkingSink", "SinkDispatcher"]
