"""In-memory per-message TPS samples and chat/user statistics."""
from __future__ import annotations

import math
from threading import RLock
from time import time
from typing import Any, Dict, List

from core import metrics
from core.tps import TPSSample, TPSStats, summarize, summarize_by_model

DAY_SECONDS = 24 * 60 * 60


class TPSStore:
    def __init__(self) -> None:
        self._samples: Dict[str, TPSSample] = {}
        self._lock = RLock()

    def record(self, sample: TPSSample) -> TPSSample:
        if not sample.created_at:
            sample.created_at = time()
        with self._lock:
            self._samples[str(sample.message_id)] = sample
        metrics.observe_tps(str(sample.model_id), sample.tokens_per_second)
        return sample

    def get(self, message_id: str) -> TPSSample | None:
        with self._lock:
            return self._samples.get(str(message_id))

    def update_message_tps(self, message_id: Any, tokens_per_second: Any) -> dict:
        """Overwrite the stored TPS of one message.

        Raises ValueError for a missing id or a non-numeric / negative
        value and KeyError for an unknown message.
        """
        if not message_id:
            raise ValueError("message_id is required")
        if (
            isinstance(tokens_per_second, bool)
            or not isinstance(tokens_per_second, (int, float))
            or not math.isfinite(tokens_per_second)
            or tokens_per_second < 0
        ):
            raise ValueError("invalid tokens per second value")
        with self._lock:
            sample = self._samples.get(str(message_id))
            if sample is None:
                raise KeyError(str(message_id))
            sample.tokens_per_second = float(tokens_per_second)
        return {
            "message_id": str(message_id),
            "tokens_per_second": float(tokens_per_second),
            "updated_at": time(),
        }

    def _ordered(self) -> List[TPSSample]:
        with self._lock:
            items = list(self._samples.values())
        return sorted(items, key=lambda s: s.created_at, reverse=True)

    def chat_stats(
        self,
        chat_id: str,
        limit: int = 50,
        only_ai_messages: bool = True,
    ) -> tuple[TPSStats, List[TPSSample]]:
        rows = [
            s for s in self._ordered()
            if s.chat_id == str(chat_id)
            and (not only_ai_messages or s.role == "assistant")
            and s.tokens_per_second > 0
        ][: max(0, limit)]
        return summarize(rows), rows

    def user_stats(
        self,
        user_id: str,
        limit: int = 100,
        days_back: int = 30,
        model_id: str | None = None,
        now: float | None = None,
    ) -> dict:
        cutoff = (now if now is not None else time()) - days_back * DAY_SECONDS
        rows = [
            s for s in self._ordered()
            if s.user_id == str(user_id)
            and s.role == "assistant"
            and s.tokens_per_second > 0
            and s.created_at >= cutoff
            and (model_id is None or s.model_id == model_id)
        ][: max(0, limit)]
        stats = summarize(rows)
        return {
            "message_count": stats.message_count,
            "average_tps": stats.average_tps,
            "min_tps": stats.min_tps,
            "max_tps": stats.max_tps,
            "median_tps": stats.median_tps,
            "total_tokens": stats.total_tokens,
            "models_used": [m.to_dict() for m in summarize_by_model(rows)],
        }

    def clear(self) -> None:
        with self._lock:
            self._samples.clear()


__all__ = ["TPSStore"]
