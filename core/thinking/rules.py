"""Marker rules delimiting thinking content inside a generation stream.

A rule is a (start_word, end_word) pair bound to a model id:
  * start-delimited: non-empty start_word
  * end-only: empty start_word, non-empty end_word (thinking assumed to
    begin at generation start and end at the first end_word)

Words match as whole words, case-insensitive; configured text is escaped
so it never acts as a pattern.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from itertools import count
from threading import RLock
from typing import Dict, Iterable, List, Protocol

from core import metrics
from core.errors import map_exception, validate_error_type
from core.events import ThinkingRulesLoaded, emit

logger = logging.getLogger("thinking.rules")


@dataclass(frozen=True, slots=True)
class MarkerRule:
    model_id: str
    start_word: str = ""
    end_word: str = ""
    id: int | None = None

    @property
    def is_start_delimited(self) -> bool:
        return bool(self.start_word)

    @property
    def is_end_only(self) -> bool:
        return not self.start_word and bool(self.end_word)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "model_id": self.model_id,
            "start_word": self.start_word,
            "end_word": self.end_word,
        }


@lru_cache(maxsize=256)
def _word_pattern(word: str) -> re.Pattern[str]:
    # boundary only on edges that are word chars: same as \bWORD\b for
    # plain words, and "</think>" still matches right after "thinking"
    head = r"(?<!\w)" if re.match(r"\w", word) else ""
    tail = r"(?!\w)" if re.search(r"\w$", word) else ""
    return re.compile(head + re.escape(word) + tail, re.IGNORECASE)


def find_whole_word(
    text: str, word: str, pos: int = 0
) -> re.Match[str] | None:
    """First whole-word match of ``word`` at or after ``pos``.

    The lookbehind sees the real character before ``pos``.
    """
    if not text or not word or not isinstance(text, str):
        return None
    return _word_pattern(str(word)).search(text, pos)


def contains_whole_word(text: str, word: str) -> bool:
    """True if ``word`` occurs in ``text`` as a whole word.

    >>> contains_whole_word("the cat", "the")
    True
    >>> contains_whole_word("there are thinking notes", "the")
    False
    """
    return find_whole_word(text, word) is not None


def has_start_rules(rules: Iterable[MarkerRule]) -> bool:
    return any(r.is_start_delimited for r in rules)


def has_end_only_rules(rules: Iterable[MarkerRule]) -> bool:
    return any(r.is_end_only for r in rules)


def rules_mode(rules: List[MarkerRule]) -> str:
    """none | end_only | dual"""
    if not rules:
        return "none"
    if has_start_rules(rules):
        return "dual"
    if has_end_only_rules(rules):
        return "end_only"
    return "none"


class RuleSource(Protocol):  # pragma: no cover
    def list(self, model_id: str) -> List[MarkerRule]:  # noqa: D401
        ...


class RuleStore:
    """Thread-safe in-memory rule table keyed by model id.

    Seeded from registry manifests at app start; admin endpoints add and
    remove rules at runtime. Returned lists are copies.
    """

    def __init__(self) -> None:
        self._rules: Dict[str, List[MarkerRule]] = {}
        self._ids = count(1)
        self._lock = RLock()
        self._listeners: list = []

    def on_change(self, listener) -> None:
        self._listeners.append(listener)

    def _notify(self, model_id: str) -> None:
        for fn in list(self._listeners):
            fn(model_id)

    def list(self, model_id: str) -> List[MarkerRule]:
        with self._lock:
            return list(self._rules.get(str(model_id), ()))

    def add(
        self, model_id: str, end_word: str, start_word: str | None = None
    ) -> MarkerRule:
        end = (end_word or "").strip()
        if not end:
            raise ValueError("end_word is required")
        mid = str(model_id)
        with self._lock:
            rule = MarkerRule(
                model_id=mid,
                start_word=(start_word or "").strip(),
                end_word=end,
                id=next(self._ids),
            )
            self._rules.setdefault(mid, []).append(rule)
        self._notify(mid)
        return rule

    def remove(self, rule_id: int) -> MarkerRule | None:
        removed: MarkerRule | None = None
        with self._lock:
            for rules in self._rules.values():
                match = next((r for r in rules if r.id == rule_id), None)
                if match is not None:
                    rules.remove(match)
                    removed = match
                    break
        if removed is not None:
            self._notify(removed.model_id)
        return removed

    def seed(self, model_id: str, rules: Iterable[dict]) -> int:
        added = 0
        for raw in rules:
            self.add(
                model_id,
                end_word=raw.get("end_word", ""),
                start_word=raw.get("start_word"),
            )
            added += 1
        return added

    def clear(self) -> None:
        with self._lock:
            models = list(self._rules)
            self._rules.clear()
        for mid in models:
            self._notify(mid)


class RuleCache:
    """Per-model read-only rule snapshots shared across sessions.

    A load that races with ``invalidate`` for the same model is returned
    to its caller but not cached.
    """

    def __init__(self, source: RuleSource) -> None:
        self._source = source
        self._cache: Dict[str, tuple[MarkerRule, ...]] = {}
        self._generation: Dict[str, int] = {}
        self._epoch = 0
        self._lock = RLock()
        if isinstance(source, RuleStore):
            source.on_change(self.invalidate)

    def _stamp(self, model_id: str) -> tuple[int, int]:
        return self._epoch, self._generation.get(model_id, 0)

    def get(self, model_id: str) -> List[MarkerRule]:
        mid = str(model_id)
        with self._lock:
            cached = self._cache.get(mid)
            stamp = self._stamp(mid)
        if cached is not None:
            return list(cached)
        rules = load_rules(mid, self._source)
        with self._lock:
            if self._stamp(mid) == stamp:
                self._cache[mid] = tuple(rules)
        return rules

    def invalidate(self, model_id: str | None = None) -> None:
        with self._lock:
            if model_id is None:
                self._cache.clear()
                self._epoch += 1
            else:
                mid = str(model_id)
                self._cache.pop(mid, None)
                self._generation[mid] = self._generation.get(mid, 0) + 1


def load_rules(model_id: str, source: RuleSource | None) -> List[MarkerRule]:
    """Fetch rules for a model; any failure yields an empty list."""
    if source is None:
        return []
    try:
        rules = [
            r for r in source.list(model_id)
            if r.start_word or r.end_word
        ]
    except Exception as e:  # noqa: BLE001
        code = validate_error_type(map_exception(e, "thinking.rules"))
        logger.warning(
            "rules load failed model=%s error_type=%s: %s",
            model_id, code, e,
        )
        metrics.inc_thinking_rules_load_failure(str(model_id))
        return []
    emit(
        ThinkingRulesLoaded(
            model_id=str(model_id),
            count=len(rules),
            mode=rules_mode(rules),
        )
    )
    return rules


__all__ = [
    "MarkerRule",
    "RuleSource",
    "RuleStore",
    "RuleCache",
    "load_rules",
    "contains_whole_word",
    "find_whole_word",
    "has_start_rules",
    "has_end_only_rules",
    "rules_mode",
]
