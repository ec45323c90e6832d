"""Thinking detection: marker rules, streaming segmenter, persistence sink."""

from .rules import (  # noqa: F401
    MarkerRule,
    RuleCache,
    RuleStore,
    contains_whole_word,
    has_end_only_rules,
    has_start_rules,
    load_rules,
)
from .segmenter import (  # noqa: F401
    ChunkSnapshot,
    SegmenterState,
    StreamSession,
    StreamingSegmenter,
)
from .sink import SinkDispatcher, ThinkingSegment, ThinkingSink  # noqa: F401

__all__ = [
    "MarkerRule",
    "RuleCache",
    "RuleStore",
    "contains_whole_word",
    "has_end_only_rules",
    "has_start_rules",
    "load_rules",
    "ChunkSnapshot",
    "SegmenterState",
    "StreamSession",
    "StreamingSegmenter",
    "SinkDispatcher",
    "ThinkingSegment",
    "ThinkingSink",
]
