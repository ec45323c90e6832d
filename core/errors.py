"""Central error taxonomy for stream, thinking and TPS paths."""
from __future__ import annotations

_ALLOWED_ERROR_TYPES = {
    # model.load
    "file-not-found",
    "incompatible-format",
    "provider-internal",
    # generation.request
    "invalid-params",
    "unknown-model",
    # generation.runtime
    "provider-error",
    "timeout",
    "aborted",
    "stream-broken",
    # thinking / tps
    "rules-load-failed",
    "persist-failed",
    "invalid-chunk",
    "invalid-tps-input",
    # config
    "config-out-of-range",
    "config-invalid",
    # infra
    "event-handler-error",
}


def validate_error_type(code: str) -> str:
    assert (
        code in _ALLOWED_ERROR_TYPES
    ), f"Unknown error_type '{code}' (not in taxonomy)"
    return code


def map_exception(e: Exception, phase: str) -> str:
    name = e.__class__.__name__.lower()
    msg = str(e).lower()
    if phase == "model.load":
        if "not found" in msg or isinstance(e, FileNotFoundError):
            return "file-not-found"
        return "provider-internal"
    if phase == "generation":
        if "abort" in name or "cancel" in name or "aborted" in msg:
            return "aborted"
        if "timeout" in name or "timeout" in msg:
            return "timeout"
        return "provider-error"
    if phase == "thinking.rules":
        return "rules-load-failed"
    if phase == "thinking.persist":
        return "persist-failed"
    return "provider-internal"


__all__ = ["validate_error_type", "map_exception"]
