"""Logging setup driven by ``LoggingConfig``.

Called once from the app factory. Library modules only call
``logging.getLogger(name)``; they never add handlers themselves.
JSON output goes through python-json-logger.
"""
from __future__ import annotations

import logging

from pythonjsonlogger import jsonlogger

from core.config.schemas.observability import LoggingConfig

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

_HANDLER_NAME = "bookbag-root"
_TEXT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
_JSON_FORMAT = "%(timestamp)s %(levelname)s %(name)s %(message)s"


def build_formatter(fmt: str) -> logging.Formatter:
    if fmt == "json":
        return jsonlogger.JsonFormatter(  # type: ignore[attr-defined]
            _JSON_FORMAT, timestamp=True
        )
    return logging.Formatter(_TEXT_FORMAT)


def configure_logging(cfg: LoggingConfig | None = None) -> logging.Logger:
    """Install a single stream handler on the root logger (idempotent)."""
    cfg = cfg or LoggingConfig()
    root = logging.getLogger()
    for h in list(root.handlers):
        if h.get_name() == _HANDLER_NAME:
            root.removeHandler(h)
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(build_formatter(cfg.format))
    root.addHandler(handler)
    root.setLevel(_LEVELS.get(cfg.level, logging.INFO))
    return root


__all__ = ["configure_logging", "build_formatter"]
