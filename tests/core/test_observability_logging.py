import json
import logging

from pythonjsonlogger import jsonlogger

from core.config.schemas.observability import LoggingConfig
from core.observability import build_formatter, configure_logging


def _ours(root):
    return [h for h in root.handlers if h.get_name() == "bookbag-root"]


def test_configure_logging_idempotent():
    root = configure_logging(LoggingConfig(level="debug", format="text"))
    configure_logging(LoggingConfig(level="warn", format="json"))
    handlers = _ours(root)
    assert len(handlers) == 1
    assert isinstance(handlers[0].formatter, jsonlogger.JsonFormatter)
    assert root.level == logging.WARNING


def test_json_formatter_fields():
    record = logging.LogRecord(
        "thinking.sink", logging.WARNING, __file__, 1,
        "persist failed message=%s", ("m1",), None,
    )
    data = json.loads(build_formatter("json").format(record))
    assert data["name"] == "thinking.sink"
    assert data["levelname"] == "WARNING"
    assert data["message"] == "persist failed message=m1"
    assert "timestamp" in data


def test_text_formatter():
    record = logging.LogRecord(
        "api.generate", logging.INFO, __file__, 1, "hello", (), None,
    )
    line = build_formatter("text").format(record)
    assert "INFO [api.generate] hello" in line
