"""Structured Logging — JSONFormatter output shape."""

import json
import logging

from app.infrastructure.observability import JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "app.server", logging.INFO, __file__, 1, "Server running on port %d", (5001,), None,
    )
    record.__dict__.update(extra)
    return record


def test_json_formatter_core_fields():
    payload = json.loads(JSONFormatter().format(_record()))
    assert payload["level"] == "INFO"
    assert payload["logger"] == "app.server"
    assert payload["message"] == "Server running on port 5001"
    assert "timestamp" in payload


def test_json_formatter_surfaces_known_extras_only():
    payload = json.loads(JSONFormatter().format(
        _record(exit_code=0, signal="SIGTERM", secret="hunter2"),
    ))
    assert payload["exit_code"] == 0
    assert payload["signal"] == "SIGTERM"
    assert "secret" not in payload


def test_setup_logging_replaces_root_handlers():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("DEBUG", "json")
        setup_logging("WARNING", "text")
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
    finally:
        root.handlers = saved_handlers
        root.setLevel(saved_level)
