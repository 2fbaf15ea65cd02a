"""Structured logging — JSON records carry the extra fields services attach."""

import json
import logging
from uuid import uuid4

from taskhub.infrastructure.observability import JSONFormatter, setup_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        "taskhub.services.task_service", logging.INFO, __file__, 1,
        "Task created", None, None,
    )
    record.__dict__.update(extra)
    return record


def test_json_formatter_includes_known_extras():
    task_id = uuid4()

    line = JSONFormatter().format(_record(task_id=task_id, count=3, unrelated="x"))

    data = json.loads(line)
    assert data["message"] == "Task created"
    assert data["level"] == "INFO"
    assert data["task_id"] == str(task_id)
    assert data["count"] == 3
    assert "unrelated" not in data


def test_setup_logging_replaces_its_handler(monkeypatch):
    monkeypatch.setattr(logging.root, "handlers", list(logging.root.handlers))
    monkeypatch.setattr(logging.root, "level", logging.root.level)
    before = len(logging.root.handlers)

    setup_logging("DEBUG", "text")
    setup_logging("WARNING", "json")

    assert len(logging.root.handlers) == before + 1
    assert logging.root.level == logging.WARNING
    assert isinstance(logging.root.handlers[-1].formatter, JSONFormatter)
