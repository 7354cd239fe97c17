from __future__ import annotations

import json
import logging
import sys
from typing import Any

import pytest

from tasky.observability import (
    ConsoleLogFormatter,
    JsonLogFormatter,
    Metrics,
    _level_for_logger,
    get_json_logger,
    get_request_context,
    use_request_context,
)


def _parse_json_lines(output: str) -> list[dict[str, Any]]:
    return [json.loads(line) for line in output.strip().splitlines() if line.strip()]


def _record(msg: str = "hello", **extra: Any) -> logging.LogRecord:
    record = logging.LogRecord("tasky.test", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_logger_redacts_and_formats(capsys: Any) -> None:
    logger = get_json_logger("tasky-obs-test")
    logger.setLevel(logging.INFO)
    logger.info(
        "hello",
        extra={
            "event": "task_created",
            "task_id": "t1",
            "attributes": {"token": "XYZ", "nested": {"password": "pw"}, "safe": "ok"},
        },
    )

    lines = _parse_json_lines(capsys.readouterr().out)
    assert len(lines) == 1
    rec = lines[0]
    assert rec["msg"] == "hello"
    assert rec["level"] == "info"
    assert rec["service"] == "tasky"
    assert rec["event"] == "task_created"
    assert rec["task_id"] == "t1"
    assert rec["attributes"] == {
        "token": "[REDACTED]",
        "nested": {"password": "[REDACTED]"},
        "safe": "ok",
    }


def test_json_formatter_includes_exception_details() -> None:
    try:
        raise RuntimeError("disk on fire")
    except RuntimeError:
        record = logging.LogRecord(
            "tasky.test", logging.ERROR, __file__, 1, "failed", None, sys.exc_info()
        )

    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["err_type"] == "RuntimeError"
    assert payload["err"] == "disk on fire"
    assert "Traceback" in payload["stack"]


def test_request_context_enriches_records() -> None:
    formatter = JsonLogFormatter()

    with use_request_context("req-42", operation="GET /tasks"):
        assert get_request_context() == {"request_id": "req-42", "operation": "GET /tasks"}
        payload = json.loads(formatter.format(_record()))
    outside = json.loads(formatter.format(_record()))

    assert payload["request_id"] == "req-42"
    assert payload["operation"] == "GET /tasks"
    assert "request_id" not in outside
    assert get_request_context() is None


def test_console_formatter_is_compact() -> None:
    line = ConsoleLogFormatter().format(_record("saved", event="task_updated", task_id="t9"))

    assert "INFO tasky.test task_updated task=t9 - saved" in line


def test_module_level_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "warning")
    monkeypatch.setenv("LOG_MODULE_LEVELS", "tasky.engine=debug, bogus, =info")

    assert _level_for_logger("tasky.engine") == logging.DEBUG
    assert _level_for_logger("tasky.engine.ooda") == logging.DEBUG
    assert _level_for_logger("tasky.enginex") == logging.WARNING
    assert _level_for_logger("tasky.gateway") == logging.WARNING


def test_metrics_counters_by_label_set() -> None:
    metrics = Metrics()
    metrics.increment("bridge_calls", {"operation": "create"})
    metrics.increment("bridge_calls", {"operation": "create"}, amount=2)
    metrics.increment("bridge_calls", {"operation": "get"})
    metrics.increment("uptime_checks")

    assert metrics.value("bridge_calls", {"operation": "create"}) == 3
    assert metrics.value("bridge_calls", {"operation": "list"}) == 0
    assert metrics.snapshot() == [
        {"name": "bridge_calls", "labels": {"operation": "create"}, "value": 3},
        {"name": "bridge_calls", "labels": {"operation": "get"}, "value": 1},
        {"name": "uptime_checks", "labels": {}, "value": 1},
    ]
