"""Unit tests for structured logging."""

from __future__ import annotations

import io
import json
import logging
import sys
from pathlib import Path

import pytest

from workflow_engine.logging import JsonFormatter, configure_logging


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="workflow_engine.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Compiled %s",
        args=("kyc",),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_renders_message_and_extra() -> None:
    payload = json.loads(JsonFormatter().format(_record(workflow_id="kyc", path=Path("/x"))))

    assert payload["level"] == "INFO"
    assert payload["service"] == "workflow-engine"
    assert payload["logger"] == "workflow_engine.test"
    assert payload["message"] == "Compiled kyc"
    assert payload["context"] == {"workflow_id": "kyc", "path": "/x"}
    assert "timestamp" in payload


def test_json_formatter_without_extra() -> None:
    payload = json.loads(JsonFormatter().format(_record()))

    assert "context" not in payload


def test_json_formatter_includes_exception() -> None:
    try:
        raise RuntimeError("boom")
    except RuntimeError:
        record = _record()
        record.exc_info = sys.exc_info()

    payload = json.loads(JsonFormatter().format(record))

    assert "RuntimeError: boom" in payload["exception"]


def test_configure_logging_replaces_handlers(capsys: pytest.CaptureFixture[str]) -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    try:
        configure_logging("debug")
        configure_logging("info")

        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, JsonFormatter)
        assert root.level == logging.INFO

        logging.getLogger("workflow_engine.test").info("hello", extra={"step_id": "a"})
        line = capsys.readouterr().err.strip().splitlines()[-1]
        assert json.loads(line)["context"] == {"step_id": "a"}
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)


def test_configure_logging_accepts_stream() -> None:
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    buffer = io.StringIO()
    try:
        handler = configure_logging("WARNING", stream=buffer)
        logging.getLogger("workflow_engine.test").info("dropped")
        logging.getLogger("workflow_engine.test").warning("kept")

        assert root.handlers == [handler]
        lines = buffer.getvalue().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["kept"]
    finally:
        for existing in list(root.handlers):
            root.removeHandler(existing)
        for existing in saved_handlers:
            root.addHandler(existing)
        root.setLevel(saved_level)
