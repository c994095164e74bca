# tests/unit/logging/test_unit_logger.py - v2
"""Tests for logging/logger.py - logger factory and formatters."""

from __future__ import annotations

import json
import logging

from depforge.logging.context import clear_context, set_run_context, set_task_context
from depforge.logging.logger import JsonFormatter, TextFormatter, get_logger, setup_logging


def _record(msg: str = "Hello", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="depforge.test", level=level, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None,
    )


class TestJsonFormatter:
    def setup_method(self):
        clear_context()

    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Hello"
        assert parsed["logger"] == "depforge.test"
        assert "timestamp" in parsed
        assert "context" not in parsed

    def test_format_with_context(self):
        set_run_context("run1", "aarch64-linux")
        set_task_context("doc")
        parsed = json.loads(JsonFormatter().format(_record()))
        assert parsed["context"] == {"run_id": "run1", "platform": "aarch64-linux", "task": "doc"}

    def test_format_with_data(self):
        record = _record()
        record.data = {"builds": 1}
        assert json.loads(JsonFormatter().format(record))["data"] == {"builds": 1}

    def test_format_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            import sys
            record = logging.LogRecord(
                name="t", level=logging.ERROR, pathname="", lineno=0,
                msg="failed", args=(), exc_info=sys.exc_info(),
            )
        parsed = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in parsed["exception"]


class TestTextFormatter:
    def teardown_method(self):
        clear_context()

    def test_format_basic(self):
        output = TextFormatter().format(_record("Hello text"))
        assert "Hello text" in output
        assert "INFO" in output

    def test_includes_task(self):
        set_task_context("clippy")
        assert "[clippy]" in TextFormatter().format(_record())


class TestGetLogger:
    def test_returns_logger(self):
        assert get_logger("test_module").name == "depforge.test_module"


class TestSetupLogging:
    def teardown_method(self):
        logging.getLogger("depforge").handlers.clear()

    def test_setup_json(self):
        setup_logging(level="DEBUG", log_format="json")
        root = logging.getLogger("depforge")
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, JsonFormatter)

    def test_setup_text(self):
        setup_logging(level="INFO", log_format="text")
        root = logging.getLogger("depforge")
        assert isinstance(root.handlers[0].formatter, TextFormatter)

    def test_idempotent_handlers(self):
        setup_logging()
        setup_logging()
        assert len(logging.getLogger("depforge").handlers) == 1

    def test_with_file(self, tmp_path):
        log_file = tmp_path / "out.log"
        setup_logging(log_file=log_file)
        logging.getLogger("depforge.pipeline").info("to file")
        for handler in logging.getLogger("depforge").handlers:
            handler.flush()
            handler.close()
        assert "to file" in log_file.read_text()
