"""
Tests for structured logging functionality.
"""

import json
import logging

import pytest

from ctsync.cli.logging import (
    ContextLogger,
    JSONFormatter,
    TextFormatter,
    get_logger,
    setup_logging,
)


def make_record(msg="Test message", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="TestLogger",
        level=level,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def restore_root_logger():
    """setup_logging replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


# =============================================================================
# Formatters
# =============================================================================


class TestJSONFormatter:
    """Tests for the JSON log formatter."""

    def test_basic_format(self):
        """Test basic JSON log output format."""
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "TestLogger"
        assert data["message"] == "Test message"
        assert "timestamp" in data

    def test_extra_and_static_fields(self):
        """Test extra fields and static fields are included."""
        formatter = JSONFormatter(static_fields={"service": "ctsync"})

        data = json.loads(formatter.format(make_record(type_key="article", retry=2)))

        assert data["service"] == "ctsync"
        assert data["type_key"] == "article"
        assert data["retry"] == 2

    def test_exception_info(self):
        """Test exceptions are formatted into the record."""
        try:
            raise ValueError("boom")
        except ValueError:
            import sys

            record = make_record(level=logging.ERROR)
            record.exc_info = sys.exc_info()

        data = json.loads(JSONFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestTextFormatter:
    """Tests for the text formatter."""

    def test_plain_line(self):
        line = TextFormatter().format(make_record())
        assert "INFO" in line
        assert line.endswith("TestLogger: Test message")

    def test_context_appended(self):
        """Test extra fields are appended sorted as key=value."""
        line = TextFormatter().format(make_record(type_key="article", attempt=1))
        assert line.endswith("Test message attempt=1 type_key=article")


# =============================================================================
# ContextLogger
# =============================================================================


class TestContextLogger:
    """Tests for context binding."""

    def test_get_logger_carries_context(self, caplog):
        """Test bound context lands on records."""
        log = get_logger("ContextTest", deployment_id="d-1")

        with caplog.at_level(logging.INFO, logger="ContextTest"):
            log.info("hello")

        assert caplog.records[-1].deployment_id == "d-1"

    def test_bind_merges(self, caplog):
        """Test bind returns a new logger with merged context."""
        base = get_logger("ContextTest", a=1)
        bound = base.bind(b=2)

        assert isinstance(bound, ContextLogger)
        assert base.extra == {"a": 1}
        with caplog.at_level(logging.INFO, logger="ContextTest"):
            bound.info("hello", extra={"c": 3})

        record = caplog.records[-1]
        assert (record.a, record.b, record.c) == (1, 2, 3)


# =============================================================================
# setup_logging
# =============================================================================


class TestSetupLogging:
    """Tests for root logger configuration."""

    def test_text_setup(self, restore_root_logger):
        """Test a single stderr handler with the text formatter."""
        setup_logging(level=logging.DEBUG)

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, TextFormatter)
        assert logging.getLogger("urllib3").level == logging.WARNING

    def test_json_setup_with_file(self, restore_root_logger, tmp_path):
        """Test the JSON format also writes to the log file."""
        log_file = tmp_path / "logs" / "ctsync.log"

        setup_logging(log_format="json", log_file=log_file, static_fields={"run": "r1"})
        logging.getLogger("FileTest").warning("written")
        for handler in restore_root_logger.handlers:
            handler.flush()

        line = log_file.read_text().strip().splitlines()[-1]
        data = json.loads(line)
        assert data["message"] == "written"
        assert data["run"] == "r1"
