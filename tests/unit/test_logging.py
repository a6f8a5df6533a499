"""Unit tests for structured logging."""

import pytest
import json
import logging
from io import StringIO
from datetime import datetime

from hvstats.logging import StructuredLogger, logger
from hvstats.models import DomainFlag


def capture(test_logger: StructuredLogger) -> StringIO:
    """Redirect a logger's output into a string buffer."""
    stream = StringIO()
    test_logger.logger.handlers.clear()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredLogger.JsonFormatter())
    test_logger.logger.addHandler(handler)
    return stream


def last_entry(stream: StringIO) -> dict:
    return json.loads(stream.getvalue().strip().split("\n")[-1])


class TestStructuredLogger:
    """Test StructuredLogger class."""

    def test_initialization(self):
        test_logger = StructuredLogger("test_logger")
        assert test_logger.logger.name == "test_logger"
        assert test_logger.logger.level == logging.INFO

    def test_custom_level(self):
        test_logger = StructuredLogger("test_custom", level=logging.DEBUG)
        assert test_logger.logger.level == logging.DEBUG

    def test_has_json_formatter(self):
        test_logger = StructuredLogger("test_formatter")
        handler = test_logger.logger.handlers[0]
        assert isinstance(handler.formatter, StructuredLogger.JsonFormatter)

    def test_reinitialization_does_not_duplicate_handlers(self):
        StructuredLogger("test_clear")
        test_logger = StructuredLogger("test_clear")
        assert len(test_logger.logger.handlers) == 1

    def test_does_not_propagate_to_root(self):
        assert StructuredLogger("test_propagate").logger.propagate is False


class TestJsonFormatter:
    """Test JsonFormatter class."""

    def make_record(self, **extra):
        record = logging.LogRecord(
            name="test",
            level=logging.INFO,
            pathname="test.py",
            lineno=1,
            msg="Driver %s registered",
            args=("XEN",),
            exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_record(self):
        data = json.loads(StructuredLogger.JsonFormatter().format(self.make_record()))

        assert data["message"] == "Driver XEN registered"
        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        datetime.fromisoformat(data["timestamp"])

    def test_standard_attributes_are_not_extras(self):
        data = json.loads(StructuredLogger.JsonFormatter().format(self.make_record()))
        assert "lineno" not in data
        assert "args" not in data

    def test_extra_fields(self):
        record = self.make_record(driver="XEN", domains=3)
        data = json.loads(StructuredLogger.JsonFormatter().format(record))
        assert data["driver"] == "XEN"
        assert data["domains"] == 3

    def test_non_serializable_extras_are_stringified(self):
        record = self.make_record(flag=DomainFlag.PAUSED)
        data = json.loads(StructuredLogger.JsonFormatter().format(record))
        assert data["flag"] == "DomainFlag.PAUSED"

    def test_exception(self):
        try:
            raise ValueError("Test exception")
        except ValueError:
            import sys
            exc_info = sys.exc_info()

        record = self.make_record()
        record.exc_info = exc_info
        data = json.loads(StructuredLogger.JsonFormatter().format(record))

        assert "ValueError" in data["exception"]
        assert "Test exception" in data["exception"]


class TestStructuredLoggerMethods:
    """Test StructuredLogger logging methods."""

    def setup_method(self):
        self.test_logger = StructuredLogger("test_methods", level=logging.DEBUG)
        self.stream = capture(self.test_logger)

    @pytest.mark.parametrize("method,level", [
        ("debug", "DEBUG"),
        ("info", "INFO"),
        ("warning", "WARNING"),
        ("error", "ERROR"),
    ])
    def test_levels(self, method, level):
        getattr(self.test_logger, method)("message", driver="LIBVIRT")
        data = last_entry(self.stream)
        assert data["level"] == level
        assert data["driver"] == "LIBVIRT"

    def test_warning_with_exc_info(self):
        try:
            raise RuntimeError("probe failed")
        except RuntimeError:
            self.test_logger.warning("Detection raised", exc_info=True)

        assert "RuntimeError" in last_entry(self.stream)["exception"]

    def test_error_without_exc_info(self):
        self.test_logger.error("Collection failed")
        assert "exception" not in last_entry(self.stream)


class TestSetLevel:
    """Test runtime level changes."""

    def test_set_level_by_name(self):
        test_logger = StructuredLogger("test_set_level")
        stream = capture(test_logger)

        test_logger.set_level("warning")
        test_logger.info("hidden")
        test_logger.warning("shown")

        lines = [line for line in stream.getvalue().split("\n") if line]
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == "shown"

    def test_set_level_by_number(self):
        test_logger = StructuredLogger("test_set_number")
        test_logger.set_level(logging.ERROR)
        assert test_logger.logger.level == logging.ERROR

    def test_unknown_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            StructuredLogger("test_bad_level").set_level("TRACE")


class TestGlobalLogger:
    """Test global logger instance."""

    def test_global_logger_name(self):
        assert isinstance(logger, StructuredLogger)
        assert logger.logger.name == "hvstats"


class TestSetStream:
    """Test redirecting the JSON handler."""

    def test_set_stream_returns_previous(self):
        test_logger = StructuredLogger("test_set_stream")
        first, second = StringIO(), StringIO()

        test_logger.set_stream(first)
        previous = test_logger.set_stream(second)
        test_logger.info("moved")

        assert previous is first
        assert first.getvalue() == ""
        assert json.loads(second.getvalue())["message"] == "moved"

    def test_same_stream_is_returned(self):
        test_logger = StructuredLogger("test_same_stream")
        stream = StringIO()
        test_logger.set_stream(stream)

        assert test_logger.set_stream(stream) is stream
