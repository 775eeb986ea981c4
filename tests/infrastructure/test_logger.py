#!/usr/bin/env python3
"""Tests for the Logger module."""

import io
import logging

from rewritefs.infrastructure.logger import LogLevel, Logger, get_logger, set_global_logger


def make_logger(stream, **kwargs):
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    return Logger(name="rewritefs.test.logger", handlers=[handler], **kwargs)


class TestLogLevel:
    """Tests for LogLevel enum."""

    def test_log_levels(self):
        """Test log level values match Python logging."""
        assert LogLevel.DEBUG == logging.DEBUG
        assert LogLevel.INFO == logging.INFO
        assert LogLevel.WARNING == logging.WARNING
        assert LogLevel.ERROR == logging.ERROR
        assert LogLevel.CRITICAL == logging.CRITICAL


class TestLogger:
    """Tests for Logger class."""

    def test_logger_creation(self):
        logger = Logger(name="test", level=LogLevel.DEBUG)
        assert logger.name == "test"
        assert logger.logger.level == LogLevel.DEBUG
        assert logger.verbosity == 0

    def test_logger_with_string_level(self):
        logger = Logger(name="test", level="WARNING")
        assert logger.logger.level == LogLevel.WARNING

    def test_default_console_handler(self):
        logger = Logger(name="test")
        assert len(logger.logger.handlers) == 1
        assert isinstance(logger.logger.handlers[0], logging.StreamHandler)
        assert logger.logger.propagate is False

    def test_add_handler(self):
        logger = Logger(name="test")
        handler = logging.StreamHandler()
        logger.add_handler(handler)
        assert logger.logger.handlers[-1] is handler

    def test_create_file_handler(self, temp_dir):
        logger = Logger(name="test")
        log_file = temp_dir / "rewritefs.log"
        handler = logger.create_file_handler(log_file)
        logger.add_handler(handler)

        logger.info("written to file")
        handler.close()
        logger.logger.removeHandler(handler)

        assert "written to file" in log_file.read_text()

    def test_levels_filter(self):
        stream = io.StringIO()
        logger = make_logger(stream, level="WARNING")

        logger.debug("debug")
        logger.info("info")
        logger.warning("warning")
        logger.error("error")

        assert stream.getvalue().splitlines() == ["WARNING warning", "ERROR error"]

    def test_fields(self):
        stream = io.StringIO()
        logger = make_logger(stream)

        logger.warning("autocreate failed", uid=1000, error="EACCES")
        assert stream.getvalue() == "WARNING autocreate failed | uid=1000 error=EACCES\n"


class TestTrace:
    """Tests for verbosity-gated diagnostics."""

    def test_trace_gated_by_verbosity(self):
        stream = io.StringIO()
        logger = make_logger(stream, verbosity=2)

        logger.trace(1, "decision")
        logger.trace(2, "ignored")
        logger.trace(3, "trace")

        assert stream.getvalue().splitlines() == ["INFO decision", "INFO ignored"]

    def test_trace_silent_at_zero(self):
        stream = io.StringIO()
        logger = make_logger(stream)

        logger.trace(1, "decision")
        assert stream.getvalue() == ""

    def test_trace_respects_level(self):
        stream = io.StringIO()
        logger = make_logger(stream, level="WARNING", verbosity=4)

        logger.trace(1, "decision")
        assert stream.getvalue() == ""

    def test_set_verbosity(self):
        logger = Logger(name="test")
        assert not logger.is_verbose(1)
        logger.set_verbosity(3)
        assert logger.is_verbose(3)
        assert not logger.is_verbose(4)


class TestGlobalLogger:
    """Tests for the global logger."""

    def test_get_logger_singleton(self):
        assert get_logger() is get_logger()

    def test_set_global_logger(self):
        logger = Logger(name="custom")
        set_global_logger(logger)
        assert get_logger() is logger

    def test_reset(self):
        first = get_logger()
        set_global_logger(None)
        assert get_logger() is not first
