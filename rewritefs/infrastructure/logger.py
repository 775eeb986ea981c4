#!/usr/bin/env python3
"""Diagnostics output for RewriteFS.

RewriteFS writes two kinds of messages:
- Ordinary log records (debug, info, warning, error) with optional
  ``key=value`` fields appended
- Request diagnostics gated by the ``-v LEVEL`` verbosity: the rule table
  and rewrite decisions (1), passthrough decisions (2), the per-request
  context/rule trace (3) and path fragments (4)

Both go through one stdlib ``logging`` logger, to stderr by default and
optionally to a rotating file.

Example:
    >>> logger = Logger(verbosity=1)
    >>> logger.trace(1, "  /foo -> /data/bar")
    >>> logger.warning("could not set EUID", uid=1000, error="EPERM")
"""

import logging
import logging.handlers
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LogLevel(IntEnum):
    """Log levels matching Python's logging module."""

    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


def _as_level(level: Union[LogLevel, str, int]) -> LogLevel:
    if isinstance(level, str):
        return LogLevel[level.upper()]
    return LogLevel(level)


def _formatter() -> logging.Formatter:
    return logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)


class Logger:
    """Thin wrapper over a stdlib logger adding fields and verbosity.

    :meth:`trace` checks the verbosity before building anything, so the
    per-request diagnostics cost one integer comparison when disabled.
    Trace output is written at INFO level.
    """

    def __init__(
        self,
        name: str = "rewritefs",
        level: Union[LogLevel, str] = LogLevel.INFO,
        handlers: Optional[List[logging.Handler]] = None,
        verbosity: int = 0,
    ):
        """Initialize logger.

        Args:
            name: Name of the underlying stdlib logger
            level: Minimum level of ordinary log records
            handlers: Output handlers (a stderr handler if None)
            verbosity: Diagnostic verbosity (0 = warnings and errors only)
        """
        self.name = name
        self.verbosity = verbosity
        self.logger = logging.getLogger(name)
        self.logger.setLevel(_as_level(level))

        # Repeated construction with the same name replaces the outputs
        self.logger.handlers.clear()
        for handler in handlers if handlers is not None else [self._create_console_handler()]:
            self.logger.addHandler(handler)
        self.logger.propagate = False

    def _create_console_handler(self) -> logging.StreamHandler:
        handler = logging.StreamHandler()
        handler.setFormatter(_formatter())
        return handler

    def create_file_handler(
        self,
        filename: Union[str, Path],
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ) -> logging.handlers.RotatingFileHandler:
        """Create a rotating file handler for ``--log-file``.

        Args:
            filename: Path to log file
            max_bytes: Size at which the file is rotated
            backup_count: Number of rotated files kept

        Returns:
            Handler, not yet attached
        """
        handler = logging.handlers.RotatingFileHandler(
            filename, maxBytes=max_bytes, backupCount=backup_count
        )
        handler.setFormatter(_formatter())
        return handler

    def add_handler(self, handler: logging.Handler) -> None:
        self.logger.addHandler(handler)

    def set_verbosity(self, verbosity: int) -> None:
        self.verbosity = verbosity

    def is_verbose(self, verbosity: int) -> bool:
        """Check whether trace messages at this verbosity are shown."""
        return self.verbosity >= verbosity

    @staticmethod
    def _with_fields(msg: str, fields: Dict[str, Any]) -> str:
        if not fields:
            return msg
        return msg + " | " + " ".join(f"{key}={value}" for key, value in fields.items())

    def _emit(self, level: int, msg: str, fields: Dict[str, Any]) -> None:
        if self.logger.isEnabledFor(level):
            self.logger.log(level, self._with_fields(msg, fields))

    def debug(self, msg: str, **fields) -> None:
        self._emit(logging.DEBUG, msg, fields)

    def info(self, msg: str, **fields) -> None:
        self._emit(logging.INFO, msg, fields)

    def warning(self, msg: str, **fields) -> None:
        self._emit(logging.WARNING, msg, fields)

    def error(self, msg: str, **fields) -> None:
        self._emit(logging.ERROR, msg, fields)

    def trace(self, verbosity: int, msg: str, **fields) -> None:
        """Log a request diagnostic if the verbosity asks for it.

        Args:
            verbosity: Lowest verbosity at which the message is shown
            msg: Message
            **fields: Extra ``key=value`` fields
        """
        if self.verbosity >= verbosity:
            self._emit(logging.INFO, msg, fields)


_global_logger: Optional[Logger] = None


def get_logger(name: str = "rewritefs") -> Logger:
    """Return the process-wide logger, creating a default one if needed."""
    global _global_logger
    if _global_logger is None:
        _global_logger = Logger(name=name)
    return _global_logger


def set_global_logger(logger: Optional[Logger]) -> None:
    """Install the process-wide logger (None resets to the default)."""
    global _global_logger
    _global_logger = logger
