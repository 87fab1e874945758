"""Structured logging setup."""

from __future__ import annotations

import logging
import sys
from enum import Enum

import structlog


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class LogFormat(str, Enum):
    JSON = "json"
    CONSOLE = "console"


def _stderr_logger(*args: object) -> structlog.PrintLogger:
    # resolve sys.stderr per logger so redirected streams are honoured
    return structlog.PrintLogger(file=sys.stderr)


def configure_logging(level: LogLevel = LogLevel.WARNING, fmt: LogFormat = LogFormat.CONSOLE) -> None:
    """Configure structlog for the CLI and the local server.

    Log output goes to stderr so that `scan --json` stays pipeable.
    """
    renderer: structlog.types.Processor
    if fmt == LogFormat.JSON:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(LogLevel(level).value)
        ),
        logger_factory=_stderr_logger,
        cache_logger_on_first_use=False,
    )
