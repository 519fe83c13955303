"""
Logging setup for jobkit.

This module provides:
- JSON and human-readable formatters for the ``jobkit`` logger tree
- setup_logging() to wire them up from LoggingConfig

Modules log through ``logging.getLogger(__name__)``; nothing here is
required for jobkit to run.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config.logging import LoggingConfig

ROOT_LOGGER = "jobkit"

# Attributes callers may pass via ``extra=`` that end up as JSON fields.
EXTRA_FIELDS = ("job_name", "job_id", "event", "scheduler")


class JSONFormatter(logging.Formatter):
    """JSON log formatter."""

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {}
        if self.include_timestamp:
            log_data["timestamp"] = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        log_data["level"] = record.levelname
        log_data["logger"] = record.name
        log_data["message"] = record.getMessage()

        for key in EXTRA_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, include_timestamp: bool = True, colors: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.colors = colors

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "") if self.colors else ""
        reset = self.RESET if color else ""

        line = f"{color}{record.levelname:8}{reset} {record.name}: {record.getMessage()}"
        if self.include_timestamp:
            timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%H:%M:%S.%f")[:-3]
            line = f"{timestamp} {line}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(config: LoggingConfig | None = None) -> logging.Logger:
    """
    Configure the ``jobkit`` logger from a LoggingConfig.

    Replaces handlers previously installed by this function, so calling it
    again with a new config is safe.

    Returns:
        The configured ``jobkit`` logger
    """
    config = config or LoggingConfig()
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, config.level))

    for handler in list(logger.handlers):
        if getattr(handler, "_jobkit_handler", False):
            logger.removeHandler(handler)
            handler.close()

    if config.format == "json":
        formatter: logging.Formatter = JSONFormatter(include_timestamp=config.include_timestamp)
    else:
        formatter = TextFormatter(include_timestamp=config.include_timestamp, colors=sys.stderr.isatty())

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._jobkit_handler = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    return logger


__all__ = ["JSONFormatter", "TextFormatter", "setup_logging", "ROOT_LOGGER"]
