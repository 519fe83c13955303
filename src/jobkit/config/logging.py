"""
Logging and telemetry configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..errors import ConfigError
from .base import LogFormat, LogLevel


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: LogLevel = "INFO"
    format: LogFormat = "text"

    # Output settings
    log_file: Path | None = None
    include_timestamp: bool = True

    def __post_init__(self):
        """Validate configuration after initialization."""
        valid_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        if self.level not in valid_levels:
            raise ConfigError(f"Invalid log level: {self.level}. Must be one of {valid_levels}")
        valid_formats = ("text", "json")
        if self.format not in valid_formats:
            raise ConfigError(f"Invalid log format: {self.format}. Must be one of {valid_formats}")
        if self.log_file and isinstance(self.log_file, str):
            self.log_file = Path(self.log_file)


@dataclass
class TelemetryConfig:
    """Configuration for OpenTelemetry tracing of job runs."""

    enabled: bool = False
    tracer_name: str = "jobkit"

    def __post_init__(self):
        if not self.tracer_name:
            raise ConfigError("tracer_name cannot be empty")


__all__ = ["LoggingConfig", "TelemetryConfig"]
