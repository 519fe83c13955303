"""
Configuration system for jobkit.

This package provides typed configuration classes with:
- Dataclass-based settings with validation
- Environment variable loading
- YAML/TOML file loading
"""

from .base import LogFormat, LogLevel, StorageBackendType
from .logging import LoggingConfig, TelemetryConfig
from .scheduler import SchedulerConfig, StorageConfig
from .settings import Settings, configure, get_settings, load_env, reset_settings

__all__ = [
    # Types
    "StorageBackendType",
    "LogLevel",
    "LogFormat",
    # Section configs
    "SchedulerConfig",
    "StorageConfig",
    "LoggingConfig",
    "TelemetryConfig",
    # Master config
    "Settings",
    # Global functions
    "get_settings",
    "configure",
    "reset_settings",
    "load_env",
]
