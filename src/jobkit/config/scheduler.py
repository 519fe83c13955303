"""
Scheduler and storage configuration classes.
"""

from __future__ import annotations

import os
import re
import socket
from dataclasses import dataclass, field
from datetime import timedelta

from ..errors import ConfigError
from ..jobs.priority import PRIORITY_LEVELS
from .base import StorageBackendType

_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class SchedulerConfig:
    """Configuration for a scheduler context."""

    # Recorded as last_modified_by on every saved job
    name: str = field(default_factory=lambda: f"{socket.gethostname()}-{os.getpid()}")

    # Applied to definitions that do not set their own
    default_lock_lifetime_seconds: float = 600.0
    default_priority: str | int = "normal"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.name:
            raise ConfigError("name cannot be empty")
        if self.default_lock_lifetime_seconds <= 0:
            raise ConfigError("default_lock_lifetime_seconds must be positive")
        if isinstance(self.default_priority, str) and self.default_priority.lower() not in PRIORITY_LEVELS:
            raise ConfigError(
                f"Invalid default priority: {self.default_priority}. "
                f"Must be an integer or one of {tuple(PRIORITY_LEVELS)}"
            )

    @property
    def default_lock_lifetime(self) -> timedelta:
        return timedelta(seconds=self.default_lock_lifetime_seconds)


@dataclass
class StorageConfig:
    """Configuration for the job store backend."""

    backend: StorageBackendType = "memory"

    # PostgreSQL settings
    pg_dsn: str | None = None
    table_name: str = "jobkit_jobs"

    # Redis settings
    redis_url: str | None = None
    key_prefix: str = "jobkit"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.backend not in ("memory", "postgres", "redis"):
            raise ConfigError(f"Invalid storage backend: {self.backend}")
        if not _TABLE_NAME.match(self.table_name or ""):
            raise ConfigError(f"Invalid table name: {self.table_name!r}")
        if not self.key_prefix:
            raise ConfigError("key_prefix cannot be empty")

    def validate_backend(self) -> None:
        """Check the connection settings the selected backend needs."""
        if self.backend == "postgres" and not self.pg_dsn:
            raise ConfigError("pg_dsn is required for the postgres backend")
        if self.backend == "redis" and not self.redis_url:
            raise ConfigError("redis_url is required for the redis backend")


__all__ = ["SchedulerConfig", "StorageConfig"]
