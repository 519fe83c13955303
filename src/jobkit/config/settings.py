"""
Settings master configuration and global helpers.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
from dotenv import find_dotenv, load_dotenv

from ..config_schema import CONFIG_SCHEMA
from ..errors import ConfigError
from .logging import LoggingConfig, TelemetryConfig
from .scheduler import SchedulerConfig, StorageConfig


@dataclass
class Settings:
    """
    Master configuration for jobkit.

    This aggregates all configuration sections into a single object
    that can be loaded from environment variables, files, or constructed
    programmatically.
    """

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)

    @classmethod
    def from_env(cls, prefix: str = "JOBKIT_") -> Settings:
        """
        Load settings from environment variables.

        Example:
            JOBKIT_SCHEDULER_NAME=worker-1
            JOBKIT_STORAGE_BACKEND=postgres
            JOBKIT_PG_DSN=postgresql://...
        """
        settings = cls()

        # Scheduler settings
        if name := os.getenv(f"{prefix}SCHEDULER_NAME"):
            settings.scheduler.name = name
        if lifetime := os.getenv(f"{prefix}LOCK_LIFETIME_SECONDS"):
            settings.scheduler.default_lock_lifetime_seconds = float(lifetime)
        if priority := os.getenv(f"{prefix}DEFAULT_PRIORITY"):
            settings.scheduler.default_priority = priority.lower()

        # Storage settings
        if backend := os.getenv(f"{prefix}STORAGE_BACKEND"):
            settings.storage.backend = backend.lower()  # type: ignore
        if dsn := os.getenv(f"{prefix}PG_DSN"):
            settings.storage.pg_dsn = dsn
        if table := os.getenv(f"{prefix}PG_TABLE"):
            settings.storage.table_name = table
        if url := os.getenv(f"{prefix}REDIS_URL"):
            settings.storage.redis_url = url
        if key_prefix := os.getenv(f"{prefix}REDIS_KEY_PREFIX"):
            settings.storage.key_prefix = key_prefix

        # Logging settings
        if level := os.getenv(f"{prefix}LOG_LEVEL"):
            settings.logging.level = level.upper()  # type: ignore
        if log_format := os.getenv(f"{prefix}LOG_FORMAT"):
            settings.logging.format = log_format.lower()  # type: ignore
        if log_file := os.getenv(f"{prefix}LOG_FILE"):
            settings.logging.log_file = Path(log_file)

        # Telemetry settings
        if enabled := os.getenv(f"{prefix}TELEMETRY_ENABLED"):
            settings.telemetry.enabled = enabled.lower() == "true"
        if tracer_name := os.getenv(f"{prefix}TRACER_NAME"):
            settings.telemetry.tracer_name = tracer_name

        return settings

    @classmethod
    def from_file(cls, path: str | Path) -> Settings:
        """
        Load settings from a YAML or TOML file.

        Args:
            path: Path to configuration file (.yaml, .yml, or .toml)

        Returns:
            Settings object with values from file
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            import yaml  # type: ignore[import-untyped]

            with open(path) as f:
                data = yaml.safe_load(f) or {}
        elif suffix == ".toml":
            import tomllib

            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            raise ConfigError(f"Unsupported config file format: {suffix}")

        return cls._from_dict(data)

    @classmethod
    def default(cls) -> Settings:
        """Create default configuration."""
        return cls()

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Settings:
        """
        Create Settings from a dictionary.

        The dictionary is validated against the configuration schema first;
        section constructors then apply their own checks.
        """
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise ConfigError(f"Configuration validation failed: {e.message}", cause=e) from e

        sections = {
            "scheduler": SchedulerConfig,
            "storage": StorageConfig,
            "logging": LoggingConfig,
            "telemetry": TelemetryConfig,
        }
        values = {}
        for key, config_cls in sections.items():
            if key in data:
                section = data[key] or {}
                known = {k: v for k, v in section.items() if k in config_cls.__dataclass_fields__}
                values[key] = config_cls(**known)

        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert settings to dictionary."""
        import dataclasses

        def convert(obj):
            if dataclasses.is_dataclass(obj):
                return {k: convert(v) for k, v in dataclasses.asdict(obj).items()}
            elif isinstance(obj, Path):
                return str(obj)
            return obj

        return convert(self)


# =============================================================================
# Global Settings & Helpers
# =============================================================================

_global_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating from the environment if needed."""
    global _global_settings
    if _global_settings is None:
        _global_settings = Settings.from_env()
    return _global_settings


def configure(settings: Settings | None = None, **kwargs) -> Settings:
    """
    Configure global settings.

    Args:
        settings: Settings object to use globally
        **kwargs: Override specific sections (scheduler=..., storage=...)

    Returns:
        The configured Settings object
    """
    global _global_settings

    if settings is not None:
        _global_settings = settings
    elif _global_settings is None:
        _global_settings = Settings.from_env()

    for key, value in kwargs.items():
        if not hasattr(_global_settings, key):
            raise ConfigError(f"Unknown settings section: {key}")
        setattr(_global_settings, key, value)

    return _global_settings


def reset_settings() -> None:
    """Forget the global settings; the next get_settings() reloads them."""
    global _global_settings
    _global_settings = None


def load_env(path: str | None = None, *, override: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        path: Optional path to a .env file. If not provided, uses find_dotenv().
        override: Whether to override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = ["Settings", "get_settings", "configure", "reset_settings", "load_env"]
