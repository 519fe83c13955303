"""
jobkit: job lifecycle engine.

Jobs carry their own schedule (one-off, interval, cron or time of day),
hold a timestamp lease in a shared store while running, and record every
failed attempt.

Example:
    ```python
    from jobkit import InMemoryJobStore, Scheduler

    scheduler = Scheduler(store=InMemoryJobStore())
    scheduler.define("cleanup", cleanup_handler)

    job = await scheduler.every("10 minutes", "cleanup")
    await job.run()
    ```
"""

from .config import (
    LoggingConfig,
    SchedulerConfig,
    Settings,
    StorageConfig,
    TelemetryConfig,
    configure,
    get_settings,
    load_env,
)
from .errors import (
    ConfigError,
    ErrorCode,
    ErrorContext,
    HandlerError,
    JobCanceledError,
    JobkitError,
    JobNotFoundError,
    PersistenceError,
    SchedulingComputationError,
    UndefinedJobTypeError,
)
from .events import EventSubscription, JobEvent, JobEventEmitter
from .jobs import (
    InMemoryJobStore,
    Job,
    JobAttributes,
    JobDefinition,
    JobFilter,
    JobRegistry,
    JobStore,
)
from .logging import setup_logging
from .scheduler import Scheduler

__version__ = "0.1.0"

__all__ = [
    # Core
    "Scheduler",
    "Job",
    "JobAttributes",
    "JobDefinition",
    "JobRegistry",
    # Storage
    "JobStore",
    "InMemoryJobStore",
    "JobFilter",
    # Events
    "JobEvent",
    "JobEventEmitter",
    "EventSubscription",
    # Errors
    "ErrorCode",
    "ErrorContext",
    "JobkitError",
    "UndefinedJobTypeError",
    "JobNotFoundError",
    "HandlerError",
    "SchedulingComputationError",
    "JobCanceledError",
    "PersistenceError",
    "ConfigError",
    # Config
    "Settings",
    "SchedulerConfig",
    "StorageConfig",
    "LoggingConfig",
    "TelemetryConfig",
    "get_settings",
    "configure",
    "load_env",
    "setup_logging",
]
