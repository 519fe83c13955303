"""
Job system for jobkit.

This module provides the job lifecycle:
- JobAttributes: Persisted job state
- Job: Scheduling, leases, execution and failure accounting
- JobRegistry: Name -> handler definitions
- JobStore: Persistence interface with implementations
"""

from .types import (
    DATE_FIELDS,
    STATE_FIELDS,
    DEFAULT_JOB_TYPE,
    SINGLE_JOB_TYPE,
    JobAttributes,
    to_datetime,
    utcnow,
)
from .priority import (
    PRIORITY_LEVELS,
    parse_priority,
)
from .definitions import (
    DEFAULT_LOCK_LIFETIME,
    JobDefinition,
    JobRegistry,
)
from .store import (
    JobStore,
    InMemoryJobStore,
    JobFilter,
)
from .job import Job

__all__ = [
    "DATE_FIELDS",
    "STATE_FIELDS",
    "DEFAULT_JOB_TYPE",
    "SINGLE_JOB_TYPE",
    "JobAttributes",
    "to_datetime",
    "utcnow",
    "PRIORITY_LEVELS",
    "parse_priority",
    "DEFAULT_LOCK_LIFETIME",
    "JobDefinition",
    "JobRegistry",
    "JobStore",
    "InMemoryJobStore",
    "JobFilter",
    "Job",
]
