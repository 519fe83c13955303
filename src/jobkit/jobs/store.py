"""
Job store implementations.

This module provides the JobStore interface (the persistence gateway used by
Job and Scheduler) and an in-memory implementation.
"""

from __future__ import annotations

import asyncio
import copy
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from ..errors import PersistenceError
from .types import SINGLE_JOB_TYPE, STATE_FIELDS, JobAttributes, to_datetime

if TYPE_CHECKING:
    from .job import Job


@dataclass
class JobFilter:
    """Filter criteria for loading or removing jobs."""
    job_id: str | None = None
    name: str | None = None
    disabled: bool | None = None
    limit: int | None = None

    def matches(self, attrs: JobAttributes) -> bool:
        """Check if a job matches this filter."""
        if self.job_id is not None and attrs.id != self.job_id:
            return False
        if self.name is not None and attrs.name != self.name:
            return False
        if self.disabled is not None and attrs.disabled != self.disabled:
            return False
        return True


def resolve_path(attrs: JobAttributes, path: str) -> Any:
    """Read a dotted path such as ``data.user_id`` from a record."""
    head, _, rest = path.partition(".")
    value: Any = getattr(attrs, head, None)
    for part in rest.split(".") if rest else ():
        if isinstance(value, dict):
            value = value.get(part)
        else:
            value = getattr(value, part, None)
    return value


def matches_unique(attrs: JobAttributes, unique: dict[str, Any]) -> bool:
    """Check a record against a uniqueness constraint of dotted paths."""
    return all(resolve_path(attrs, path) == value for path, value in unique.items())


def new_job_id() -> str:
    return uuid.uuid4().hex


def missing_record_error(attrs: JobAttributes) -> PersistenceError:
    return PersistenceError(
        f"job {attrs.id} (name: {attrs.name}) cannot be updated in the database, "
        "maybe it does not exist anymore?"
    )


class JobStore(ABC):
    """Abstract interface for job persistence.

    The store is the only component that durably reads or writes job records.
    Atomic lease acquisition belongs to the dispatcher and the store; Job only
    reads and extends a lease it already holds.
    """

    @abstractmethod
    async def get_jobs(self, filter: JobFilter | None = None) -> list[JobAttributes]:
        """Load records matching the filter."""
        ...

    @abstractmethod
    async def save_job(self, job: Job) -> Job:
        """Insert or update the full record, assigning ``job.attrs.id``.

        Records of type ``single`` are upserted on name; records with a
        ``unique`` constraint are upserted on that constraint.
        """
        ...

    @abstractmethod
    async def save_job_state(self, job: Job) -> None:
        """Persist the lock/run/finish/progress/failure fields only.

        Raises:
            PersistenceError: If no record matches the job's id and name
        """
        ...

    @abstractmethod
    async def remove_jobs(self, filter: JobFilter | None = None) -> int:
        """Delete records matching the filter. Returns the number removed."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryJobStore(JobStore):
    """In-memory job store implementation.

    Suitable for testing and single-process deployments.
    Thread-safe via asyncio.Lock.
    """

    def __init__(self):
        self._jobs: dict[str, JobAttributes] = {}
        self._lock = asyncio.Lock()

    async def get_jobs(self, filter: JobFilter | None = None) -> list[JobAttributes]:
        async with self._lock:
            records = [copy.deepcopy(r) for r in self._jobs.values() if not filter or filter.matches(r)]
            if filter and filter.limit is not None:
                records = records[:filter.limit]
            return records

    async def save_job(self, job: Job) -> Job:
        async with self._lock:
            attrs = job.attrs
            record = copy.deepcopy(attrs)

            if attrs.id is not None:
                self._jobs[attrs.id] = record
                return job

            existing = self._find_existing(attrs)
            if existing is None:
                record.id = new_job_id()
            elif attrs.type == SINGLE_JOB_TYPE:
                record.id = existing.id
                next_run_at = to_datetime(attrs.next_run_at)
                if next_run_at is not None and next_run_at <= job.scheduler.now():
                    # Already due: keep the stored schedule instead of resetting it.
                    record.next_run_at = existing.next_run_at
            elif (attrs.unique_opts or {}).get("insert_only"):
                job.attrs.id = existing.id
                return job
            else:
                record.id = existing.id

            self._jobs[record.id] = record
            job.attrs.id = record.id
            return job

    def _find_existing(self, attrs: JobAttributes) -> JobAttributes | None:
        for record in self._jobs.values():
            if attrs.type == SINGLE_JOB_TYPE:
                if record.type == SINGLE_JOB_TYPE and record.name == attrs.name:
                    return record
            elif attrs.unique and matches_unique(record, attrs.unique):
                return record
        return None

    async def save_job_state(self, job: Job) -> None:
        async with self._lock:
            attrs = job.attrs
            record = self._jobs.get(attrs.id) if attrs.id is not None else None
            if record is None or record.name != attrs.name:
                raise missing_record_error(attrs)
            for key in STATE_FIELDS:
                setattr(record, key, copy.deepcopy(getattr(attrs, key)))

    async def remove_jobs(self, filter: JobFilter | None = None) -> int:
        async with self._lock:
            doomed = [job_id for job_id, r in self._jobs.items() if not filter or filter.matches(r)]
            for job_id in doomed:
                del self._jobs[job_id]
            return len(doomed)


__all__ = [
    "JobStore",
    "InMemoryJobStore",
    "JobFilter",
    "matches_unique",
    "missing_record_error",
    "new_job_id",
    "resolve_path",
]
