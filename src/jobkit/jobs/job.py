"""
Job lifecycle engine.

A Job wraps one JobAttributes record and owns every mutation of it: schedule
changes, recurrence computation, lease heartbeats, execution and failure
accounting. All coordination state lives in the shared store; no in-process
lock is held. The dispatcher that loads due jobs is trusted to hand a job to
at most one worker per lease period.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Mapping
from dataclasses import fields
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable

from ..errors import (
    HandlerError,
    JobCanceledError,
    JobNotFoundError,
    UndefinedJobTypeError,
    error_message,
)
from ..events import JobEvent
from .priority import parse_priority
from .recurrence import compute_from_interval, compute_from_repeat_at, parse_when
from .store import JobFilter, JobStore
from .types import DATE_FIELDS, DEFAULT_JOB_TYPE, JobAttributes, to_datetime

if TYPE_CHECKING:
    from ..scheduler import Scheduler
    from .definitions import JobHandlerFn

logger = logging.getLogger(__name__)

DoneCallback = Callable[..., None]


def accepts_done_callback(handler: Callable[..., Any]) -> bool:
    """True if the handler takes ``(job, done)`` rather than ``(job)``."""
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return False
    positional = [
        p for p in signature.parameters.values()
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    ]
    return len(positional) >= 2


class Job:
    """One schedulable unit of work bound to a scheduler context.

    ``by_job_processor`` marks the instance the dispatcher is executing.
    Other instances are client-side handles and refresh lease fields from the
    store before answering liveness questions.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        attrs: Mapping[str, Any] | JobAttributes,
        by_job_processor: bool = False,
    ):
        self.scheduler = scheduler
        self.by_job_processor = by_job_processor
        # Set externally to stop touch() from extending the lease.
        self.canceled: Any = None
        self._handler_tasks: set[asyncio.Future[Any]] = set()

        if isinstance(attrs, JobAttributes):
            values = {f.name: getattr(attrs, f.name) for f in fields(attrs)}
        else:
            values = dict(attrs)

        values["priority"] = parse_priority(values.get("priority"))
        if "next_run_at" not in values:
            values["next_run_at"] = scheduler.now()
        if values.get("disabled") is None:
            values["disabled"] = False
        if values.get("type") is None:
            values["type"] = DEFAULT_JOB_TYPE
        if values.get("fail_count") is None:
            values["fail_count"] = 0
        for key in DATE_FIELDS:
            if key in values:
                values[key] = to_datetime(values[key])

        self.attrs = JobAttributes(**values)

    def __repr__(self) -> str:
        return f"<Job name={self.attrs.name!r} id={self.attrs.id!r} next_run_at={self.attrs.next_run_at!r}>"

    @property
    def _tag(self) -> tuple[str, str | None]:
        return self.attrs.name, self.attrs.id

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_json(self) -> dict[str, Any]:
        """Snapshot of every attribute with date fields as concrete datetimes."""
        result: dict[str, Any] = {}
        for key, value in self.attrs.to_dict().items():
            if key in DATE_FIELDS and value:
                result[key] = to_datetime(value)
            else:
                result[key] = value
        return result

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def repeat_every(
        self,
        interval: str | int | float | timedelta,
        *,
        timezone: str | None = None,
        skip_immediate: bool = False,
        start_date: Any = None,
        end_date: Any = None,
        skip_days: str | int | float | timedelta | None = None,
    ) -> Job:
        """Repeat the job every ``interval`` (cron expression or human interval).

        With ``skip_immediate`` the next run is computed from the current
        ``next_run_at`` instead of the last run, so the immediate slot is
        skipped.
        """
        self.attrs.repeat_interval = interval
        self.attrs.repeat_timezone = timezone
        self.attrs.start_date = to_datetime(start_date)
        self.attrs.end_date = to_datetime(end_date)
        self.attrs.skip_days = skip_days

        if skip_immediate:
            self.attrs.last_run_at = to_datetime(self.attrs.next_run_at) or self.scheduler.now()
            self.compute_next_run_at()
            self.attrs.last_run_at = None
        else:
            self.compute_next_run_at()
        return self

    def repeat_at(self, time: str) -> Job:
        """Repeat the job at a fixed time of day, e.g. ``"3:30pm"``."""
        self.attrs.repeat_at = time
        return self

    def schedule(self, when: Any) -> Job:
        """Run the job once at ``when`` (absolute or natural-language time)."""
        self.attrs.next_run_at = parse_when(when, now=self.scheduler.now())
        return self

    def priority(self, priority: int | str) -> Job:
        self.attrs.priority = parse_priority(priority)
        return self

    def unique(self, unique: dict[str, Any], opts: dict[str, Any] | None = None) -> Job:
        """Data the store uses to keep a single record for this job."""
        self.attrs.unique = unique
        self.attrs.unique_opts = opts
        return self

    def disable(self) -> Job:
        self.attrs.disabled = True
        return self

    def enable(self) -> Job:
        self.attrs.disabled = False
        return self

    def compute_next_run_at(self) -> Job:
        """Recompute ``next_run_at`` from the repeat configuration.

        A recurrence that cannot be evaluated clears ``next_run_at`` and is
        recorded through fail().
        """
        now = self.scheduler.now()
        try:
            if self.attrs.repeat_interval:
                self.attrs.next_run_at = compute_from_interval(self.attrs, now=now)
                logger.debug("[%s:%s] nextRunAt set to [%s]", *self._tag, self.attrs.next_run_at)
            elif self.attrs.repeat_at:
                self.attrs.next_run_at = compute_from_repeat_at(self.attrs, now=now)
                logger.debug("[%s:%s] nextRunAt set to [%s]", *self._tag, self.attrs.next_run_at)
            else:
                self.attrs.next_run_at = None
        except Exception as exc:
            self.attrs.next_run_at = None
            self.fail(exc)
        return self

    # ------------------------------------------------------------------
    # Failure accounting
    # ------------------------------------------------------------------

    def fail(self, reason: Any) -> Job:
        """Record a failed attempt. Call at most once per attempt."""
        self.attrs.fail_reason = error_message(reason)
        self.attrs.fail_count = (self.attrs.fail_count or 0) + 1
        now = self.scheduler.now()
        self.attrs.failed_at = now
        self.attrs.last_finished_at = now
        logger.debug("[%s:%s] fail() called [%d] times so far", *self._tag, self.attrs.fail_count)
        return self

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _store(self) -> JobStore:
        await self.scheduler.ready()
        return self.scheduler.store

    async def save(self) -> Job:
        """Insert or update the full record in the store."""
        store = await self._store()
        self.attrs.last_modified_by = self.scheduler.name
        return await store.save_job(self)

    async def remove(self) -> int:
        """Delete this job's record from the store.

        An unsaved job has no record; nothing is removed.
        """
        if self.attrs.id is None:
            return 0
        return await self.scheduler.cancel(JobFilter(job_id=self.attrs.id))

    # ------------------------------------------------------------------
    # Liveness and lease
    # ------------------------------------------------------------------

    async def fetch_status(self) -> None:
        """Refresh the lease fields from the store.

        Raises:
            JobNotFoundError: If the job was never saved or the record is gone
                (e.g. removed after completion)
        """
        if self.attrs.id is None:
            raise JobNotFoundError(None)
        store = await self._store()
        records = await store.get_jobs(JobFilter(job_id=self.attrs.id))
        if not records:
            raise JobNotFoundError(self.attrs.id)
        record = records[0]
        self.attrs.last_run_at = record.last_run_at
        self.attrs.locked_at = record.locked_at
        self.attrs.last_finished_at = record.last_finished_at

    async def is_running(self) -> bool:
        """Whether an execution attempt is currently in flight.

        Running means a run started and never finished, or the job is locked
        and its last run started after the last finish.
        """
        if not self.by_job_processor:
            await self.fetch_status()

        last_run_at = to_datetime(self.attrs.last_run_at)
        last_finished_at = to_datetime(self.attrs.last_finished_at)
        if not last_run_at:
            return False
        if not last_finished_at:
            return True
        if self.attrs.locked_at and last_run_at > last_finished_at:
            return True
        return False

    def is_expired(self) -> bool:
        """Whether the lease is older than the definition's lock lifetime."""
        definition = self.scheduler.definitions.get(self.attrs.name)
        if definition is None:
            raise UndefinedJobTypeError(job_name=self.attrs.name)
        lock_deadline = self.scheduler.now() - definition.lock_lifetime
        locked_at = to_datetime(self.attrs.locked_at)
        return locked_at is not None and locked_at < lock_deadline

    async def is_dead(self) -> bool:
        if not self.by_job_processor:
            await self.fetch_status()
        return self.is_expired()

    async def touch(self, progress: float | None = None) -> None:
        """Heartbeat: extend the lease and record progress (0-100).

        Raises:
            JobCanceledError: If the job was canceled; the store is not touched
        """
        if self.canceled:
            raise JobCanceledError(f"job {self.attrs.name} got canceled already: {self.canceled}!")
        self.attrs.locked_at = self.scheduler.now()
        self.attrs.progress = progress
        store = await self._store()
        await store.save_job_state(self)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Execute the job once and persist the outcome.

        Never raises: handler failures, a missing definition and persistence
        problems all end up in failure accounting, the log, or both.
        """
        name = self.attrs.name
        events = self.scheduler.events
        definition = self.scheduler.definitions.get(name)

        try:
            self.attrs.last_run_at = self.scheduler.now()
            logger.debug("[%s:%s] setting lastRunAt to: %s", *self._tag, self.attrs.last_run_at)
            self.compute_next_run_at()
            store = await self._store()
            await store.save_job_state(self)

            events.emit(JobEvent.START, self)
            events.emit(JobEvent.START.for_job(name), self)
            logger.debug("[%s:%s] starting job", *self._tag)

            if definition is None:
                logger.debug("[%s:%s] has no definition, can not run", *self._tag)
                raise UndefinedJobTypeError(job_name=name)

            logger.debug("[%s:%s] process function being called", *self._tag)
            await self._invoke(definition.handler)

            self.attrs.last_finished_at = self.scheduler.now()
            events.emit(JobEvent.SUCCESS, self)
            events.emit(JobEvent.SUCCESS.for_job(name), self)
            logger.debug("[%s:%s] has succeeded", *self._tag)
        except Exception as exc:
            self.fail(exc)
            events.emit(JobEvent.FAIL, exc, self)
            events.emit(JobEvent.FAIL.for_job(name), exc, self)
            logger.debug("[%s:%s] has failed [%s]", *self._tag, error_message(exc))
        finally:
            self.attrs.locked_at = None
            try:
                store = await self._store()
                await store.save_job_state(self)
                logger.debug("[%s:%s] was saved successfully", *self._tag)
            except Exception as exc:
                # The record may have been removed while the job was running.
                logger.warning("[%s:%s] was not saved: %s", *self._tag, exc)
            events.emit(JobEvent.COMPLETE, self)
            events.emit(JobEvent.COMPLETE.for_job(name), self)
            logger.debug(
                "[%s:%s] job finished at [%s] and was unlocked", *self._tag, self.attrs.last_finished_at
            )

    async def _invoke(self, handler: JobHandlerFn) -> None:
        if not accepts_done_callback(handler):
            result = handler(self)
            if inspect.isawaitable(result):
                await result
            return

        loop = asyncio.get_running_loop()
        outcome: asyncio.Future[None] = loop.create_future()

        def done(error: Any = None) -> None:
            if outcome.done():
                return
            if error is None:
                outcome.set_result(None)
            elif isinstance(error, Exception):
                outcome.set_exception(error)
            else:
                outcome.set_exception(HandlerError(str(error)))

        def settle(task: asyncio.Future[Any]) -> None:
            if task.cancelled():
                done(HandlerError("job handler was cancelled"))
                return
            error = task.exception()
            if error is None:
                done()
            elif isinstance(error, Exception):
                done(error)
            else:
                done(HandlerError(str(error) or type(error).__name__))

        try:
            result = handler(self, done)
        except Exception as exc:
            done(exc)
        else:
            if inspect.isawaitable(result):
                # The handler may keep running after done(); hold it until it finishes.
                task = asyncio.ensure_future(result)
                self._handler_tasks.add(task)
                task.add_done_callback(self._handler_tasks.discard)
                task.add_done_callback(settle)

        await outcome


__all__ = ["Job", "DoneCallback", "accepts_done_callback"]
