"""
Scheduler context.

The Scheduler is the explicit dependency container every Job talks to: the
job store, the job-type registry, the event emitter, the clock and the
readiness gate that persistence calls wait on.

Example:
    ```python
    scheduler = Scheduler(store=InMemoryJobStore())

    async def send_report(job):
        ...

    scheduler.define("send report", send_report, lock_lifetime=timedelta(minutes=5))
    await scheduler.every("1 day", "send report", {"to": "ops@example.com"})
    ```
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable

from .config.settings import Settings, get_settings
from .errors import ConfigError
from .events import EventSubscription, JobEvent, JobEventEmitter, Listener
from .jobs.definitions import JobDefinition, JobHandlerFn, JobRegistry
from .jobs.job import Job
from .jobs.priority import parse_priority
from .jobs.recurrence import parse_interval
from .jobs.store import JobFilter, JobStore
from .jobs.types import SINGLE_JOB_TYPE, to_datetime, utcnow

if TYPE_CHECKING:
    from .observability import JobTracingListener

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class Scheduler:
    """Shared context for jobs: store, definitions, events, clock, readiness.

    Passing a ``store`` marks the scheduler ready immediately. Without one,
    persistence calls wait until ``attach_store()`` or ``open()`` runs.
    """

    def __init__(
        self,
        store: JobStore | None = None,
        *,
        settings: Settings | None = None,
        clock: Clock | None = None,
        name: str | None = None,
        events: JobEventEmitter | None = None,
    ):
        self.settings = settings or get_settings()
        self.name = name or self.settings.scheduler.name
        self.default_lock_lifetime: timedelta = self.settings.scheduler.default_lock_lifetime
        self.default_priority = parse_priority(self.settings.scheduler.default_priority)
        self.definitions = JobRegistry()
        self.events = events or JobEventEmitter()
        self._clock = clock or utcnow
        self._store: JobStore | None = None
        self._ready = asyncio.Event()
        self.tracing: JobTracingListener | None = None
        if store is not None:
            self.attach_store(store)

    def __repr__(self) -> str:
        return f"<Scheduler name={self.name!r} ready={self._ready.is_set()}>"

    # ------------------------------------------------------------------
    # Readiness and store lifecycle
    # ------------------------------------------------------------------

    @property
    def store(self) -> JobStore:
        if self._store is None:
            raise ConfigError("Scheduler has no job store attached")
        return self._store

    @property
    def is_ready(self) -> bool:
        return self._ready.is_set()

    async def ready(self) -> None:
        """Wait until a job store is attached."""
        await self._ready.wait()

    def attach_store(self, store: JobStore) -> None:
        self._store = store
        self._ready.set()
        logger.debug("Scheduler %s attached store %s", self.name, type(store).__name__)

    async def open(self) -> Scheduler:
        """Build the store from ``settings.storage`` unless one is attached.

        Also starts job tracing when ``settings.telemetry.enabled`` is set.
        """
        if self._store is None:
            from .storage import create_store

            self.attach_store(await create_store(self.settings.storage))
        if self.settings.telemetry.enabled and self.tracing is None:
            self._start_tracing()
        return self

    def _start_tracing(self) -> None:
        from .observability import OTEL_AVAILABLE, JobTracingListener

        if not OTEL_AVAILABLE:
            logger.warning("Telemetry is enabled but opentelemetry-api is not installed; job tracing is off")
            return
        self.tracing = JobTracingListener(self, self.settings.telemetry)
        self.tracing.start()
        logger.debug("Scheduler %s tracing job runs as %s", self.name, self.settings.telemetry.tracer_name)

    async def close(self) -> None:
        """Stop tracing, release backend connections and reset readiness."""
        if self.tracing is not None:
            self.tracing.stop()
            self.tracing = None
        if self._store is not None:
            await self._store.close()
        self._store = None
        self._ready.clear()

    async def __aenter__(self) -> Scheduler:
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        return to_datetime(self._clock())

    # ------------------------------------------------------------------
    # Definitions and events
    # ------------------------------------------------------------------

    def define(
        self,
        name: str,
        handler: JobHandlerFn,
        *,
        lock_lifetime: timedelta | str | float | None = None,
        priority: int | str | None = None,
    ) -> JobDefinition:
        """Register the handler for jobs called ``name``.

        ``lock_lifetime`` is how long a lease may go without a heartbeat
        before other workers consider the job dead.
        """
        if lock_lifetime is None:
            lifetime = self.default_lock_lifetime
        elif isinstance(lock_lifetime, timedelta):
            lifetime = lock_lifetime
        else:
            lifetime = parse_interval(lock_lifetime)
        definition = JobDefinition(
            name=name,
            handler=handler,
            lock_lifetime=lifetime,
            priority=self.default_priority if priority is None else parse_priority(priority),
        )
        logger.debug("job [%s] defined with lock lifetime %s", name, lifetime)
        return self.definitions.define(definition)

    def on(self, event: JobEvent | str, listener: Listener) -> EventSubscription:
        return self.events.on(event, listener)

    def once(self, event: JobEvent | str, listener: Listener) -> EventSubscription:
        return self.events.once(event, listener)

    def off(self, subscription: EventSubscription) -> bool:
        return self.events.off(subscription)

    def emit(self, event: JobEvent | str, *args: Any) -> bool:
        return self.events.emit(event, *args)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    def create(self, name: str, data: Any = None) -> Job:
        """Build an unsaved job; priority comes from the definition if any."""
        definition = self.definitions.get(name)
        priority = definition.priority if definition else self.default_priority
        return Job(self, {"name": name, "data": data, "priority": priority})

    async def jobs(self, filter: JobFilter | None = None) -> list[Job]:
        """Load matching records as client-side Job handles."""
        await self.ready()
        return [Job(self, record) for record in await self.store.get_jobs(filter)]

    async def cancel(self, filter: JobFilter | None = None) -> int:
        """Remove matching records. Returns the number removed."""
        await self.ready()
        removed = await self.store.remove_jobs(filter)
        logger.debug("%d jobs cancelled", removed)
        return removed

    async def now_job(self, name: str, data: Any = None) -> Job:
        """Save a job that is due immediately."""
        job = self.create(name, data)
        job.schedule(self.now())
        return await job.save()

    async def schedule(self, when: Any, name: str, data: Any = None) -> Job:
        """Save a one-off job due at ``when``."""
        job = self.create(name, data)
        job.schedule(when)
        return await job.save()

    async def every(
        self,
        interval: str | int | float | timedelta,
        name: str,
        data: Any = None,
        **options: Any,
    ) -> Job:
        """Save a recurring job; one record per name.

        ``options`` are passed to Job.repeat_every (timezone, skip_immediate,
        start_date, end_date, skip_days).
        """
        job = self.create(name, data)
        job.attrs.type = SINGLE_JOB_TYPE
        job.repeat_every(interval, **options)
        return await job.save()


__all__ = ["Scheduler", "Clock"]
