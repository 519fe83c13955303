"""
OpenTelemetry integration for jobkit.

Opens one ``job.run`` span per execution attempt, driven by the scheduler's
lifecycle events:
- start: span opened with the job's name, id and priority
- fail: span marked as errored, exception recorded
- complete: final fail count recorded, span ended
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

try:
    from opentelemetry import trace
    from opentelemetry.trace import SpanKind, Status, StatusCode, Span
    OTEL_AVAILABLE = True
except ImportError:
    OTEL_AVAILABLE = False
    trace = None  # type: ignore
    SpanKind = None  # type: ignore
    Status = None  # type: ignore
    StatusCode = None  # type: ignore
    Span = Any  # type: ignore

from ..config.logging import TelemetryConfig
from ..errors import error_message
from ..events import EventSubscription, JobEvent

if TYPE_CHECKING:
    from ..jobs.job import Job
    from ..scheduler import Scheduler

logger = logging.getLogger(__name__)


def _require_otel() -> None:
    """Raise ImportError if opentelemetry is not available."""
    if not OTEL_AVAILABLE:
        raise ImportError(
            "OpenTelemetry integration requires opentelemetry-api. "
            "Install with: pip install opentelemetry-api opentelemetry-sdk"
        )


class JobTracingListener:
    """Traces job executions as OpenTelemetry spans.

    Example:
        ```python
        from opentelemetry import trace
        from opentelemetry.sdk.trace import TracerProvider

        trace.set_tracer_provider(TracerProvider())

        tracing = JobTracingListener(scheduler)
        tracing.start()
        # ... run jobs ...
        tracing.stop()
        ```
    """

    def __init__(
        self,
        scheduler: Scheduler,
        config: TelemetryConfig | None = None,
        *,
        tracer_provider: Any = None,
    ):
        _require_otel()

        self._config = config or TelemetryConfig()
        self._scheduler = scheduler
        self._tracer = trace.get_tracer(self._config.tracer_name, tracer_provider=tracer_provider)

        # Keyed by Job instance identity; ids may be unassigned.
        self._spans: dict[int, Span] = {}
        self._failed: set[int] = set()
        self._subscriptions: list[EventSubscription] = []

    @property
    def active_spans(self) -> int:
        return len(self._spans)

    def start(self) -> None:
        """Start listening to lifecycle events."""
        if self._subscriptions:
            return
        self._subscriptions = [
            self._scheduler.on(JobEvent.START, self._on_start),
            self._scheduler.on(JobEvent.FAIL, self._on_fail),
            self._scheduler.on(JobEvent.COMPLETE, self._on_complete),
        ]

    def stop(self) -> None:
        """Stop listening and end any open spans."""
        for subscription in self._subscriptions:
            self._scheduler.off(subscription)
        self._subscriptions = []

        for span in list(self._spans.values()):
            span.end()
        self._spans.clear()
        self._failed.clear()

    def _on_start(self, job: Job) -> None:
        span = self._tracer.start_span(
            "job.run",
            kind=SpanKind.INTERNAL,
            attributes={
                "job.name": job.attrs.name,
                "job.id": job.attrs.id or "",
                "job.priority": job.attrs.priority,
            },
        )
        self._spans[id(job)] = span

    def _on_fail(self, error: Any, job: Job) -> None:
        span = self._spans.get(id(job))
        if span is None:
            return
        self._failed.add(id(job))
        message = str(error_message(error))
        span.set_status(Status(StatusCode.ERROR, message))
        span.set_attribute("job.fail_reason", message)
        if isinstance(error, BaseException):
            span.record_exception(error)

    def _on_complete(self, job: Job) -> None:
        span = self._spans.pop(id(job), None)
        if span is None:
            return
        span.set_attribute("job.fail_count", job.attrs.fail_count)
        if id(job) not in self._failed:
            span.set_status(Status(StatusCode.OK))
        self._failed.discard(id(job))
        span.end()
        logger.debug("[%s:%s] span ended", job.attrs.name, job.attrs.id)


__all__ = ["JobTracingListener", "OTEL_AVAILABLE"]
