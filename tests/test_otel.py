"""Tests for the OpenTelemetry job tracing listener."""

from __future__ import annotations

import pytest

pytest.importorskip("opentelemetry.sdk")

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from jobkit.config import SchedulerConfig, Settings, StorageConfig, TelemetryConfig
from jobkit.events import JobEvent
from jobkit.observability import JobTracingListener
from jobkit.scheduler import Scheduler


@pytest.fixture
def exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracing(scheduler, exporter):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    listener = JobTracingListener(
        scheduler,
        TelemetryConfig(enabled=True, tracer_name="jobkit.tests"),
        tracer_provider=provider,
    )
    listener.start()
    yield listener
    listener.stop()


class TestJobTracingListener:
    """Test span creation from lifecycle events."""

    @pytest.mark.asyncio
    async def test_successful_run(self, scheduler, tracing, exporter):
        """A successful run produces one OK span."""
        scheduler.define("report", lambda job: None, priority="high")
        job = await scheduler.create("report").save()

        await job.run()

        spans = exporter.get_finished_spans()
        assert len(spans) == 1
        span = spans[0]
        assert span.name == "job.run"
        assert span.attributes["job.name"] == "report"
        assert span.attributes["job.id"] == job.attrs.id
        assert span.attributes["job.priority"] == 10
        assert span.attributes["job.fail_count"] == 0
        assert span.status.status_code == StatusCode.OK
        assert tracing.active_spans == 0

    @pytest.mark.asyncio
    async def test_failed_run(self, scheduler, tracing, exporter):
        """A failed run marks the span as errored and records the exception."""
        def handler(job):
            raise ValueError("disk full")

        scheduler.define("report", handler)
        job = await scheduler.create("report").save()

        await job.run()

        span = exporter.get_finished_spans()[0]
        assert span.status.status_code == StatusCode.ERROR
        assert span.status.description == "disk full"
        assert span.attributes["job.fail_reason"] == "disk full"
        assert span.attributes["job.fail_count"] == 1
        assert [event.name for event in span.events] == ["exception"]

    @pytest.mark.asyncio
    async def test_stop_ends_open_spans(self, scheduler, tracing, exporter):
        """Stopping ends in-flight spans and unsubscribes."""
        job = scheduler.create("report")
        scheduler.emit(JobEvent.START, job)
        assert tracing.active_spans == 1

        tracing.stop()

        assert tracing.active_spans == 0
        assert len(exporter.get_finished_spans()) == 1
        scheduler.emit(JobEvent.START, job)
        assert tracing.active_spans == 0

    def test_start_is_idempotent(self, scheduler, tracing):
        """Calling start twice does not double-subscribe."""
        tracing.start()
        assert scheduler.events.listener_count(JobEvent.START) == 1


class TestSchedulerTelemetry:
    """Test tracing started by the scheduler from settings."""

    @pytest.mark.asyncio
    async def test_enabled_telemetry_starts_and_stops_listener(self):
        """open() subscribes a tracing listener and close() removes it."""
        settings = Settings(
            scheduler=SchedulerConfig(name="s"),
            storage=StorageConfig(backend="memory"),
            telemetry=TelemetryConfig(enabled=True),
        )
        scheduler = Scheduler(settings=settings)

        async with scheduler:
            assert isinstance(scheduler.tracing, JobTracingListener)
            assert scheduler.events.listener_count(JobEvent.START) == 1
            await scheduler.open()
            assert scheduler.events.listener_count(JobEvent.START) == 1

        assert scheduler.tracing is None
        assert scheduler.events.listener_count(JobEvent.START) == 0
