"""
Shared test fixtures for jobkit tests.

This module provides:
- A frozen clock and an in-memory store
- A scheduler wired to both
- A recorder subscribed to the generic lifecycle channels
"""

from __future__ import annotations

import pytest

from jobkit.config import SchedulerConfig, Settings
from jobkit.jobs import InMemoryJobStore
from jobkit.scheduler import Scheduler
from tests._jobkit_testkit import FrozenClock, RecordingListener


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings() -> Settings:
    return Settings(scheduler=SchedulerConfig(name="test-scheduler"))


@pytest.fixture
def store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def scheduler(store: InMemoryJobStore, clock: FrozenClock, settings: Settings) -> Scheduler:
    return Scheduler(store=store, settings=settings, clock=clock)


@pytest.fixture
def recorder(scheduler: Scheduler) -> RecordingListener:
    """Listener subscribed to every generic lifecycle channel."""
    recording = RecordingListener()
    for channel in ("start", "success", "fail", "complete"):
        scheduler.on(channel, recording.for_channel(channel))
    return recording
