"""
Event system for jobkit.

This module provides lifecycle notifications:
- JobEvent: Lifecycle transition names
- JobEventEmitter: Synchronous listener registry
"""

from .types import JobEvent
from .emitter import (
    EventSubscription,
    JobEventEmitter,
    Listener,
)

__all__ = [
    "JobEvent",
    "EventSubscription",
    "JobEventEmitter",
    "Listener",
]
