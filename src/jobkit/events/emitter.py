"""
Event emitter for job lifecycle notifications.

This module provides the JobEventEmitter used by the scheduler to announce
lifecycle transitions to any number of listeners.
"""

from __future__ import annotations

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from .types import JobEvent

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


def _channel(event: JobEvent | str) -> str:
    if isinstance(event, Enum):
        return str(event.value)
    return str(event)


@dataclass
class EventSubscription:
    """Registration of one listener on one channel."""
    event: str
    listener: Listener
    once: bool = False
    subscription_id: str = field(default_factory=lambda: str(uuid.uuid4()))


class JobEventEmitter:
    """Synchronous, best-effort event emitter.

    Listeners run in registration order inside ``emit``. A listener that
    raises is logged and skipped; ``emit`` itself never raises, so a broken
    listener cannot disturb job execution.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[EventSubscription]] = defaultdict(list)

    def on(self, event: JobEvent | str, listener: Listener) -> EventSubscription:
        """Register ``listener`` for every emission of ``event``."""
        subscription = EventSubscription(event=_channel(event), listener=listener)
        self._subscriptions[subscription.event].append(subscription)
        return subscription

    def once(self, event: JobEvent | str, listener: Listener) -> EventSubscription:
        """Register ``listener`` for the next emission of ``event`` only."""
        subscription = EventSubscription(event=_channel(event), listener=listener, once=True)
        self._subscriptions[subscription.event].append(subscription)
        return subscription

    def off(self, subscription: EventSubscription) -> bool:
        """Remove a subscription. Returns True if it was registered."""
        subscriptions = self._subscriptions.get(subscription.event)
        if not subscriptions or subscription not in subscriptions:
            return False
        subscriptions.remove(subscription)
        if not subscriptions:
            del self._subscriptions[subscription.event]
        return True

    def emit(self, event: JobEvent | str, *args: Any) -> bool:
        """Deliver ``args`` to every listener of ``event``.

        Returns True if at least one listener was registered.
        """
        channel = _channel(event)
        subscriptions = list(self._subscriptions.get(channel, ()))
        for subscription in subscriptions:
            if subscription.once:
                self.off(subscription)
            try:
                subscription.listener(*args)
            except Exception:
                logger.exception("Listener for %r raised; continuing", channel)
        return bool(subscriptions)

    def listener_count(self, event: JobEvent | str) -> int:
        return len(self._subscriptions.get(_channel(event), ()))

    def clear(self) -> None:
        """Remove every subscription."""
        self._subscriptions.clear()


__all__ = [
    "EventSubscription",
    "JobEventEmitter",
    "Listener",
]
