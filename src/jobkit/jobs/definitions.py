"""
Job-type registry.

Maps a job name to the handler that processes it and the lock lifetime
other workers use to decide whether a lease has been abandoned.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable

from .priority import DEFAULT_PRIORITY

JobHandlerFn = Callable[..., Any]

DEFAULT_LOCK_LIFETIME = timedelta(minutes=10)


@dataclass(frozen=True)
class JobDefinition:
    """Registered processing rules for one job name."""
    name: str
    handler: JobHandlerFn
    lock_lifetime: timedelta = DEFAULT_LOCK_LIFETIME
    priority: int = DEFAULT_PRIORITY


class JobRegistry:
    """Name -> JobDefinition lookup shared by all jobs of a scheduler."""

    def __init__(self) -> None:
        self._definitions: dict[str, JobDefinition] = {}

    def define(self, definition: JobDefinition) -> JobDefinition:
        """Register (or replace) the definition for ``definition.name``."""
        self._definitions[definition.name] = definition
        return definition

    def get(self, name: str) -> JobDefinition | None:
        return self._definitions.get(name)

    def names(self) -> list[str]:
        return list(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)


__all__ = [
    "DEFAULT_LOCK_LIFETIME",
    "JobDefinition",
    "JobHandlerFn",
    "JobRegistry",
]
