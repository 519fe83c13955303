"""
Job types for jobkit.

This module defines the JobAttributes dataclass that holds the persisted
state of one job, plus the timestamp helpers shared by the engine and the
storage backends.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from typing import Any

# Fields that always hold timestamps once normalized.
DATE_FIELDS: tuple[str, ...] = (
    "next_run_at",
    "last_run_at",
    "last_finished_at",
    "locked_at",
    "failed_at",
    "start_date",
    "end_date",
)

# Fields written by save_job_state(); everything else is only written by save_job().
STATE_FIELDS: tuple[str, ...] = (
    "locked_at",
    "next_run_at",
    "last_run_at",
    "progress",
    "fail_reason",
    "fail_count",
    "failed_at",
    "last_finished_at",
)

DEFAULT_JOB_TYPE = "normal"
SINGLE_JOB_TYPE = "single"


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_datetime(value: Any) -> datetime | None:
    """Coerce a loosely typed timestamp into an aware UTC datetime.

    Accepts datetimes (naive ones are taken as UTC), epoch seconds and
    ISO-8601 strings. ``None`` stays ``None``.

    Raises:
        ValueError: If the value cannot be read as a timestamp
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, bool):
        raise ValueError(f"Not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(float(value), tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        return to_datetime(datetime.fromisoformat(text))
    raise ValueError(f"Not a timestamp: {value!r}")


@dataclass
class JobAttributes:
    """Persistent state of one schedulable unit of work.

    ``id`` is assigned by the store on first save. ``next_run_at`` of ``None``
    means the job will not run again.
    """

    # Identity
    name: str
    id: str | None = None
    type: str = DEFAULT_JOB_TYPE

    # Payload
    priority: int = 0
    data: Any = None

    # Schedule
    next_run_at: datetime | None = None
    disabled: bool = False
    repeat_interval: str | int | float | timedelta | None = None
    repeat_timezone: str | None = None
    repeat_at: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    skip_days: str | int | float | timedelta | None = None

    # Execution / lease
    last_run_at: datetime | None = None
    last_finished_at: datetime | None = None
    locked_at: datetime | None = None
    progress: float | None = None

    # Failure accounting
    fail_count: int = 0
    fail_reason: str | None = None
    failed_at: datetime | None = None

    # Uniqueness (enforced by the store)
    unique: dict[str, Any] | None = None
    unique_opts: dict[str, Any] | None = None

    last_modified_by: str | None = None

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(f.name for f in fields(cls))

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary without copying values."""
        return {name: getattr(self, name) for name in self.field_names()}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobAttributes:
        """Deserialize from a stored document.

        Date fields are normalized with ``to_datetime``; keys that are not
        attributes (storage bookkeeping) are ignored.
        """
        known = set(cls.field_names())
        values = {k: v for k, v in data.items() if k in known}
        for key in DATE_FIELDS:
            if key in values:
                values[key] = to_datetime(values[key])
        if values.get("fail_count") is None:
            values["fail_count"] = 0
        if values.get("disabled") is None:
            values["disabled"] = False
        return cls(**values)


__all__ = [
    "DATE_FIELDS",
    "STATE_FIELDS",
    "DEFAULT_JOB_TYPE",
    "SINGLE_JOB_TYPE",
    "JobAttributes",
    "to_datetime",
    "utcnow",
]
