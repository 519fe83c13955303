"""
Recurrence math for jobkit.

Two independent strategies compute a job's next eligible run time:

- compute_from_interval: cron expressions (via croniter) or human intervals
  such as "5 minutes" / "1 hour and 30 minutes" / a number of seconds
- compute_from_repeat_at: a fixed time of day such as "3:30pm" (via dateparser)

Both raise SchedulingComputationError when the configuration cannot be
evaluated. Results are timezone-aware UTC datetimes.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import dateparser
from croniter import croniter

from ..errors import SchedulingComputationError
from .types import JobAttributes, to_datetime, utcnow

INVALID_INTERVAL_MESSAGE = "failed to calculate nextRunAt due to invalid repeat interval"
INVALID_REPEAT_AT_MESSAGE = "failed to calculate repeatAt time due to invalid format"

_UNIT_SECONDS: dict[str, float] = {
    "ms": 0.001,
    "millisecond": 0.001,
    "milliseconds": 0.001,
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
    "d": 86400,
    "day": 86400,
    "days": 86400,
    "w": 604800,
    "week": 604800,
    "weeks": 604800,
    "month": 2592000,
    "months": 2592000,
    "y": 31536000,
    "year": 31536000,
    "years": 31536000,
}

_NUMBER_WORDS: dict[str, int] = {
    "a": 1,
    "an": 1,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
}

_TERM = re.compile(r"(\d+(?:\.\d+)?)\s*([a-z]+)|([a-z]+)\s+([a-z]+)")


def parse_interval(value: Any) -> timedelta:
    """Parse a human interval into a positive timedelta.

    Numbers are seconds. Strings combine "<amount> <unit>" terms, optionally
    joined by "and" or commas: "90 seconds", "1 hour and 30 minutes",
    "two days", "5m".

    Raises:
        SchedulingComputationError: If the value is not a usable interval
    """
    if isinstance(value, timedelta):
        total = value
    elif isinstance(value, bool):
        raise SchedulingComputationError(f"invalid interval: {value!r}")
    elif isinstance(value, (int, float)):
        total = timedelta(seconds=value)
    elif isinstance(value, str):
        total = _parse_interval_text(value)
    else:
        raise SchedulingComputationError(f"invalid interval: {value!r}")

    if total <= timedelta(0):
        raise SchedulingComputationError(f"interval must be positive: {value!r}")
    return total


def _parse_interval_text(value: str) -> timedelta:
    text = value.strip().lower()
    try:
        return timedelta(seconds=float(text))
    except ValueError:
        pass

    text = re.sub(r"\band\b|,", " ", text)
    total = timedelta(0)
    pos = 0
    matched = False
    for match in _TERM.finditer(text):
        if text[pos:match.start()].strip():
            raise SchedulingComputationError(f"invalid interval: {value!r}")
        pos = match.end()

        if match.group(1) is not None:
            amount = float(match.group(1))
            unit = match.group(2)
        else:
            word = match.group(3)
            if word not in _NUMBER_WORDS:
                raise SchedulingComputationError(f"invalid interval: {value!r}")
            amount = _NUMBER_WORDS[word]
            unit = match.group(4)

        if unit not in _UNIT_SECONDS:
            raise SchedulingComputationError(f"invalid interval: {value!r}")
        total += timedelta(seconds=amount * _UNIT_SECONDS[unit])
        matched = True

    if not matched or text[pos:].strip():
        raise SchedulingComputationError(f"invalid interval: {value!r}")
    return total


def resolve_timezone(name: str | None) -> ZoneInfo:
    """Return the zone for a recurrence, UTC when unset."""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise SchedulingComputationError(f"unknown timezone: {name}", cause=exc) from exc


def is_cron_expression(value: Any) -> bool:
    return isinstance(value, str) and croniter.is_valid(value.strip())


def _next_cron(expression: str, after: datetime, zone: ZoneInfo) -> datetime:
    """First cron fire time strictly after ``after``, evaluated in ``zone``."""
    base = after.astimezone(zone)
    nxt = croniter(expression.strip(), base).get_next(datetime)
    if nxt.tzinfo is None:
        nxt = nxt.replace(tzinfo=zone)
    return nxt.astimezone(timezone.utc)


def compute_from_interval(attrs: JobAttributes, now: datetime | None = None) -> datetime | None:
    """Next run time for a job with ``repeat_interval`` set.

    Returns None when ``end_date`` has passed, meaning the job stops recurring.
    """
    now = to_datetime(now) or utcnow()
    zone = resolve_timezone(attrs.repeat_timezone)
    interval = attrs.repeat_interval
    previous_next_run_at = to_datetime(attrs.next_run_at) or now
    last_run = to_datetime(attrs.last_run_at) or now
    start_date = to_datetime(attrs.start_date)
    end_date = to_datetime(attrs.end_date)

    try:
        if is_cron_expression(interval):
            next_run_at = _next_cron(interval, last_run, zone)
            if next_run_at == last_run or next_run_at <= previous_next_run_at:
                # Same slot handed back; move the reference past it.
                next_run_at = _next_cron(interval, last_run + timedelta(seconds=1), zone)
            if start_date and next_run_at < start_date:
                next_run_at = _next_cron(interval, start_date - timedelta(seconds=1), zone)
        else:
            step = parse_interval(interval)
            if attrs.last_run_at is None:
                next_run_at = last_run
            else:
                next_run_at = last_run + step
            if start_date and next_run_at < start_date:
                next_run_at = start_date

        if attrs.skip_days:
            next_run_at = next_run_at + parse_interval(attrs.skip_days)
    except SchedulingComputationError as exc:
        raise SchedulingComputationError(INVALID_INTERVAL_MESSAGE, cause=exc) from exc
    except (ValueError, KeyError, TypeError) as exc:
        raise SchedulingComputationError(INVALID_INTERVAL_MESSAGE, cause=exc) from exc

    if end_date and next_run_at > end_date:
        return None
    return next_run_at


def parse_natural_time(text: str, now: datetime, zone: ZoneInfo) -> datetime | None:
    """Interpret a natural-language time ("tomorrow at noon") relative to now."""
    settings = {
        "RELATIVE_BASE": now.astimezone(zone).replace(tzinfo=None),
        "TIMEZONE": zone.key,
        "TO_TIMEZONE": "UTC",
        "RETURN_AS_TIMEZONE_AWARE": True,
        "PREFER_DATES_FROM": "future",
    }
    parsed = dateparser.parse(text, settings=settings)
    if parsed is None:
        return None
    return to_datetime(parsed)


def compute_from_repeat_at(attrs: JobAttributes, now: datetime | None = None) -> datetime:
    """Next occurrence of ``repeat_at`` strictly after the last run."""
    now = to_datetime(now) or utcnow()
    zone = resolve_timezone(attrs.repeat_timezone)
    last_run = to_datetime(attrs.last_run_at) or now

    if not isinstance(attrs.repeat_at, str) or not attrs.repeat_at.strip():
        raise SchedulingComputationError(INVALID_REPEAT_AT_MESSAGE)
    candidate = parse_natural_time(attrs.repeat_at, now, zone)
    if candidate is None:
        raise SchedulingComputationError(INVALID_REPEAT_AT_MESSAGE)

    # Whole days in local wall time so DST shifts keep the time of day.
    local = candidate.astimezone(zone)
    while local.astimezone(timezone.utc) <= last_run:
        local = local + timedelta(days=1)
    return local.astimezone(timezone.utc)


def parse_when(when: Any, now: datetime | None = None) -> datetime:
    """Resolve an absolute or natural-language time to an aware UTC datetime.

    Raises:
        SchedulingComputationError: If neither reading succeeds
    """
    now = to_datetime(now) or utcnow()
    if isinstance(when, str):
        try:
            return to_datetime(when)
        except ValueError:
            parsed = parse_natural_time(when, now, resolve_timezone(None))
            if parsed is None:
                raise SchedulingComputationError(f"unable to parse time: {when!r}")
            return parsed
    try:
        result = to_datetime(when)
    except ValueError as exc:
        raise SchedulingComputationError(f"unable to parse time: {when!r}", cause=exc) from exc
    if result is None:
        raise SchedulingComputationError("a schedule time is required")
    return result


__all__ = [
    "INVALID_INTERVAL_MESSAGE",
    "INVALID_REPEAT_AT_MESSAGE",
    "compute_from_interval",
    "compute_from_repeat_at",
    "is_cron_expression",
    "parse_interval",
    "parse_natural_time",
    "parse_when",
    "resolve_timezone",
]
