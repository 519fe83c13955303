"""Priority name resolution."""

from __future__ import annotations

from typing import Any

PRIORITY_LEVELS: dict[str, int] = {
    "lowest": -20,
    "low": -10,
    "normal": 0,
    "high": 10,
    "highest": 20,
}

DEFAULT_PRIORITY = PRIORITY_LEVELS["normal"]


def parse_priority(priority: Any) -> int:
    """Resolve a numeric or named priority to its ordering value.

    Unknown names, ``None`` and values of other types resolve to ``normal``.
    """
    if priority is None or isinstance(priority, bool):
        return DEFAULT_PRIORITY
    if isinstance(priority, int):
        return priority
    if isinstance(priority, float):
        return int(priority)
    if isinstance(priority, str):
        text = priority.strip().lower()
        if text in PRIORITY_LEVELS:
            return PRIORITY_LEVELS[text]
        try:
            return int(text)
        except ValueError:
            return DEFAULT_PRIORITY
    return DEFAULT_PRIORITY


__all__ = ["PRIORITY_LEVELS", "DEFAULT_PRIORITY", "parse_priority"]
