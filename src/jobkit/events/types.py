"""
Event types for jobkit.

Lifecycle notifications are emitted twice per transition: once on the
generic channel (``"start"``) and once on the job-specific channel
(``"start:<job name>"``).
"""

from __future__ import annotations

from enum import Enum


class JobEvent(str, Enum):
    """Lifecycle transitions announced by Job.run().

    ``FAIL`` listeners receive ``(error, job)``, all others ``(job)``.
    """
    START = "start"
    SUCCESS = "success"
    FAIL = "fail"
    COMPLETE = "complete"

    def for_job(self, name: str) -> str:
        """Channel name scoped to one job name."""
        return f"{self.value}:{name}"


__all__ = ["JobEvent"]
