"""
Error taxonomy for jobkit.

This module provides a hierarchical exception system with:
- Error codes for programmatic handling
- Structured context for debugging
- A single base class so callers can catch everything jobkit raises
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standardized error codes for jobkit."""

    # Registry errors (1xxx)
    UNDEFINED_JOB_TYPE = "ERR_1001"
    JOB_NOT_FOUND = "ERR_1002"

    # Execution errors (2xxx)
    HANDLER_ERROR = "ERR_2000"

    # Scheduling errors (3xxx)
    SCHEDULING_ERROR = "ERR_3000"

    # Lease errors (4xxx)
    JOB_CANCELED = "ERR_4000"

    # Storage errors (5xxx)
    PERSISTENCE_ERROR = "ERR_5000"

    # Configuration errors (6xxx)
    CONFIG_ERROR = "ERR_6000"

    # Internal errors (9xxx)
    INTERNAL_ERROR = "ERR_9000"


@dataclass
class ErrorContext:
    """Structured context for error debugging."""

    job_id: str | None = None
    job_name: str | None = None
    operation: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "job_name": self.job_name,
            "operation": self.operation,
            **self.extra,
        }


class JobkitError(Exception):
    """
    Base exception for all jobkit errors.

    Attributes:
        code: Standardized error code for programmatic handling
        message: Human-readable error message
        context: Structured debugging context
        cause: Original exception that caused this error
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = context or ErrorContext()
        self.cause = cause

    def __str__(self) -> str:
        parts = [f"[{self.code.value}] {self.message}"]
        if self.context.job_id:
            parts.append(f"(job_id={self.context.job_id})")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "context": self.context.to_dict(),
            "cause": str(self.cause) if self.cause else None,
        }


# =============================================================================
# Registry Errors
# =============================================================================


class UndefinedJobTypeError(JobkitError):
    """No handler is registered for the job's name."""

    code = ErrorCode.UNDEFINED_JOB_TYPE

    def __init__(
        self,
        message: str = "Undefined job",
        *,
        job_name: str | None = None,
        **kwargs,
    ):
        super().__init__(message, **kwargs)
        if job_name is not None:
            self.context.job_name = job_name


class JobNotFoundError(JobkitError):
    """The job record no longer exists in the store."""

    code = ErrorCode.JOB_NOT_FOUND

    def __init__(self, job_id: str | None, **kwargs):
        super().__init__(f"job with id {job_id} not found in database", **kwargs)
        self.job_id = job_id
        self.context.job_id = job_id


# =============================================================================
# Execution Errors
# =============================================================================


class HandlerError(JobkitError):
    """A job handler reported a failure that was not itself an exception."""

    code = ErrorCode.HANDLER_ERROR


class SchedulingComputationError(JobkitError):
    """A recurrence or schedule expression could not be evaluated."""

    code = ErrorCode.SCHEDULING_ERROR


class JobCanceledError(JobkitError):
    """A heartbeat was attempted after the job was canceled."""

    code = ErrorCode.JOB_CANCELED


# =============================================================================
# Storage / Configuration Errors
# =============================================================================


class PersistenceError(JobkitError):
    """A storage backend operation failed."""

    code = ErrorCode.PERSISTENCE_ERROR


class ConfigError(JobkitError, ValueError):
    """Settings are missing or inconsistent."""

    code = ErrorCode.CONFIG_ERROR


def error_message(reason: Any) -> Any:
    """Extract the message jobkit records for a failure reason.

    jobkit errors contribute their bare ``message``, other exceptions their
    ``str()``; anything else is returned unchanged.
    """
    if isinstance(reason, JobkitError):
        return reason.message
    if isinstance(reason, BaseException):
        return str(reason)
    return reason


__all__ = [
    "ErrorCode",
    "ErrorContext",
    "JobkitError",
    "UndefinedJobTypeError",
    "JobNotFoundError",
    "HandlerError",
    "SchedulingComputationError",
    "JobCanceledError",
    "PersistenceError",
    "ConfigError",
    "error_message",
]
