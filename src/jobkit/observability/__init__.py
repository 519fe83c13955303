"""
Observability adapters for jobkit.

This module provides:
- JobTracingListener: OpenTelemetry span per job execution
"""

from .otel import OTEL_AVAILABLE, JobTracingListener

__all__ = [
    "OTEL_AVAILABLE",
    "JobTracingListener",
]
