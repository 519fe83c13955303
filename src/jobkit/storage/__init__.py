"""
Storage adapters for jobkit.

This module provides persistent JobStore implementations:
- PostgresJobStore: Durable storage (asyncpg)
- RedisJobStore: Fast shared storage (redis.asyncio)

and create_store(), which builds the backend selected by StorageConfig.
"""

from __future__ import annotations

from ..config.scheduler import StorageConfig
from ..jobs.store import InMemoryJobStore, JobStore
from .postgres import ASYNCPG_AVAILABLE, PostgresJobStore
from .redis import REDIS_AVAILABLE, RedisJobStore


async def create_store(config: StorageConfig) -> JobStore:
    """Build (and connect) the job store selected by ``config.backend``."""
    config.validate_backend()
    if config.backend == "postgres":
        return await PostgresJobStore.connect(config.pg_dsn, table_name=config.table_name)
    if config.backend == "redis":
        return RedisJobStore.from_url(config.redis_url, key_prefix=config.key_prefix)
    return InMemoryJobStore()


__all__ = [
    "ASYNCPG_AVAILABLE",
    "REDIS_AVAILABLE",
    "PostgresJobStore",
    "RedisJobStore",
    "create_store",
]
