"""
Redis job store.

All jobs live in one hash (``<prefix>:jobs``) mapping job id to a JSON
document. Writes that depend on the current contents (state saves, single and
unique upserts) run as optimistic WATCH/MULTI transactions on that hash.

Requires redis (async): pip install redis

Redis is designed for speed, not durability. Persisted jobs can be lost on a
restart unless AOF/RDB persistence is configured; prefer PostgresJobStore for
jobs that must never be dropped.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

try:
    import redis.asyncio as redis
    REDIS_AVAILABLE = True
except ImportError:
    redis = None  # type: ignore
    REDIS_AVAILABLE = False

from ..errors import ErrorContext, PersistenceError
from ..jobs.store import JobFilter, JobStore, matches_unique, missing_record_error, new_job_id
from ..jobs.types import SINGLE_JOB_TYPE, STATE_FIELDS, JobAttributes, to_datetime

if TYPE_CHECKING:
    from ..jobs.job import Job


def _require_redis() -> None:
    """Raise ImportError if redis is not available."""
    if not REDIS_AVAILABLE:
        raise ImportError(
            "Redis storage requires redis. "
            "Install with: pip install redis"
        )


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    return str(value)


def encode_document(attrs: JobAttributes) -> str:
    return json.dumps(attrs.to_dict(), default=_json_default)


def decode_document(raw: str | bytes) -> JobAttributes:
    return JobAttributes.from_dict(json.loads(raw))


class RedisJobStore(JobStore):
    """Redis-backed job store.

    Example:
        ```python
        store = RedisJobStore(redis.from_url("redis://localhost:6379/0"))
        scheduler = Scheduler(store=store)
        ```
    """

    def __init__(
        self,
        client: Any,  # redis.Redis
        key_prefix: str = "jobkit",
        *,
        owns_client: bool = False,
    ):
        _require_redis()
        self._client = client
        self._prefix = key_prefix
        self._owns_client = owns_client

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "jobkit") -> RedisJobStore:
        """Create a client for ``url``; the store closes it on close()."""
        _require_redis()
        return cls(redis.from_url(url, decode_responses=True), key_prefix, owns_client=True)

    @property
    def jobs_key(self) -> str:
        return f"{self._prefix}:jobs"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _wrap(self, operation: str, exc: Exception) -> PersistenceError:
        return PersistenceError(
            f"{operation} failed: {exc}",
            context=ErrorContext(operation=operation),
            cause=exc,
        )

    async def get_jobs(self, filter: JobFilter | None = None) -> list[JobAttributes]:
        try:
            if filter and filter.job_id is not None:
                raw = await self._client.hget(self.jobs_key, filter.job_id)
                documents = [raw] if raw else []
            else:
                documents = await self._client.hvals(self.jobs_key)
        except redis.RedisError as exc:
            raise self._wrap("get_jobs", exc) from exc

        records = [decode_document(raw) for raw in documents]
        records = [r for r in records if not filter or filter.matches(r)]
        if filter and filter.limit is not None:
            records = records[:filter.limit]
        return records

    async def save_job(self, job: Job) -> Job:
        attrs = job.attrs

        if attrs.id is not None:
            try:
                await self._client.hset(self.jobs_key, attrs.id, encode_document(attrs))
            except redis.RedisError as exc:
                raise self._wrap("save_job", exc) from exc
            return job

        if attrs.type != SINGLE_JOB_TYPE and not attrs.unique:
            attrs.id = new_job_id()
            try:
                await self._client.hset(self.jobs_key, attrs.id, encode_document(attrs))
            except redis.RedisError as exc:
                raise self._wrap("save_job", exc) from exc
            return job

        async def upsert(pipe: Any) -> str:
            existing = None
            for raw in await pipe.hvals(self.jobs_key):
                record = decode_document(raw)
                if attrs.type == SINGLE_JOB_TYPE:
                    if record.type == SINGLE_JOB_TYPE and record.name == attrs.name:
                        existing = record
                        break
                elif matches_unique(record, attrs.unique):
                    existing = record
                    break

            if existing is None:
                document = JobAttributes.from_dict(attrs.to_dict())
                document.id = new_job_id()
            elif attrs.type != SINGLE_JOB_TYPE and (attrs.unique_opts or {}).get("insert_only"):
                return existing.id
            else:
                document = JobAttributes.from_dict(attrs.to_dict())
                document.id = existing.id
                next_run_at = to_datetime(attrs.next_run_at)
                if attrs.type == SINGLE_JOB_TYPE and next_run_at is not None and next_run_at <= job.scheduler.now():
                    # Already due: keep the stored schedule instead of resetting it.
                    document.next_run_at = existing.next_run_at

            pipe.multi()
            pipe.hset(self.jobs_key, document.id, encode_document(document))
            return document.id

        try:
            attrs.id = await self._client.transaction(upsert, self.jobs_key, value_from_callable=True)
        except redis.RedisError as exc:
            raise self._wrap("save_job", exc) from exc
        return job

    async def save_job_state(self, job: Job) -> None:
        attrs = job.attrs
        if attrs.id is None:
            raise missing_record_error(attrs)

        async def update(pipe: Any) -> None:
            raw = await pipe.hget(self.jobs_key, attrs.id)
            record = decode_document(raw) if raw else None
            if record is None or record.name != attrs.name:
                raise missing_record_error(attrs)
            for key in STATE_FIELDS:
                setattr(record, key, getattr(attrs, key))
            pipe.multi()
            pipe.hset(self.jobs_key, attrs.id, encode_document(record))

        try:
            await self._client.transaction(update, self.jobs_key)
        except redis.RedisError as exc:
            raise self._wrap("save_job_state", exc) from exc

    async def remove_jobs(self, filter: JobFilter | None = None) -> int:
        try:
            if filter is None:
                count = await self._client.hlen(self.jobs_key)
                await self._client.delete(self.jobs_key)
                return int(count)
            doomed = [r.id for r in await self.get_jobs(JobFilter(job_id=filter.job_id, name=filter.name, disabled=filter.disabled))]
            if not doomed:
                return 0
            return int(await self._client.hdel(self.jobs_key, *doomed))
        except redis.RedisError as exc:
            raise self._wrap("remove_jobs", exc) from exc


__all__ = ["RedisJobStore", "REDIS_AVAILABLE", "encode_document", "decode_document"]
