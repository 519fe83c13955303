"""
Test helpers shared across jobkit tests.

This module provides:
- EPOCH: Fixed start time for frozen clocks
- FrozenClock: Deterministic, manually advanced clock
- RecordingListener: Captures lifecycle emissions in order
- FakeRedis / FakePool: Minimal async stand-ins for backend clients
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

EPOCH = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = EPOCH):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: Any) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


class RecordingListener:
    """Collects (channel, args) pairs in emission order."""

    def __init__(self):
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def for_channel(self, channel: str):
        def listener(*args: Any) -> None:
            self.calls.append((channel, args))

        return listener

    @property
    def channels(self) -> list[str]:
        return [channel for channel, _ in self.calls]


# =============================================================================
# Redis fake
# =============================================================================


class FakeRedisPipeline:
    """Pipeline supporting the WATCH -> reads -> MULTI -> buffered writes flow."""

    def __init__(self, client: FakeRedis):
        self._client = client
        self._buffered: list[tuple[str, tuple[Any, ...]]] = []
        self._in_multi = False

    async def hget(self, key: str, field: str) -> Any:
        return await self._client.hget(key, field)

    async def hvals(self, key: str) -> list[Any]:
        return await self._client.hvals(key)

    def multi(self) -> None:
        self._in_multi = True

    def hset(self, key: str, field: str, value: Any) -> FakeRedisPipeline:
        assert self._in_multi, "writes must be buffered after multi()"
        self._buffered.append(("hset", (key, field, value)))
        return self

    async def execute(self) -> list[Any]:
        results = []
        for command, args in self._buffered:
            results.append(await getattr(self._client, command)(*args))
        self._buffered.clear()
        return results


class FakeRedis:
    """In-memory subset of the redis.asyncio.Redis hash API."""

    def __init__(self):
        self.hashes: dict[str, dict[str, str]] = {}
        self.transactions = 0
        self.closed = False

    async def hget(self, key: str, field: str) -> Any:
        return self.hashes.get(key, {}).get(field)

    async def hset(self, key: str, field: str, value: Any) -> int:
        bucket = self.hashes.setdefault(key, {})
        created = field not in bucket
        bucket[field] = value
        return int(created)

    async def hvals(self, key: str) -> list[Any]:
        return list(self.hashes.get(key, {}).values())

    async def hlen(self, key: str) -> int:
        return len(self.hashes.get(key, {}))

    async def hdel(self, key: str, *fields: str) -> int:
        bucket = self.hashes.get(key, {})
        removed = 0
        for field in fields:
            if bucket.pop(field, None) is not None:
                removed += 1
        return removed

    async def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.hashes.pop(key, None) is not None)

    async def transaction(self, func, *watches: str, value_from_callable: bool = False, **kwargs: Any) -> Any:
        self.transactions += 1
        pipe = FakeRedisPipeline(self)
        result = await func(pipe)
        executed = await pipe.execute()
        return result if value_from_callable else executed

    async def aclose(self) -> None:
        self.closed = True

    def document(self, key: str, field: str) -> dict[str, Any]:
        return json.loads(self.hashes[key][field])


# =============================================================================
# asyncpg fake
# =============================================================================


class FakeConnection:
    """Records statements; answers queries from a scripted queue."""

    def __init__(self, pool: FakePool):
        self._pool = pool

    async def execute(self, query: str, *args: Any) -> str:
        self._pool.executed.append((" ".join(query.split()), args))
        return self._pool.next_status(query)

    async def fetch(self, query: str, *args: Any) -> list[Any]:
        self._pool.executed.append((" ".join(query.split()), args))
        return self._pool.fetch_results.pop(0) if self._pool.fetch_results else []

    async def fetchrow(self, query: str, *args: Any) -> Any:
        self._pool.executed.append((" ".join(query.split()), args))
        return self._pool.fetchrow_results.pop(0) if self._pool.fetchrow_results else None

    def transaction(self) -> FakeTransaction:
        return FakeTransaction(self._pool)


class FakeTransaction:
    def __init__(self, pool: FakePool):
        self._pool = pool

    async def __aenter__(self) -> FakeTransaction:
        self._pool.transactions += 1
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakeAcquire:
    def __init__(self, pool: FakePool):
        self._pool = pool

    async def __aenter__(self) -> FakeConnection:
        return FakeConnection(self._pool)

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class FakePool:
    """Stand-in for asyncpg.Pool."""

    def __init__(self):
        self.executed: list[tuple[str, tuple[Any, ...]]] = []
        self.fetch_results: list[list[Any]] = []
        self.fetchrow_results: list[Any] = []
        self.statuses: dict[str, str] = {}
        self.transactions = 0
        self.closed = False

    def acquire(self) -> FakeAcquire:
        return FakeAcquire(self)

    def next_status(self, query: str) -> str:
        verb = query.strip().split()[0].upper()
        return self.statuses.get(verb, f"{verb} 1")

    async def close(self) -> None:
        self.closed = True

    def statements(self, verb: str) -> list[tuple[str, tuple[Any, ...]]]:
        return [(q, args) for q, args in self.executed if q.upper().startswith(verb)]
