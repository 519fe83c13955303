"""
PostgreSQL job store.

One row per job. Columns mirror JobAttributes; opaque or polymorphic values
(``data``, ``unique``, ``repeat_interval``...) are stored as JSONB.

Requires asyncpg to be installed: pip install asyncpg
"""

from __future__ import annotations

import asyncio
import json
import re
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING, Any, AsyncIterator

try:
    import asyncpg
    ASYNCPG_AVAILABLE = True
except ImportError:
    asyncpg = None  # type: ignore
    ASYNCPG_AVAILABLE = False

from ..errors import ErrorContext, PersistenceError
from ..jobs.store import JobFilter, JobStore, missing_record_error, new_job_id
from ..jobs.types import SINGLE_JOB_TYPE, STATE_FIELDS, JobAttributes, to_datetime

if TYPE_CHECKING:
    from ..jobs.job import Job


def _require_asyncpg() -> None:
    """Raise ImportError if asyncpg is not available."""
    if not ASYNCPG_AVAILABLE:
        raise ImportError(
            "PostgreSQL storage requires asyncpg. "
            "Install with: pip install asyncpg"
        )


def _sanitize_table_name(name: str) -> str:
    """Ensure the table name is safe for SQL interpolation."""
    if not name:
        raise ValueError("table_name cannot be empty")
    if not re.fullmatch(r"[a-zA-Z0-9_]+", name):
        raise ValueError(f"Invalid table name: {name!r}")
    return name


def _encode_interval(value: Any) -> Any:
    """Intervals are stored as cron/human strings or seconds."""
    if isinstance(value, timedelta):
        return value.total_seconds()
    return value


JSON_COLUMNS = ("data", "repeat_interval", "skip_days", "unique", "unique_opts")

COLUMNS = (
    "id",
    "name",
    "type",
    "priority",
    "data",
    "next_run_at",
    "disabled",
    "repeat_interval",
    "repeat_timezone",
    "repeat_at",
    "start_date",
    "end_date",
    "skip_days",
    "last_run_at",
    "last_finished_at",
    "locked_at",
    "progress",
    "fail_count",
    "fail_reason",
    "failed_at",
    "unique",
    "unique_opts",
    "last_modified_by",
)


class PostgresJobStore(JobStore):
    """PostgreSQL implementation of JobStore.

    ``single`` and ``unique`` upserts run in a transaction guarded by an
    advisory lock so concurrent schedulers cannot create duplicates.
    """

    TABLE_NAME = "jobkit_jobs"

    def __init__(
        self,
        pool: Any,  # asyncpg.Pool
        table_name: str | None = None,
        *,
        owns_pool: bool = False,
    ):
        _require_asyncpg()
        self._pool = pool
        self._table = _sanitize_table_name(table_name or self.TABLE_NAME)
        self._owns_pool = owns_pool
        self._ensured = False
        self._lock = asyncio.Lock()

    @classmethod
    async def connect(cls, dsn: str, table_name: str | None = None, **pool_kwargs: Any) -> PostgresJobStore:
        """Create a pool for ``dsn``; the store closes it on close()."""
        _require_asyncpg()
        try:
            pool = await asyncpg.create_pool(dsn, **pool_kwargs)
        except (asyncpg.PostgresError, OSError) as exc:
            raise PersistenceError(f"Could not connect to PostgreSQL: {exc}", cause=exc) from exc
        return cls(pool, table_name, owns_pool=True)

    async def close(self) -> None:
        if self._owns_pool:
            await self._pool.close()

    @asynccontextmanager
    async def _backend_errors(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except PersistenceError:
            raise
        except (asyncpg.PostgresError, OSError) as exc:
            raise PersistenceError(
                f"{operation} failed: {exc}",
                context=ErrorContext(operation=operation),
                cause=exc,
            ) from exc

    async def _ensure_table(self) -> None:
        """Create the jobs table if it doesn't exist."""
        async with self._lock:
            if self._ensured:
                return

            ddl = f'''
            CREATE TABLE IF NOT EXISTS "{self._table}" (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                type TEXT NOT NULL DEFAULT 'normal',
                priority INTEGER NOT NULL DEFAULT 0,
                data JSONB,
                next_run_at TIMESTAMPTZ,
                disabled BOOLEAN NOT NULL DEFAULT FALSE,
                repeat_interval JSONB,
                repeat_timezone TEXT,
                repeat_at TEXT,
                start_date TIMESTAMPTZ,
                end_date TIMESTAMPTZ,
                skip_days JSONB,
                last_run_at TIMESTAMPTZ,
                last_finished_at TIMESTAMPTZ,
                locked_at TIMESTAMPTZ,
                progress DOUBLE PRECISION,
                fail_count INTEGER NOT NULL DEFAULT 0,
                fail_reason TEXT,
                failed_at TIMESTAMPTZ,
                "unique" JSONB,
                unique_opts JSONB,
                last_modified_by TEXT
            );
            CREATE INDEX IF NOT EXISTS "{self._table}_name_idx" ON "{self._table}" (name);
            CREATE INDEX IF NOT EXISTS "{self._table}_next_run_at_idx" ON "{self._table}" (next_run_at, priority DESC)
            '''

            async with self._backend_errors("ensure_table"):
                async with self._pool.acquire() as conn:
                    for stmt in [s.strip() for s in ddl.split(";") if s.strip()]:
                        await conn.execute(stmt)

            self._ensured = True

    def _attrs_to_row(self, attrs: JobAttributes) -> dict[str, Any]:
        """Convert JobAttributes to a database row."""
        row = {}
        for column in COLUMNS:
            value = getattr(attrs, column)
            if column in ("repeat_interval", "skip_days"):
                value = _encode_interval(value)
            if column in JSON_COLUMNS:
                value = json.dumps(value, default=str) if value is not None else None
            elif column.endswith("_at") or column.endswith("_date"):
                value = to_datetime(value)
            elif column == "fail_reason" and value is not None:
                value = str(value)
            row[column] = value
        return row

    def _row_to_attrs(self, row: Any) -> JobAttributes:
        """Convert a database row to JobAttributes."""
        document = dict(row)
        for column in JSON_COLUMNS:
            value = document.get(column)
            if isinstance(value, str):
                document[column] = json.loads(value)
        return JobAttributes.from_dict(document)

    @staticmethod
    def _column(name: str) -> str:
        return f'"{name}"'

    async def get_jobs(self, filter: JobFilter | None = None) -> list[JobAttributes]:
        await self._ensure_table()

        q = f'SELECT * FROM "{self._table}"'
        conditions, params = self._where(filter)
        if conditions:
            q += " WHERE " + " AND ".join(conditions)
        q += " ORDER BY next_run_at ASC NULLS LAST, priority DESC"
        if filter and filter.limit is not None:
            q += f" LIMIT ${len(params) + 1}"
            params.append(filter.limit)

        async with self._backend_errors("get_jobs"):
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(q, *params)
        return [self._row_to_attrs(row) for row in rows]

    def _where(self, filter: JobFilter | None) -> tuple[list[str], list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []
        if filter is None:
            return conditions, params
        if filter.job_id is not None:
            params.append(filter.job_id)
            conditions.append(f"id = ${len(params)}")
        if filter.name is not None:
            params.append(filter.name)
            conditions.append(f"name = ${len(params)}")
        if filter.disabled is not None:
            params.append(filter.disabled)
            conditions.append(f"disabled = ${len(params)}")
        return conditions, params

    def _unique_conditions(self, unique: dict[str, Any], offset: int) -> tuple[list[str], list[Any]]:
        """Translate dotted-path equality into JSONB path comparisons."""
        conditions: list[str] = []
        params: list[Any] = []
        for path, value in unique.items():
            head, *rest = path.split(".")
            if head not in COLUMNS:
                raise PersistenceError(f"Unknown field in unique constraint: {path!r}")
            params.append(rest)
            path_idx = offset + len(params)
            params.append(json.dumps(value, default=str))
            value_idx = offset + len(params)
            conditions.append(f"to_jsonb({self._column(head)}) #> ${path_idx}::text[] = ${value_idx}::jsonb")
        return conditions, params

    async def save_job(self, job: Job) -> Job:
        await self._ensure_table()
        attrs = job.attrs

        async with self._backend_errors("save_job"):
            async with self._pool.acquire() as conn:
                if attrs.id is not None:
                    await self._upsert(conn, self._attrs_to_row(attrs))
                    return job

                if attrs.type != SINGLE_JOB_TYPE and not attrs.unique:
                    attrs.id = new_job_id()
                    await self._upsert(conn, self._attrs_to_row(attrs))
                    return job

                async with conn.transaction():
                    if attrs.type == SINGLE_JOB_TYPE:
                        lock_key = f"{self._table}:single:{attrs.name}"
                        conditions = ["type = $1", "name = $2"]
                        params: list[Any] = [SINGLE_JOB_TYPE, attrs.name]
                    else:
                        lock_key = f"{self._table}:unique:{json.dumps(attrs.unique, sort_keys=True, default=str)}"
                        conditions, params = self._unique_conditions(attrs.unique, 0)

                    await conn.execute("SELECT pg_advisory_xact_lock(hashtext($1))", lock_key)
                    existing = await conn.fetchrow(
                        f'SELECT * FROM "{self._table}" WHERE {" AND ".join(conditions)} LIMIT 1 FOR UPDATE',
                        *params,
                    )

                    if existing is None:
                        attrs.id = new_job_id()
                        await self._upsert(conn, self._attrs_to_row(attrs))
                        return job

                    if attrs.type != SINGLE_JOB_TYPE and (attrs.unique_opts or {}).get("insert_only"):
                        attrs.id = existing["id"]
                        return job

                    row = self._attrs_to_row(attrs)
                    row["id"] = existing["id"]
                    if attrs.type == SINGLE_JOB_TYPE:
                        next_run_at = to_datetime(attrs.next_run_at)
                        if next_run_at is not None and next_run_at <= job.scheduler.now():
                            row["next_run_at"] = existing["next_run_at"]
                    await self._upsert(conn, row)
                    attrs.id = existing["id"]
                    return job

    async def _upsert(self, conn: Any, row: dict[str, Any]) -> None:
        columns = list(row.keys())
        placeholders = [f"${i + 1}" for i in range(len(columns))]
        updates = ", ".join(f"{self._column(c)} = EXCLUDED.{self._column(c)}" for c in columns if c != "id")
        q = f'''
        INSERT INTO "{self._table}" ({", ".join(self._column(c) for c in columns)})
        VALUES ({", ".join(placeholders)})
        ON CONFLICT (id) DO UPDATE SET {updates}
        '''
        await conn.execute(q, *row.values())

    async def save_job_state(self, job: Job) -> None:
        await self._ensure_table()
        attrs = job.attrs
        if attrs.id is None:
            raise missing_record_error(attrs)

        row = self._attrs_to_row(attrs)
        set_clause = ", ".join(f"{self._column(col)} = ${i + 3}" for i, col in enumerate(STATE_FIELDS))
        q = f'''
        UPDATE "{self._table}"
        SET {set_clause}
        WHERE id = $1 AND name = $2
        '''
        values = [attrs.id, attrs.name] + [row[col] for col in STATE_FIELDS]

        async with self._backend_errors("save_job_state"):
            async with self._pool.acquire() as conn:
                result = await conn.execute(q, *values)
        if result == "UPDATE 0":
            raise missing_record_error(attrs)

    async def remove_jobs(self, filter: JobFilter | None = None) -> int:
        await self._ensure_table()

        q = f'DELETE FROM "{self._table}"'
        conditions, params = self._where(filter)
        if conditions:
            q += " WHERE " + " AND ".join(conditions)

        async with self._backend_errors("remove_jobs"):
            async with self._pool.acquire() as conn:
                result = await conn.execute(q, *params)
        # asyncpg returns the command tag, e.g. "DELETE 3"
        try:
            return int(result.split()[-1])
        except (AttributeError, IndexError, ValueError):
            return 0


__all__ = ["PostgresJobStore", "ASYNCPG_AVAILABLE"]
