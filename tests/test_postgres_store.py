"""Tests for PostgresJobStore SQL generation against a scripted pool."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

pytest.importorskip("asyncpg")

from jobkit.errors import PersistenceError
from jobkit.jobs import Job, JobFilter
from jobkit.scheduler import Scheduler
from jobkit.storage.postgres import COLUMNS, PostgresJobStore

from tests._jobkit_testkit import EPOCH, FakePool

NEXT_RUN_AT = COLUMNS.index("next_run_at")
DATA = COLUMNS.index("data")


class UnreachablePool(FakePool):
    def acquire(self):
        raise OSError("connection refused")


@pytest.fixture
def pool():
    return FakePool()


@pytest.fixture
def pg_scheduler(pool, settings, clock):
    return Scheduler(store=PostgresJobStore(pool), settings=settings, clock=clock)


class TestSchema:
    """Test table creation."""

    @pytest.mark.asyncio
    async def test_table_created_once(self, pg_scheduler, pool):
        """DDL runs on first use only."""
        await pg_scheduler.store.get_jobs()
        await pg_scheduler.store.get_jobs()

        creates = pool.statements("CREATE")
        assert len(creates) == 3
        assert creates[0][0].startswith('CREATE TABLE IF NOT EXISTS "jobkit_jobs"')
        assert '"unique" JSONB' in creates[0][0]

    def test_invalid_table_name(self, pool):
        """Table names are restricted to identifiers."""
        with pytest.raises(ValueError):
            PostgresJobStore(pool, "jobs; drop table users")


class TestQueries:
    """Test reads, state saves and removal."""

    @pytest.mark.asyncio
    async def test_get_jobs_filter_and_limit(self, pg_scheduler, pool):
        """Filters become placeholders; rows are decoded."""
        pool.fetch_results.append([
            {
                "id": "j1",
                "name": "email",
                "type": "normal",
                "priority": 0,
                "data": '{"to": "a@example.com"}',
                "next_run_at": EPOCH,
                "disabled": False,
                "fail_count": 0,
                "unique": None,
            }
        ])

        records = await pg_scheduler.store.get_jobs(JobFilter(name="email", disabled=False, limit=5))

        query, args = pool.statements("SELECT")[-1]
        assert "WHERE name = $1 AND disabled = $2" in query
        assert query.endswith("ORDER BY next_run_at ASC NULLS LAST, priority DESC LIMIT $3")
        assert args == ("email", False, 5)
        assert records[0].data == {"to": "a@example.com"}
        assert records[0].next_run_at == EPOCH

    @pytest.mark.asyncio
    async def test_save_job_state(self, pg_scheduler, pool):
        """State saves update by id and name."""
        job = Job(pg_scheduler, {"name": "email", "id": "j1", "locked_at": EPOCH})

        await pg_scheduler.store.save_job_state(job)

        query, args = pool.statements("UPDATE")[-1]
        assert "WHERE id = $1 AND name = $2" in query
        assert '"locked_at" = $' in query
        assert '"data"' not in query
        assert args[:2] == ("j1", "email")
        assert EPOCH in args

    @pytest.mark.asyncio
    async def test_save_job_state_missing(self, pg_scheduler, pool):
        """UPDATE 0 means the record is gone."""
        pool.statuses["UPDATE"] = "UPDATE 0"
        job = Job(pg_scheduler, {"name": "email", "id": "j1"})

        with pytest.raises(PersistenceError, match="does not exist anymore"):
            await pg_scheduler.store.save_job_state(job)

    @pytest.mark.asyncio
    async def test_save_job_state_without_id(self, pg_scheduler):
        """An unsaved job has no record to update."""
        with pytest.raises(PersistenceError):
            await pg_scheduler.store.save_job_state(pg_scheduler.create("email"))

    @pytest.mark.asyncio
    async def test_remove_jobs(self, pg_scheduler, pool):
        """The DELETE command tag carries the count."""
        pool.statuses["DELETE"] = "DELETE 3"

        removed = await pg_scheduler.store.remove_jobs(JobFilter(name="email"))

        query, args = pool.statements("DELETE")[-1]
        assert query == 'DELETE FROM "jobkit_jobs" WHERE name = $1'
        assert args == ("email",)
        assert removed == 3

    @pytest.mark.asyncio
    async def test_connection_errors_are_wrapped(self):
        """OS-level failures surface as PersistenceError."""
        store = PostgresJobStore(UnreachablePool())
        with pytest.raises(PersistenceError) as exc_info:
            await store.get_jobs()
        assert exc_info.value.context.operation == "ensure_table"

    @pytest.mark.asyncio
    async def test_close(self):
        """Only owned pools are closed."""
        shared = FakePool()
        await PostgresJobStore(shared).close()
        assert shared.closed is False

        owned = FakePool()
        await PostgresJobStore(owned, owns_pool=True).close()
        assert owned.closed is True


class TestSaveJob:
    """Test insert and upsert paths."""

    @pytest.mark.asyncio
    async def test_insert_normal_job(self, pg_scheduler, pool):
        """A new normal job is inserted with a fresh id and JSON data."""
        job = await pg_scheduler.create("email", {"to": "a@example.com"}).save()

        query, args = pool.statements("INSERT")[-1]
        assert query.startswith('INSERT INTO "jobkit_jobs"')
        assert "ON CONFLICT (id) DO UPDATE" in query
        assert args[0] == job.attrs.id
        assert json.loads(args[DATA]) == {"to": "a@example.com"}
        assert pool.transactions == 0

    @pytest.mark.asyncio
    async def test_save_with_id_upserts(self, pg_scheduler, pool):
        """A job with an id is written without lookup."""
        job = Job(pg_scheduler, {"name": "email", "id": "j1"})

        await pg_scheduler.store.save_job(job)

        assert pool.statements("INSERT")[-1][1][0] == "j1"
        assert pool.transactions == 0

    @pytest.mark.asyncio
    async def test_single_new(self, pg_scheduler, pool):
        """Single jobs lock, look up by name and insert when absent."""
        pool.fetchrow_results.append(None)

        job = await pg_scheduler.every("1 hour", "digest")

        assert pool.transactions == 1
        _, lock_args = pool.statements("SELECT PG_ADVISORY")[-1]
        assert lock_args == ("jobkit_jobs:single:digest",)
        lookup, lookup_args = pool.statements("SELECT *")[-1]
        assert "WHERE type = $1 AND name = $2 LIMIT 1 FOR UPDATE" in lookup
        assert lookup_args == ("single", "digest")
        assert pool.statements("INSERT")[-1][1][0] == job.attrs.id

    @pytest.mark.asyncio
    async def test_single_existing_keeps_due_schedule(self, pg_scheduler, pool):
        """An already-due incoming schedule keeps the stored next_run_at."""
        stored_next = EPOCH - timedelta(hours=1)
        pool.fetchrow_results.append({"id": "existing", "next_run_at": stored_next})

        job = await pg_scheduler.every("1 hour", "digest")

        args = pool.statements("INSERT")[-1][1]
        assert args[0] == "existing"
        assert args[NEXT_RUN_AT] == stored_next
        assert job.attrs.id == "existing"

    @pytest.mark.asyncio
    async def test_unique_lookup(self, pg_scheduler, pool):
        """Unique paths become JSONB path comparisons."""
        pool.fetchrow_results.append(None)

        await pg_scheduler.create("notify", {"user": 1}).unique({"data.user": 1}).save()

        lookup, args = pool.statements("SELECT *")[-1]
        assert 'to_jsonb("data") #> $1::text[] = $2::jsonb' in lookup
        assert args == (["user"], "1")

    @pytest.mark.asyncio
    async def test_unique_insert_only(self, pg_scheduler, pool):
        """insert_only with a match writes nothing."""
        pool.fetchrow_results.append({"id": "existing", "next_run_at": EPOCH})

        job = await (
            pg_scheduler.create("notify", {"user": 1})
            .unique({"data.user": 1}, {"insert_only": True})
            .save()
        )

        assert job.attrs.id == "existing"
        assert pool.statements("INSERT") == []

    @pytest.mark.asyncio
    async def test_unique_unknown_field(self, pg_scheduler):
        """Unique paths must start at a known column."""
        job = pg_scheduler.create("notify").unique({"payload.user": 1})
        with pytest.raises(PersistenceError, match="Unknown field"):
            await job.save()
