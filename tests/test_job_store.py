"""Tests for JobStore — enqueue, dequeue, status transitions, and maintenance."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError

from cyclesearch.exceptions import PersistenceError
from cyclesearch.jobs.store import STALE_JOB_MESSAGE, JobStore, QueueStatus
from cyclesearch.models.jobs import EmbedJob, JobStatus, Level

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


async def _enqueue_field(store: JobStore, row_id: str = "s1", column: str = "plan_objective") -> str:
    return await store.enqueue(
        Level.FIELD,
        "s1",
        "sessions",
        row_id,
        "ship the release",
        column_name=column,
        field_label="What am I trying to accomplish?",
    )


async def _set(engine: AsyncEngine, job_id: str, **values) -> None:
    async with engine.begin() as conn:
        await conn.execute(update(EmbedJob).where(EmbedJob.id == job_id).values(**values))


# ==================================================================
# Enqueue
# ==================================================================


class TestEnqueue:
    @pytest.mark.asyncio
    async def test_enqueue_creates_pending_job(self, job_store: JobStore):
        job_id = await _enqueue_field(job_store)
        job = await job_store.get(job_id)
        assert job is not None
        assert job.status == JobStatus.PENDING.value
        assert job.level == "field"
        assert job.record_key == "field:s1:plan_objective"
        assert job.version == 1
        assert job.error_message is None
        assert job.processed_at is None

    @pytest.mark.asyncio
    async def test_enqueue_same_source_twice_makes_two_jobs(self, job_store: JobStore):
        first = await _enqueue_field(job_store)
        second = await _enqueue_field(job_store)
        assert first != second
        stats = await job_store.statistics()
        assert stats["pending"] == 2

    @pytest.mark.asyncio
    async def test_cycle_job_key(self, job_store: JobStore):
        job_id = await job_store.enqueue(Level.CYCLE, "s1", "cycles", "c1", "START: Goal: x", cycle_id="c1")
        job = await job_store.get(job_id)
        assert job is not None
        assert job.record_key == "cycle:c1"
        assert job.column_name is None

    @pytest.mark.asyncio
    async def test_session_job_rejects_column(self, job_store: JobStore):
        with pytest.raises(ValueError, match="only apply to field jobs"):
            await job_store.enqueue(Level.SESSION, "s1", "sessions", "s1", "{}", column_name="plan_objective")

    @pytest.mark.asyncio
    async def test_field_job_requires_column(self, job_store: JobStore):
        with pytest.raises(ValueError, match="column name"):
            await job_store.enqueue(Level.FIELD, "s1", "sessions", "s1", "text")


# ==================================================================
# Dequeue
# ==================================================================


class TestDequeue:
    @pytest.mark.asyncio
    async def test_dequeue_respects_limit(self, job_store: JobStore):
        for i in range(5):
            await _enqueue_field(job_store, row_id=f"r{i}")
        jobs = await job_store.dequeue_pending(3)
        assert len(jobs) == 3
        assert all(j.status == JobStatus.PENDING.value for j in jobs)

    @pytest.mark.asyncio
    async def test_dequeue_skips_non_pending(self, job_store: JobStore):
        a = await _enqueue_field(job_store, row_id="a")
        b = await _enqueue_field(job_store, row_id="b")
        await job_store.mark_processing(a)
        jobs = await job_store.dequeue_pending(10)
        assert [j.id for j in jobs] == [b]

    @pytest.mark.asyncio
    async def test_dequeue_orders_by_level_then_age(self, job_store: JobStore, async_engine: AsyncEngine):
        now = datetime.now(UTC)
        late_field = await _enqueue_field(job_store, row_id="late")
        early_field = await _enqueue_field(job_store, row_id="early")
        session = await job_store.enqueue(Level.SESSION, "s1", "sessions", "s1", "{}")
        await _set(async_engine, late_field, created_at=now - timedelta(minutes=1))
        await _set(async_engine, early_field, created_at=now - timedelta(minutes=5))
        await _set(async_engine, session, created_at=now - timedelta(minutes=10))

        jobs = await job_store.dequeue_pending(10)
        assert [j.id for j in jobs] == [early_field, late_field, session]

    @pytest.mark.asyncio
    async def test_dequeue_zero_limit(self, job_store: JobStore):
        await _enqueue_field(job_store)
        assert await job_store.dequeue_pending(0) == []


# ==================================================================
# Status transitions
# ==================================================================


class TestTransitions:
    @pytest.mark.asyncio
    async def test_pending_to_processing_to_done(self, job_store: JobStore):
        job_id = await _enqueue_field(job_store)
        assert await job_store.mark_processing(job_id) is True
        job = await job_store.get(job_id)
        assert job is not None
        assert job.status == JobStatus.PROCESSING.value
        assert job.started_at is not None

        assert await job_store.mark_terminal(job_id, JobStatus.DONE) is True
        job = await job_store.get(job_id)
        assert job is not None
        assert job.status == JobStatus.DONE.value
        assert job.processed_at is not None
        assert job.error_message is None

    @pytest.mark.asyncio
    async def test_error_records_message(self, job_store: JobStore):
        job_id = await _enqueue_field(job_store)
        await job_store.mark_processing(job_id)
        await job_store.mark_terminal(job_id, JobStatus.ERROR, "boom")
        job = await job_store.get(job_id)
        assert job is not None
        assert job.status == JobStatus.ERROR.value
        assert job.error_message == "boom"

    @pytest.mark.asyncio
    async def test_only_one_claim_wins(self, job_store: JobStore):
        job_id = await _enqueue_field(job_store)
        assert await job_store.mark_processing(job_id) is True
        assert await job_store.mark_processing(job_id) is False

    @pytest.mark.asyncio
    async def test_terminal_requires_processing(self, job_store: JobStore):
        job_id = await _enqueue_field(job_store)
        assert await job_store.mark_terminal(job_id, JobStatus.DONE) is False
        job = await job_store.get(job_id)
        assert job is not None
        assert job.status == JobStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_done_never_moves_again(self, job_store: JobStore):
        job_id = await _enqueue_field(job_store)
        await job_store.mark_processing(job_id)
        await job_store.mark_terminal(job_id, JobStatus.DONE)

        assert await job_store.mark_processing(job_id) is False
        assert await job_store.mark_terminal(job_id, JobStatus.ERROR, "late") is False
        job = await job_store.get(job_id)
        assert job is not None
        assert job.status == JobStatus.DONE.value
        assert job.error_message is None

    @pytest.mark.asyncio
    async def test_terminal_rejects_non_terminal_status(self, job_store: JobStore):
        job_id = await _enqueue_field(job_store)
        await job_store.mark_processing(job_id)
        with pytest.raises(ValueError, match="done or error"):
            await job_store.mark_terminal(job_id, JobStatus.PENDING)

    @pytest.mark.asyncio
    async def test_unknown_job(self, job_store: JobStore):
        assert await job_store.mark_processing("missing") is False
        assert await job_store.get("missing") is None


# ==================================================================
# Statistics
# ==================================================================


class TestStatistics:
    @pytest.mark.asyncio
    async def test_empty_store_counts_zero(self, job_store: JobStore):
        assert await job_store.statistics() == {"pending": 0, "processing": 0, "done": 0, "error": 0}

    @pytest.mark.asyncio
    async def test_counts_by_status(self, job_store: JobStore):
        a = await _enqueue_field(job_store, row_id="a")
        b = await _enqueue_field(job_store, row_id="b")
        await _enqueue_field(job_store, row_id="c")
        await job_store.mark_processing(a)
        await job_store.mark_processing(b)
        await job_store.mark_terminal(b, JobStatus.DONE)

        stats = await job_store.statistics()
        assert stats == {"pending": 1, "processing": 1, "done": 1, "error": 0}
        assert await job_store.queue_status() == QueueStatus(pending=1, processing=1, total=3)

    @pytest.mark.asyncio
    async def test_has_active_job(self, job_store: JobStore):
        job_id = await _enqueue_field(job_store)
        key = "field:s1:plan_objective"
        assert await job_store.has_active_job(key) is True
        await job_store.mark_processing(job_id)
        assert await job_store.has_active_job(key) is True
        await job_store.mark_terminal(job_id, JobStatus.DONE)
        assert await job_store.has_active_job(key) is False


# ==================================================================
# Maintenance
# ==================================================================


class TestRetentionSweep:
    @pytest.mark.asyncio
    async def test_sweep_removes_only_expired_terminal_jobs(
        self, job_store: JobStore, async_engine: AsyncEngine
    ):
        now = datetime.now(UTC)
        ids = {}
        for name in ("done_8d", "done_3d", "error_10d", "error_31d", "pending_40d"):
            ids[name] = await _enqueue_field(job_store, row_id=name)

        for name in ("done_8d", "done_3d", "error_10d", "error_31d"):
            await job_store.mark_processing(ids[name])
        await job_store.mark_terminal(ids["done_8d"], JobStatus.DONE)
        await job_store.mark_terminal(ids["done_3d"], JobStatus.DONE)
        await job_store.mark_terminal(ids["error_10d"], JobStatus.ERROR, "x")
        await job_store.mark_terminal(ids["error_31d"], JobStatus.ERROR, "x")

        await _set(async_engine, ids["done_8d"], processed_at=now - timedelta(days=8))
        await _set(async_engine, ids["done_3d"], processed_at=now - timedelta(days=3))
        await _set(async_engine, ids["error_10d"], created_at=now - timedelta(days=10))
        await _set(async_engine, ids["error_31d"], created_at=now - timedelta(days=31))
        await _set(async_engine, ids["pending_40d"], created_at=now - timedelta(days=40))

        result = await job_store.retention_sweep()

        assert result.done_removed == 1
        assert result.error_removed == 1
        assert await job_store.get(ids["done_8d"]) is None
        assert await job_store.get(ids["error_31d"]) is None
        assert await job_store.get(ids["done_3d"]) is not None
        assert await job_store.get(ids["error_10d"]) is not None
        assert await job_store.get(ids["pending_40d"]) is not None


class TestFailStaleProcessing:
    @pytest.mark.asyncio
    async def test_fails_only_old_processing_jobs(self, job_store: JobStore, async_engine: AsyncEngine):
        old = await _enqueue_field(job_store, row_id="old")
        fresh = await _enqueue_field(job_store, row_id="fresh")
        pending = await _enqueue_field(job_store, row_id="pending")
        await job_store.mark_processing(old)
        await job_store.mark_processing(fresh)
        await _set(async_engine, old, started_at=datetime.now(UTC) - timedelta(hours=2))
        await _set(async_engine, pending, created_at=datetime.now(UTC) - timedelta(hours=2))

        stale = await job_store.fail_stale_processing(timedelta(hours=1))

        assert [j.id for j in stale] == [old]
        job = await job_store.get(old)
        assert job is not None
        assert job.status == JobStatus.ERROR.value
        assert job.error_message == STALE_JOB_MESSAGE
        fresh_job = await job_store.get(fresh)
        pending_job = await job_store.get(pending)
        assert fresh_job is not None and fresh_job.status == JobStatus.PROCESSING.value
        assert pending_job is not None and pending_job.status == JobStatus.PENDING.value


class TestPersistenceErrors:
    @pytest.mark.asyncio
    async def test_missing_table_raises_persistence_error(self, async_engine: AsyncEngine):
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

        store = JobStore(async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False))
        with pytest.raises(PersistenceError) as exc_info:
            await store.statistics()
        assert isinstance(exc_info.value.__cause__, OperationalError)
