"""JobStore — transactional persistence and state machine for embed jobs."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import and_, delete, func, or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from cyclesearch.exceptions import PersistenceError
from cyclesearch.models.jobs import (
    TERMINAL_STATUSES,
    EmbedJob,
    JobStatus,
    Level,
    record_key,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from sqlalchemy.ext.asyncio import AsyncEngine

    from cyclesearch.models.jobs import EmbedJobBase

logger = logging.getLogger(__name__)

STALE_JOB_MESSAGE = "Abandoned while processing; requeued as a new job"


@dataclass(frozen=True, slots=True)
class RetentionResult:
    """Rows removed by :meth:`JobStore.retention_sweep`."""

    done_removed: int
    error_removed: int


@dataclass(frozen=True, slots=True)
class QueueStatus:
    """Outstanding work in the queue plus the total row count."""

    pending: int
    processing: int
    total: int


class JobStore:
    """Durable queue of :class:`~cyclesearch.models.jobs.EmbedJob` rows.

    Each public operation runs in its own transaction opened from
    *session_factory*.  Status changes are conditional ``UPDATE``
    statements, so a transition only happens from the expected prior
    state::

        pending ──mark_processing──▶ processing ──mark_terminal──▶ done | error

    Nothing ever moves a row back to ``pending``.  Database errors are
    re-raised as :class:`~cyclesearch.exceptions.PersistenceError`.

    Returned rows outlive their session, so *session_factory* must be
    built with ``expire_on_commit=False`` (as :meth:`from_engine` does).
    """

    def __init__(
        self,
        session_factory: Callable[..., AsyncSession],
        job_model: type[EmbedJobBase] | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._job_model: type[EmbedJobBase] = job_model or EmbedJob  # type: ignore[assignment]

    @classmethod
    async def from_engine(
        cls,
        engine: AsyncEngine,
        job_model: type[EmbedJobBase] | None = None,
    ) -> JobStore:
        """Create the job table on *engine* if needed and return a store bound to it."""
        await cls.create_tables(engine, job_model)
        sf = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        return cls(sf, job_model)

    @staticmethod
    async def create_tables(engine: AsyncEngine, job_model: type[EmbedJobBase] | None = None) -> None:
        """Create the job table with ``checkfirst=True``."""
        model = job_model or EmbedJob
        async with engine.begin() as conn:
            await conn.run_sync(
                lambda c: model.__table__.create(c, checkfirst=True)  # type: ignore[attr-defined]
            )

    @property
    def job_model(self) -> type[EmbedJobBase]:
        return self._job_model

    # ------------------------------------------------------------------
    # Queue operations
    # ------------------------------------------------------------------

    async def enqueue(
        self,
        level: Level | str,
        session_id: str,
        source_table: str,
        row_id: str,
        text: str,
        *,
        cycle_id: str | None = None,
        column_name: str | None = None,
        field_label: str | None = None,
    ) -> str:
        """Insert a new pending job and return its id.

        Always inserts, even if a job for the same source already exists;
        the vector store resolves duplicates by key.
        """
        level = Level(level)
        if level is not Level.FIELD and (column_name or field_label):
            msg = f"column_name/field_label only apply to field jobs, not {level.value}"
            raise ValueError(msg)
        key = record_key(
            level,
            session_id=session_id,
            row_id=row_id,
            cycle_id=cycle_id,
            column_name=column_name,
        )
        job = self._job_model(
            level=level.value,
            session_id=session_id,
            cycle_id=cycle_id,
            source_table=source_table,
            row_id=row_id,
            column_name=column_name,
            field_label=field_label,
            record_key=key,
            text=text,
            status=JobStatus.PENDING.value,
            version=1,
        )
        async with self._transaction() as session:
            session.add(job)
        logger.debug("Enqueued %s job %s (%s)", level.value, job.id, key)
        return job.id

    async def dequeue_pending(self, limit: int = 10) -> list[EmbedJobBase]:
        """Return up to *limit* pending jobs ordered by ``(level, created_at)``.

        Rows are not claimed here; :meth:`mark_processing` does that.
        """
        if limit <= 0:
            return []
        model = self._job_model
        async with self._transaction() as session:
            result = await session.execute(
                select(model)
                .where(model.status == JobStatus.PENDING.value)
                .order_by(model.level, model.created_at)  # type: ignore[arg-type]
                .limit(limit)
            )
            return list(result.scalars().all())

    async def mark_processing(self, job_id: str) -> bool:
        """Claim a pending job.  Returns False if it was not pending."""
        model = self._job_model
        async with self._transaction() as session:
            result = await session.execute(
                update(model)
                .where(
                    model.id == job_id,  # type: ignore[arg-type]
                    model.status == JobStatus.PENDING.value,  # type: ignore[arg-type]
                )
                .values(status=JobStatus.PROCESSING.value, started_at=datetime.now(UTC))
            )
            return result.rowcount == 1

    async def mark_terminal(
        self,
        job_id: str,
        status: JobStatus | str,
        error_message: str | None = None,
    ) -> bool:
        """Finish a processing job as ``done`` or ``error``.

        Returns False (and changes nothing) if the job is not currently
        processing.
        """
        status = JobStatus(status)
        if status not in TERMINAL_STATUSES:
            msg = f"mark_terminal requires done or error, got {status.value}"
            raise ValueError(msg)
        model = self._job_model
        async with self._transaction() as session:
            result = await session.execute(
                update(model)
                .where(
                    model.id == job_id,  # type: ignore[arg-type]
                    model.status == JobStatus.PROCESSING.value,  # type: ignore[arg-type]
                )
                .values(
                    status=status.value,
                    error_message=error_message if status is JobStatus.ERROR else None,
                    processed_at=datetime.now(UTC),
                )
            )
            return result.rowcount == 1

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get(self, job_id: str) -> EmbedJobBase | None:
        async with self._transaction() as session:
            return await session.get(self._job_model, job_id)

    async def has_active_job(self, key: str) -> bool:
        """Return whether a pending or processing job already targets *key*."""
        model = self._job_model
        async with self._transaction() as session:
            result = await session.execute(
                select(func.count())
                .select_from(model)
                .where(
                    model.record_key == key,  # type: ignore[arg-type]
                    model.status.in_(  # type: ignore[union-attr]
                        [JobStatus.PENDING.value, JobStatus.PROCESSING.value]
                    ),
                )
            )
            return (result.scalar_one() or 0) > 0

    async def statistics(self) -> dict[str, int]:
        """Return row counts for every status (missing statuses count 0)."""
        model = self._job_model
        counts = {s.value: 0 for s in JobStatus}
        async with self._transaction() as session:
            result = await session.execute(
                select(model.status, func.count()).group_by(model.status)  # type: ignore[arg-type]
            )
            for status, count in result.all():
                counts[status] = count
        return counts

    async def queue_status(self) -> QueueStatus:
        stats = await self.statistics()
        return QueueStatus(
            pending=stats[JobStatus.PENDING.value],
            processing=stats[JobStatus.PROCESSING.value],
            total=sum(stats.values()),
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def retention_sweep(
        self,
        done_older_than: timedelta = timedelta(days=7),
        error_older_than: timedelta = timedelta(days=30),
    ) -> RetentionResult:
        """Delete old terminal rows.

        ``done`` rows are aged by ``processed_at``; ``error`` rows by
        ``created_at`` and kept longer for diagnosis.
        """
        model = self._job_model
        now = datetime.now(UTC)
        async with self._transaction() as session:
            done = await session.execute(
                delete(model).where(
                    model.status == JobStatus.DONE.value,  # type: ignore[arg-type]
                    model.processed_at < now - done_older_than,  # type: ignore[operator]
                )
            )
            errors = await session.execute(
                delete(model).where(
                    model.status == JobStatus.ERROR.value,  # type: ignore[arg-type]
                    model.created_at < now - error_older_than,  # type: ignore[operator]
                )
            )
            result = RetentionResult(done_removed=done.rowcount, error_removed=errors.rowcount)
        if result.done_removed or result.error_removed:
            logger.info(
                "Job retention sweep: %d done, %d error removed",
                result.done_removed,
                result.error_removed,
            )
        return result

    async def fail_stale_processing(self, older_than: timedelta) -> list[EmbedJobBase]:
        """Move jobs stuck in ``processing`` longer than *older_than* to ``error``.

        Returns the failed rows so the caller can enqueue replacements.
        """
        model = self._job_model
        now = datetime.now(UTC)
        cutoff = now - older_than
        async with self._transaction() as session:
            result = await session.execute(
                select(model).where(
                    model.status == JobStatus.PROCESSING.value,
                    or_(
                        model.started_at < cutoff,  # type: ignore[operator]
                        and_(
                            model.started_at.is_(None),  # type: ignore[union-attr]
                            model.created_at < cutoff,  # type: ignore[operator]
                        ),
                    ),
                )
            )
            stale = list(result.scalars().all())
            for job in stale:
                job.status = JobStatus.ERROR.value
                job.error_message = STALE_JOB_MESSAGE
                job.processed_at = now
        if stale:
            logger.warning("Failed %d stale processing jobs", len(stale))
        return stale

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                msg = f"Job store operation failed: {exc}"
                raise PersistenceError(msg) from exc
