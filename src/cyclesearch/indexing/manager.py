"""IndexingManager — async facade over the job queue, dispatcher and search."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from functools import partial
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cyclesearch.config import IndexingConfig
from cyclesearch.exceptions import PersistenceError
from cyclesearch.indexing.connectivity import check_connectivity
from cyclesearch.indexing.dispatcher import BatchDispatcher
from cyclesearch.indexing.rate_limiter import RateLimiter
from cyclesearch.indexing.retry import RetryController
from cyclesearch.indexing.types import BackfillResult, BatchItem, QueueRunResult
from cyclesearch.jobs.builders import (
    CYCLES_TABLE,
    SESSIONS_TABLE,
    enqueue_cycle_job,
    enqueue_field_jobs,
    enqueue_session_job,
)
from cyclesearch.search._engine import SearchEngine

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Mapping

    from cyclesearch.jobs.store import JobStore, QueueStatus, RetentionResult
    from cyclesearch.models.jobs import Level
    from cyclesearch.search.protocols import EmbeddingProvider, VectorStore
    from cyclesearch.search.types import SearchHit

logger = logging.getLogger(__name__)

SKIPPED_OFFLINE = "offline"
SKIPPED_BUSY = "busy"
SKIPPED_STORE_ERROR = "job store unavailable"

_SESSION_REVIEW_COLUMNS = (
    "review_accomplishments",
    "review_comparison",
    "review_obstacles",
    "review_successes",
    "review_takeaways",
)
_CYCLE_REVIEW_COLUMNS = (
    "review_status",
    "review_noteworthy",
    "review_distractions",
    "review_improvement",
)


def _has_any(row: Mapping[str, Any], columns: Iterable[str]) -> bool:
    for column in columns:
        value = row.get(column)
        if isinstance(value, str):
            if value.strip():
                return True
        elif value is not None:
            return True
    return False


class IndexingManager:
    """Wire a :class:`JobStore`, a :class:`VectorStore` and a provider together.

    Producers call the ``enqueue_*`` helpers as journal rows are written;
    :meth:`process_queue` drains pending jobs through a
    :class:`RetryController` around a :class:`BatchDispatcher`.  Queries go
    through the embedded :class:`SearchEngine`.

    Usage::

        store = await JobStore.from_engine(engine)
        manager = IndexingManager(store, LocalVectorStore(dimension=1536), OpenAIEmbedding())
        await manager.enqueue_session(session_row)
        await manager.process_queue()
        hits = await manager.cascading_search("overall trend in my focus")

    :meth:`start` runs :meth:`process_queue` on an interval in a background
    task, with a retention sweep and stale-job reconciliation every
    *maintenance_interval* seconds.
    """

    def __init__(
        self,
        job_store: JobStore,
        vector_store: VectorStore,
        provider: EmbeddingProvider | None = None,
        *,
        config: IndexingConfig | None = None,
        data_dir: str | Path | None = None,
        connectivity_check: Callable[[], Awaitable[bool]] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config or IndexingConfig()
        self._job_store = job_store
        self._vector_store = vector_store
        self._data_dir = Path(data_dir) if data_dir else None

        self._rate_limiter = RateLimiter(
            self._config.max_requests_per_minute,
            self._config.rate_window,
            sleep=sleep,
        )
        self._dispatcher = BatchDispatcher(
            job_store,
            vector_store,
            provider,
            rate_limiter=self._rate_limiter,
            batch_size=self._config.batch_size,
        )
        self._retry = RetryController(
            self._dispatcher.run_batch,
            max_retries=self._config.max_retries,
            initial_delay=self._config.initial_delay,
            sleep=sleep,
        )
        self._search = SearchEngine(vector_store, provider)
        self._connectivity_check = connectivity_check or partial(
            check_connectivity,
            self._config.connectivity_url,
            timeout=self._config.connectivity_timeout,
        )

        self._drain_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Enqueue
    # ------------------------------------------------------------------

    async def enqueue_session(
        self,
        session: Mapping[str, Any],
        *,
        include_summary: bool = True,
        skip_existing: bool = False,
    ) -> list[str]:
        """Enqueue field jobs for a session row, plus its session-level job.

        Pass ``include_summary=False`` while the session is still being
        planned; the session-level job is usually wanted once it is reviewed.
        """
        session_id = str(session["id"])
        job_ids = await enqueue_field_jobs(
            self._job_store,
            SESSIONS_TABLE,
            session,
            session_id,
            skip_existing=skip_existing,
            vector_store=self._vector_store if skip_existing else None,
        )
        if include_summary:
            job_id = await enqueue_session_job(
                self._job_store,
                session,
                skip_existing=skip_existing,
                vector_store=self._vector_store if skip_existing else None,
            )
            if job_id is not None:
                job_ids.append(job_id)
        return job_ids

    async def enqueue_cycle(
        self,
        cycle: Mapping[str, Any],
        *,
        include_summary: bool = True,
        skip_existing: bool = False,
    ) -> list[str]:
        """Enqueue field jobs for a cycle row, plus its cycle-level job."""
        cycle_id = str(cycle["id"])
        session_id = str(cycle["session_id"])
        job_ids = await enqueue_field_jobs(
            self._job_store,
            CYCLES_TABLE,
            cycle,
            session_id,
            cycle_id,
            skip_existing=skip_existing,
            vector_store=self._vector_store if skip_existing else None,
        )
        if include_summary:
            job_id = await enqueue_cycle_job(
                self._job_store,
                cycle,
                skip_existing=skip_existing,
                vector_store=self._vector_store if skip_existing else None,
            )
            if job_id is not None:
                job_ids.append(job_id)
        return job_ids

    async def backfill(
        self,
        sessions: Iterable[Mapping[str, Any]] = (),
        cycles: Iterable[Mapping[str, Any]] = (),
    ) -> BackfillResult:
        """Enqueue jobs for existing rows, skipping anything already queued or stored.

        Aggregate jobs are only created for rows that have been reviewed.
        """
        jobs_created = 0
        session_count = 0
        cycle_count = 0

        for session in sessions:
            session_count += 1
            created = await self.enqueue_session(
                session,
                include_summary=_has_any(session, _SESSION_REVIEW_COLUMNS),
                skip_existing=True,
            )
            jobs_created += len(created)

        for cycle in cycles:
            cycle_count += 1
            created = await self.enqueue_cycle(
                cycle,
                include_summary=_has_any(cycle, _CYCLE_REVIEW_COLUMNS),
                skip_existing=True,
            )
            jobs_created += len(created)

        logger.info(
            "Backfill queued %d jobs from %d sessions and %d cycles",
            jobs_created,
            session_count,
            cycle_count,
        )
        return BackfillResult(
            sessions_processed=session_count,
            cycles_processed=cycle_count,
            jobs_created=jobs_created,
        )

    # ------------------------------------------------------------------
    # Queue processing
    # ------------------------------------------------------------------

    async def process_queue(self, limit: int | None = None) -> QueueRunResult:
        """Drain up to *limit* pending jobs.  Never raises.

        Skips the run when another drain is in progress or the network
        is unreachable.
        """
        if self._drain_lock.locked():
            logger.debug("Queue drain already in progress")
            return QueueRunResult(dequeued=0, skipped=SKIPPED_BUSY)

        async with self._drain_lock:
            try:
                online = await self._connectivity_check()
            except Exception:
                logger.exception("Connectivity check raised; treating as offline")
                online = False
            if not online:
                logger.warning("Offline; leaving embed jobs pending")
                return QueueRunResult(dequeued=0, skipped=SKIPPED_OFFLINE)

            try:
                jobs = await self._job_store.dequeue_pending(limit or self._config.dequeue_limit)
            except PersistenceError:
                logger.exception("Could not read pending embed jobs")
                return QueueRunResult(dequeued=0, skipped=SKIPPED_STORE_ERROR)
            if not jobs:
                return QueueRunResult(dequeued=0)

            items = [BatchItem.from_job(job) for job in jobs]
            logger.info("Processing %d embed jobs", len(items))
            result = await self._retry.run(items)
            if result.errors:
                logger.warning(
                    "%d of %d embed jobs failed: %s",
                    len(result.errors),
                    len(items),
                    ", ".join(f"{e.id}: {e.error}" for e in result.errors[:5]),
                )
            if result.processed:
                # Jobs are already ``done``; the vectors must reach disk too.
                try:
                    self.save()
                except OSError:
                    logger.exception("Could not save embeddings under %s", self._data_dir)
            return QueueRunResult(dequeued=len(items), result=result)

    async def reconcile_stale_jobs(self) -> int:
        """Fail jobs stuck in ``processing`` and enqueue fresh replacements.

        Returns the number of jobs requeued.
        """
        stale = await self._job_store.fail_stale_processing(self._config.stale_processing_after)
        for job in stale:
            await self._job_store.enqueue(
                job.level,
                job.session_id,
                job.source_table,
                job.row_id,
                job.text,
                cycle_id=job.cycle_id,
                column_name=job.column_name,
                field_label=job.field_label,
            )
        if stale:
            logger.info("Requeued %d stale embed jobs", len(stale))
        return len(stale)

    async def perform_retention_sweep(self) -> RetentionResult:
        return await self._job_store.retention_sweep(
            done_older_than=self._config.done_retention,
            error_older_than=self._config.error_retention,
        )

    # ------------------------------------------------------------------
    # Background loop
    # ------------------------------------------------------------------

    def start(self, interval: float = 30.0, *, maintenance_interval: float = 4 * 3600) -> None:
        """Run :meth:`process_queue` every *interval* seconds in a background task."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._run(interval, maintenance_interval))

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self, interval: float, maintenance_interval: float) -> None:
        loop = asyncio.get_running_loop()
        last_maintenance = loop.time()
        while True:
            try:
                await self.process_queue()
            except Exception:
                logger.exception("Embed queue drain failed")
            if loop.time() - last_maintenance >= maintenance_interval:
                last_maintenance = loop.time()
                try:
                    await self.reconcile_stale_jobs()
                    await self.perform_retention_sweep()
                except Exception:
                    logger.exception("Embed job maintenance failed")
            await asyncio.sleep(interval)

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        *,
        level: Level | str | None = None,
        session_id: str | None = None,
        limit: int = 10,
    ) -> list[SearchHit]:
        return await self._search.search(query, level=level, session_id=session_id, limit=limit)

    async def cascading_search(
        self,
        query: str,
        intent: str | None = None,
        k: int | None = None,
    ) -> list[SearchHit]:
        """Cascading search; *intent* defaults to the query itself."""
        return await self._search.cascading_search(
            query,
            intent if intent is not None else query,
            k or self._config.search_k,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def job_queue_statistics(self) -> dict[str, int]:
        return await self._job_store.statistics()

    async def queue_status(self) -> QueueStatus:
        return await self._job_store.queue_status()

    async def status(self) -> dict[str, Any]:
        """Snapshot of queue depth, drain state and provider binding."""
        queue = await self._job_store.queue_status()
        provider = self._dispatcher.provider
        return {
            "pending": queue.pending,
            "processing": queue.processing,
            "total": queue.total,
            "is_processing": self._drain_lock.locked(),
            "running": self.running,
            "provider": provider.model_name if provider is not None else None,
        }

    # ------------------------------------------------------------------
    # Provider binding
    # ------------------------------------------------------------------

    def rebind_provider(self, provider: EmbeddingProvider | None) -> None:
        """Use *provider* for all later dispatches and searches."""
        self._dispatcher.rebind_provider(provider)
        self._search.rebind_provider(provider)
        logger.info(
            "Embedding provider rebound to %s",
            provider.model_name if provider is not None else None,
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist the vector store under *data_dir*, if both support it."""
        if self._data_dir is None or not hasattr(self._vector_store, "save"):
            return
        self._vector_store.save(self._data_dir / "embeddings")  # type: ignore[attr-defined]

    def load(self) -> bool:
        """Load a previously saved vector store.  Returns False if there was none."""
        if self._data_dir is None or not hasattr(self._vector_store, "load"):
            return False
        try:
            self._vector_store.load(self._data_dir / "embeddings")  # type: ignore[attr-defined]
        except FileNotFoundError:
            logger.debug("No saved embeddings under %s", self._data_dir)
            return False
        return True

    async def close(self) -> None:
        await self.stop()
        self.save()
        await self._vector_store.close()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def config(self) -> IndexingConfig:
        return self._config

    @property
    def job_store(self) -> JobStore:
        return self._job_store

    @property
    def vector_store(self) -> VectorStore:
        return self._vector_store

    @property
    def search_engine(self) -> SearchEngine:
        return self._search

    @property
    def dispatcher(self) -> BatchDispatcher:
        return self._dispatcher
