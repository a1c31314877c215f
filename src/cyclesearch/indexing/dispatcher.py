"""BatchDispatcher — embeds batches of jobs concurrently, chunk by chunk."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from cyclesearch.config import DEFAULT_BATCH_SIZE
from cyclesearch.exceptions import PersistenceError, ProviderUnavailableError, is_retryable
from cyclesearch.indexing.rate_limiter import RateLimiter
from cyclesearch.indexing.types import BatchError, BatchResult
from cyclesearch.models.jobs import JobStatus, Level
from cyclesearch.search.protocols import SupportsSummarize
from cyclesearch.search.types import EmbeddingRecord

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cyclesearch.indexing.types import BatchItem
    from cyclesearch.jobs.store import JobStore
    from cyclesearch.search.protocols import EmbeddingProvider, VectorStore

logger = logging.getLogger(__name__)


def _describe(exc: BaseException) -> str:
    text = str(exc)
    return text if text else type(exc).__name__


class BatchDispatcher:
    """Turn :class:`BatchItem` lists into stored embeddings.

    Items are split into chunks of *batch_size*.  Chunks run one after
    another; items inside a chunk run concurrently and every item's
    outcome is collected, so one failure never cancels its siblings.

    For each item the dispatcher claims the job, summarizes session
    text when the provider can, waits on the rate limiter, embeds,
    upserts the record under the item's ``record_key`` and marks the
    job ``done``.

    With ``final_attempt=False`` a retryable failure leaves the job in
    ``processing`` so a later attempt can still finish it; otherwise
    failures are recorded as ``error`` on the job.
    """

    def __init__(
        self,
        job_store: JobStore,
        vector_store: VectorStore,
        provider: EmbeddingProvider | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            msg = f"batch_size must be positive, got {batch_size}"
            raise ValueError(msg)
        self._job_store = job_store
        self._vector_store = vector_store
        self._provider = provider
        self._rate_limiter = rate_limiter or RateLimiter()
        self._batch_size = batch_size

    @property
    def provider(self) -> EmbeddingProvider | None:
        return self._provider

    @property
    def batch_size(self) -> int:
        return self._batch_size

    def rebind_provider(self, provider: EmbeddingProvider | None) -> None:
        """Swap the embedding provider used for subsequent chunks."""
        self._provider = provider

    async def run_batch(
        self,
        items: Sequence[BatchItem],
        *,
        final_attempt: bool = True,
    ) -> BatchResult:
        """Process *items* and report every per-item outcome."""
        processed = 0
        errors: list[BatchError] = []
        success = True

        for start in range(0, len(items), self._batch_size):
            chunk = list(items[start : start + self._batch_size])
            try:
                outcomes = await self._run_chunk(chunk, final_attempt=final_attempt)
            except Exception as exc:
                # Nothing in the chunk was attempted.  Jobs claimed by an earlier
                # attempt are closed out; pending ones keep their state.
                reason = _describe(exc)
                retryable = is_retryable(exc)
                logger.error(
                    "Embedding chunk of %d items failed before dispatch: %s",
                    len(chunk),
                    reason,
                )
                if final_attempt or not retryable:
                    for item in chunk:
                        await self._record_failure(item.id, reason)
                errors.extend(BatchError(item.id, reason, retryable) for item in chunk)
                success = False
                continue

            for item, outcome in zip(chunk, outcomes, strict=True):
                if isinstance(outcome, BatchError):
                    errors.append(outcome)
                    success = False
                elif isinstance(outcome, BaseException):
                    errors.append(BatchError(item.id, _describe(outcome), retryable=True))
                    success = False
                else:
                    processed += 1

        if items:
            logger.info(
                "Embedded %d/%d items (%d failed)", processed, len(items), len(errors)
            )
        return BatchResult(success=success, processed=processed, errors=errors)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run_chunk(
        self,
        chunk: list[BatchItem],
        *,
        final_attempt: bool,
    ) -> list[BatchError | BaseException | None]:
        provider = self._provider
        if provider is None:
            msg = "No embedding provider configured"
            raise ProviderUnavailableError(msg)
        return await asyncio.gather(
            *(self._process_item(item, provider, final_attempt=final_attempt) for item in chunk),
            return_exceptions=True,
        )

    async def _process_item(
        self,
        item: BatchItem,
        provider: EmbeddingProvider,
        *,
        final_attempt: bool,
    ) -> BatchError | None:
        try:
            claimed = await self._job_store.mark_processing(item.id)
            if not claimed:
                logger.debug("Job %s was not pending; processing it again", item.id)

            text = await self._text_for(item, provider)
            await self._rate_limiter.acquire()
            vector = await provider.embed(text)

            record = EmbeddingRecord(
                id=item.record_key,
                level=item.level,
                session_id=item.session_id,
                vector=vector,
                text=text,
                cycle_id=item.cycle_id,
                column=item.column,
                field_label=item.field_label,
            )
            await self._vector_store.upsert([record.to_entry()])
            await self._job_store.mark_terminal(item.id, JobStatus.DONE)
        except Exception as exc:
            reason = _describe(exc)
            retryable = is_retryable(exc)
            logger.warning("Embedding job %s failed: %s", item.id, reason, exc_info=True)
            if final_attempt or not retryable:
                await self._record_failure(item.id, reason)
            return BatchError(item.id, reason, retryable)
        return None

    async def _text_for(self, item: BatchItem, provider: EmbeddingProvider) -> str:
        """Return the text to embed, summarizing session serializations when possible."""
        if item.level is not Level.SESSION or not isinstance(provider, SupportsSummarize):
            return item.text
        try:
            summary = await provider.summarize(item.text)
        except Exception as exc:
            logger.warning(
                "Summarization failed for job %s, embedding raw text: %s",
                item.id,
                _describe(exc),
            )
            return item.text
        if not summary or not summary.strip():
            logger.warning("Empty summary for job %s, embedding raw text", item.id)
            return item.text
        return summary

    async def _record_failure(self, job_id: str, reason: str) -> None:
        try:
            await self._job_store.mark_terminal(job_id, JobStatus.ERROR, reason)
        except PersistenceError:
            logger.exception("Could not record failure for job %s; it stays processing", job_id)
