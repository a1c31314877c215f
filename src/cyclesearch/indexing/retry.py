"""RetryController — re-run failed batch items with exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Protocol

from cyclesearch.exceptions import is_retryable
from cyclesearch.indexing.types import BatchError, BatchResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from cyclesearch.indexing.types import BatchItem

logger = logging.getLogger(__name__)


class BatchRunner(Protocol):
    """Anything shaped like :meth:`BatchDispatcher.run_batch`."""

    def __call__(
        self,
        items: Sequence[BatchItem],
        *,
        final_attempt: bool = True,
    ) -> Awaitable[BatchResult]: ...


class RetryController:
    """Drive a :class:`BatchRunner` for up to *max_retries* attempts.

    After a partial failure only the failed, retryable items are
    resubmitted, so the item set shrinks from one attempt to the next.
    The wait before attempt *n + 1* is ``initial_delay * 2 ** (n - 1)``.

    The returned result is the last attempt's, with any non-retryable
    failures from earlier attempts added to its errors.
    """

    def __init__(
        self,
        runner: BatchRunner,
        *,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            msg = f"max_retries must be at least 1, got {max_retries}"
            raise ValueError(msg)
        self._runner = runner
        self._max_retries = max_retries
        self._initial_delay = initial_delay
        self._sleep = sleep

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed *attempt* (1-based)."""
        return self._initial_delay * 2 ** (attempt - 1)

    async def run(self, items: Sequence[BatchItem]) -> BatchResult:
        remaining = list(items)
        if not remaining:
            return BatchResult(success=True, processed=0, errors=[])

        abandoned: list[BatchError] = []
        result = BatchResult(success=False, processed=0)

        for attempt in range(1, self._max_retries + 1):
            final = attempt == self._max_retries
            try:
                result = await self._runner(remaining, final_attempt=final)
            except Exception as exc:
                logger.exception("Batch attempt %d/%d raised", attempt, self._max_retries)
                reason = str(exc) or type(exc).__name__
                retryable = is_retryable(exc)
                result = BatchResult(
                    success=False,
                    processed=0,
                    errors=[BatchError(item.id, reason, retryable) for item in remaining],
                )

            if result.success and not result.errors:
                break

            retry_ids = {e.id for e in result.errors if e.retryable}
            abandoned.extend(e for e in result.errors if not e.retryable)
            if final or not retry_ids:
                break

            remaining = [item for item in remaining if item.id in retry_ids]
            delay = self.delay_for(attempt)
            logger.info(
                "Retrying %d failed items in %.1fs (attempt %d/%d)",
                len(remaining),
                delay,
                attempt + 1,
                self._max_retries,
            )
            await self._sleep(delay)

        if not abandoned:
            return result
        last_ids = {e.id for e in result.errors}
        errors = [e for e in abandoned if e.id not in last_ids] + list(result.errors)
        return BatchResult(success=False, processed=result.processed, errors=errors)
