"""Indexing pipeline — dispatcher, retry, rate limiting and the manager facade."""

from cyclesearch.indexing.connectivity import check_connectivity
from cyclesearch.indexing.dispatcher import BatchDispatcher
from cyclesearch.indexing.manager import IndexingManager
from cyclesearch.indexing.rate_limiter import RateLimiter
from cyclesearch.indexing.retry import RetryController
from cyclesearch.indexing.types import (
    BackfillResult,
    BatchError,
    BatchItem,
    BatchResult,
    QueueRunResult,
)

__all__ = [
    "BackfillResult",
    "BatchDispatcher",
    "BatchError",
    "BatchItem",
    "BatchResult",
    "IndexingManager",
    "QueueRunResult",
    "RateLimiter",
    "RetryController",
    "check_connectivity",
]
