"""cyclesearch: embedding index and cascading search for work-session journals.

Queue session and cycle text as embed jobs, drain them through a
rate-limited batch dispatcher, and search the result at the field, cycle
or session level.
"""

__version__ = "0.1.0"

from cyclesearch.config import IndexingConfig
from cyclesearch.exceptions import (
    CycleSearchError,
    PersistenceError,
    ProviderCallError,
    ProviderUnavailableError,
    QueryValidationError,
    SummarizationError,
)
from cyclesearch.guard import GeneratedQuery, ensure_read_only
from cyclesearch.indexing import (
    BatchDispatcher,
    BatchError,
    BatchItem,
    BatchResult,
    IndexingManager,
    RateLimiter,
    RetryController,
)
from cyclesearch.jobs import JobStore, QueueStatus, RetentionResult
from cyclesearch.models import EmbedJob, JobStatus, Level
from cyclesearch.search import (
    EmbeddingProvider,
    EmbeddingRecord,
    LocalVectorStore,
    SearchEngine,
    SearchHit,
    SupportsSummarize,
    VectorStore,
)
from cyclesearch.search.filters import FilterExpression, and_, eq, in_, ne, or_

__all__ = [
    "BatchDispatcher",
    "BatchError",
    "BatchItem",
    "BatchResult",
    "CycleSearchError",
    "EmbedJob",
    "EmbeddingProvider",
    "EmbeddingRecord",
    "FilterExpression",
    "GeneratedQuery",
    "IndexingConfig",
    "IndexingManager",
    "JobStatus",
    "JobStore",
    "Level",
    "LocalVectorStore",
    "PersistenceError",
    "ProviderCallError",
    "ProviderUnavailableError",
    "QueryValidationError",
    "QueueStatus",
    "RateLimiter",
    "RetentionResult",
    "RetryController",
    "SearchEngine",
    "SearchHit",
    "SummarizationError",
    "SupportsSummarize",
    "VectorStore",
    "__version__",
    "and_",
    "ensure_read_only",
    "eq",
    "in_",
    "ne",
    "or_",
]
