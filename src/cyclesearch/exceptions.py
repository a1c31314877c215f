"""Exception hierarchy for the indexing pipeline and search layer."""


class CycleSearchError(Exception):
    """Base exception for all cyclesearch errors."""


class ProviderUnavailableError(CycleSearchError):
    """Raised when no usable provider credentials or configuration exist.

    Not retryable: a later attempt would fail the same way until the
    provider is rebound.
    """


class ProviderCallError(CycleSearchError):
    """Raised on transient embedding or summarization API failures."""


class SummarizationError(ProviderCallError):
    """Raised when a session summary cannot be generated."""


class PersistenceError(CycleSearchError):
    """Raised when the job store or vector store fails to write."""


class QueryValidationError(CycleSearchError):
    """Raised when a generated SQL statement is not read-only."""


def is_retryable(exc: BaseException) -> bool:
    """Return whether a failed item should be handed to another attempt."""
    if isinstance(exc, (ProviderUnavailableError, QueryValidationError)):
        return False
    return not isinstance(exc, (ValueError, TypeError))
