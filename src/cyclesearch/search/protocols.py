"""Search layer protocols — async-first interfaces for embedding and vector storage."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from cyclesearch.search.filters import FilterExpression
    from cyclesearch.search.types import (
        DeleteResult,
        UpsertResult,
        VectorEntry,
        VectorSearchResult,
    )


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Async-first protocol for text-to-vector embedding.

    Implementations raise :class:`~cyclesearch.exceptions.ProviderUnavailableError`
    when they have no usable credentials and
    :class:`~cyclesearch.exceptions.ProviderCallError` on transient failures.
    """

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string into a vector."""
        ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed multiple texts into vectors."""
        ...

    @property
    def dimensions(self) -> int:
        """Number of dimensions in the embedding vectors."""
        ...

    @property
    def model_name(self) -> str:
        """Name of the embedding model."""
        ...


@runtime_checkable
class SupportsSummarize(Protocol):
    """Provider can condense a structured session serialization into prose."""

    async def summarize(self, text: str) -> str:
        """Summarize *text*; raise ``SummarizationError`` on failure."""
        ...


@runtime_checkable
class VectorStore(Protocol):
    """Async-first protocol for vector storage and search.

    ``upsert`` is keyed by entry id: writing an existing id replaces the
    previous vector and metadata.
    """

    async def upsert(self, entries: list[VectorEntry]) -> UpsertResult:
        """Insert or update vector entries."""
        ...

    async def search(
        self,
        vector: list[float],
        *,
        k: int = 10,
        filter: FilterExpression | None = None,
    ) -> list[VectorSearchResult]:
        """Return up to *k* nearest entries matching *filter*, best first."""
        ...

    async def delete(self, ids: list[str]) -> DeleteResult:
        """Delete vectors by their IDs."""
        ...

    async def fetch(self, ids: list[str]) -> list[VectorEntry | None]:
        """Fetch vectors by their IDs.  Missing IDs return ``None``."""
        ...

    async def close(self) -> None:
        """Release connection / clean up resources."""
        ...
