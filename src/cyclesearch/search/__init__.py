"""Vector search layer — engine, stores, embedding providers."""

from cyclesearch.search._engine import SearchEngine, dedupe_by_parent, level_order
from cyclesearch.search.protocols import EmbeddingProvider, SupportsSummarize, VectorStore
from cyclesearch.search.stores.local import LocalVectorStore
from cyclesearch.search.types import EmbeddingRecord, SearchHit

__all__ = [
    "EmbeddingProvider",
    "EmbeddingRecord",
    "LocalVectorStore",
    "SearchEngine",
    "SearchHit",
    "SupportsSummarize",
    "VectorStore",
    "dedupe_by_parent",
    "level_order",
]
