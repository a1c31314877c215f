"""Vector store implementations."""

from cyclesearch.search.stores.local import LocalVectorStore

__all__ = ["LocalVectorStore"]
