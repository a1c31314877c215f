"""LocalVectorStore — in-process usearch HNSW vector store."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np
from usearch.index import Index

from cyclesearch.search.filters import matches
from cyclesearch.search.types import DeleteResult, UpsertResult, VectorEntry, VectorSearchResult

if TYPE_CHECKING:
    from cyclesearch.search.filters import FilterExpression

logger = logging.getLogger(__name__)

_INDEX_FILE = "embeddings.usearch"
_META_FILE = "embeddings_meta.json"


class LocalVectorStore:
    """In-process vector store backed by a usearch HNSW index.

    Implements the ``VectorStore`` protocol.  Entries are keyed by their
    string id; upserting an existing id replaces it.  Filtered searches
    run exhaustively over the index so that sparse levels are never
    crowded out by over-fetch limits.

    Thread-safe via :class:`threading.Lock`.
    """

    def __init__(self, *, dimension: int, metric: str = "cosine") -> None:
        usearch_metric = "cos" if metric == "cosine" else metric
        self._dimension = dimension
        self._metric = metric

        self._index = Index(ndim=dimension, metric=usearch_metric, dtype="f32")
        self._lock = threading.Lock()
        self._next_key: int = 0

        # key → metadata (includes "id", "vector", plus any user metadata)
        self._key_to_meta: dict[int, dict[str, Any]] = {}
        # id → usearch key
        self._id_to_key: dict[str, int] = {}

    # ------------------------------------------------------------------
    # VectorStore protocol
    # ------------------------------------------------------------------

    async def upsert(self, entries: list[VectorEntry]) -> UpsertResult:
        """Insert or update vector entries."""
        count = 0
        for entry in entries:
            if len(entry.vector) != self._dimension:
                msg = (
                    f"Vector for {entry.id!r} has {len(entry.vector)} dimensions, "
                    f"store expects {self._dimension}"
                )
                raise ValueError(msg)

            if entry.id in self._id_to_key:
                self._remove_by_id(entry.id)

            vector = np.array(entry.vector, dtype=np.float32)
            key = self._next_key
            self._next_key += 1

            with self._lock:
                self._index.add(key, vector)

            self._key_to_meta[key] = {
                "id": entry.id,
                "vector": list(entry.vector),
                **entry.metadata,
            }
            self._id_to_key[entry.id] = key
            count += 1

        return UpsertResult(upserted_count=count)

    async def search(
        self,
        vector: list[float],
        *,
        k: int = 10,
        filter: FilterExpression | None = None,  # noqa: A002
    ) -> list[VectorSearchResult]:
        """Search for the *k* nearest vectors."""
        if len(self) == 0 or k <= 0:
            return []

        query = np.array(vector, dtype=np.float32)
        effective_k = len(self) if filter is not None else min(k, len(self))

        with self._lock:
            found = self._index.search(query, effective_k, exact=filter is not None)

        results: list[VectorSearchResult] = []
        for match_key, distance in zip(found.keys.tolist(), found.distances.tolist(), strict=True):
            meta = self._key_to_meta.get(int(match_key))
            if meta is None:
                continue
            if filter is not None and not matches(filter, meta):
                continue

            result_meta = {mk: mv for mk, mv in meta.items() if mk not in ("id", "vector")}
            results.append(
                VectorSearchResult(
                    id=meta["id"],
                    score=1.0 - float(distance),
                    metadata=result_meta,
                )
            )

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:k]

    async def delete(self, ids: list[str]) -> DeleteResult:
        """Delete vectors by their IDs."""
        count = sum(1 for entry_id in ids if self._remove_by_id(entry_id))
        return DeleteResult(deleted_count=count)

    async def fetch(self, ids: list[str]) -> list[VectorEntry | None]:
        """Fetch vectors by their IDs."""
        results: list[VectorEntry | None] = []
        for entry_id in ids:
            key = self._id_to_key.get(entry_id)
            meta = self._key_to_meta.get(key) if key is not None else None
            if meta is None:
                results.append(None)
                continue
            user_meta = {mk: mv for mk, mv in meta.items() if mk not in ("id", "vector")}
            results.append(VectorEntry(id=meta["id"], vector=meta.get("vector", []), metadata=user_meta))
        return results

    async def close(self) -> None:
        """No-op for local store."""

    @property
    def dimension(self) -> int:
        return self._dimension

    # ------------------------------------------------------------------
    # Local-specific methods
    # ------------------------------------------------------------------

    def has(self, entry_id: str) -> bool:
        """Return whether *entry_id* is present in the store."""
        return entry_id in self._id_to_key

    def __len__(self) -> int:
        """Return the number of indexed entries."""
        return len(self._key_to_meta)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, directory: str | Path) -> None:
        """Persist the index and metadata to *directory*."""
        dir_path = Path(directory)
        dir_path.mkdir(parents=True, exist_ok=True)

        with self._lock:
            self._index.save(str(dir_path / _INDEX_FILE))

        # Vectors live in the usearch file; the sidecar only carries metadata.
        serializable_meta = {
            str(k): {mk: mv for mk, mv in v.items() if mk != "vector"}
            for k, v in self._key_to_meta.items()
        }
        sidecar: dict[str, Any] = {
            "dimension": self._dimension,
            "next_key": self._next_key,
            "key_to_meta": serializable_meta,
        }
        with (dir_path / _META_FILE).open("w") as f:
            json.dump(sidecar, f)
        logger.debug("Saved %d embeddings to %s", len(self), dir_path)

    def load(self, directory: str | Path) -> None:
        """Load a previously saved index from *directory*."""
        dir_path = Path(directory)

        with (dir_path / _META_FILE).open() as f:
            sidecar = json.load(f)
        if sidecar.get("dimension", self._dimension) != self._dimension:
            msg = f"Saved index has dimension {sidecar['dimension']}, store expects {self._dimension}"
            raise ValueError(msg)

        with self._lock:
            self._index.load(str(dir_path / _INDEX_FILE))

        self._next_key = sidecar["next_key"]
        self._key_to_meta = {}
        self._id_to_key = {}
        for k_str, meta in sidecar.get("key_to_meta", {}).items():
            key = int(k_str)
            stored = self._index.get(key)
            if stored is not None:
                meta["vector"] = np.asarray(stored, dtype=np.float32).reshape(-1).tolist()
            self._key_to_meta[key] = meta
            self._id_to_key[meta["id"]] = key

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _remove_by_id(self, entry_id: str) -> bool:
        """Remove a single entry by ID. Returns True if found."""
        key = self._id_to_key.pop(entry_id, None)
        if key is None:
            return False
        self._key_to_meta.pop(key, None)
        with self._lock:
            self._index.remove(key)
        return True
