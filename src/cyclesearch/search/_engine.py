"""SearchEngine — cascading multi-level search over the embedding index."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from cyclesearch.exceptions import ProviderUnavailableError
from cyclesearch.models.jobs import Level
from cyclesearch.search.filters import build_filter
from cyclesearch.search.types import SearchHit

if TYPE_CHECKING:
    from collections.abc import Iterable

    from cyclesearch.search.protocols import EmbeddingProvider, VectorStore

logger = logging.getLogger(__name__)

BROAD_INTENT = re.compile(r"overall|trend|summar|aggregate", re.IGNORECASE)
"""Vocabulary marking a request for a broad, aggregate answer."""

COARSE_FIRST: tuple[Level, ...] = (Level.SESSION, Level.CYCLE, Level.FIELD)
FINE_FIRST: tuple[Level, ...] = (Level.FIELD, Level.CYCLE, Level.SESSION)


def level_order(intent: str | None) -> tuple[Level, ...]:
    """Return the level search order for *intent*: coarse-first for broad intents."""
    if intent and BROAD_INTENT.search(intent):
        return COARSE_FIRST
    return FINE_FIRST


def dedupe_by_parent(hits: Iterable[SearchHit]) -> list[SearchHit]:
    """Keep the first (best-ranked) hit per parent entity, preserving order."""
    seen: set[str] = set()
    kept: list[SearchHit] = []
    for hit in hits:
        key = hit.parent_key
        if key in seen:
            continue
        seen.add(key)
        kept.append(hit)
    return kept


class SearchEngine:
    """Orchestrates an :class:`EmbeddingProvider` and a :class:`VectorStore` for queries.

    :meth:`cascading_search` walks the levels in an intent-chosen order
    and stops at the first level that has any hits, rather than merging
    levels whose similarity scores are not comparable.  :meth:`search`
    is a single filtered lookup for callers that know their level.
    """

    def __init__(
        self,
        store: VectorStore,
        embedding_provider: EmbeddingProvider | None = None,
    ) -> None:
        self._store = store
        self._embedding_provider = embedding_provider

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def search(
        self,
        query: str,
        *,
        level: Level | str | None = None,
        session_id: str | None = None,
        limit: int = 10,
    ) -> list[SearchHit]:
        """Embed *query* and run one nearest-neighbour lookup, optionally filtered."""
        vector = await self._embed(query)
        level_value = Level(level).value if level is not None else None
        results = await self._store.search(
            vector,
            k=limit,
            filter=build_filter(level=level_value, session_id=session_id),
        )
        return [SearchHit.from_result(r) for r in results]

    async def cascading_search(self, query: str, intent: str | None = None, k: int = 8) -> list[SearchHit]:
        """Search level by level and return the first level's de-duplicated hits.

        The query is embedded once.  Within a level, hits are collapsed to
        one per parent session (session level) or parent cycle (others).
        Returns an empty list when no level yields anything.
        """
        vector = await self._embed(query)
        order = level_order(intent)

        for level in order:
            results = await self._store.search(vector, k=k, filter=build_filter(level=level.value))
            if not results:
                continue
            hits = dedupe_by_parent(SearchHit.from_result(r) for r in results)
            if hits:
                logger.debug(
                    "Cascading search matched %d %s-level hits (%d before dedup)",
                    len(hits),
                    level.value,
                    len(results),
                )
                return hits

        logger.debug("Cascading search found nothing across %s", [lv.value for lv in order])
        return []

    # ------------------------------------------------------------------
    # Provider binding
    # ------------------------------------------------------------------

    def rebind_provider(self, provider: EmbeddingProvider | None) -> None:
        """Swap the embedding provider, e.g. after credentials change."""
        self._embedding_provider = provider

    @property
    def store(self) -> VectorStore:
        return self._store

    @property
    def embedding_provider(self) -> EmbeddingProvider | None:
        return self._embedding_provider

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _embed(self, text: str) -> list[float]:
        if self._embedding_provider is None:
            msg = "Cannot search: no embedding provider configured"
            raise ProviderUnavailableError(msg)
        return await self._embedding_provider.embed(text)
