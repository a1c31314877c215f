"""Search layer data types — vectors, embedding records, and search hits."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from cyclesearch.models.jobs import Level

# ------------------------------------------------------------------
# Vector data
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VectorEntry:
    """A vector with its ID and metadata, ready for storage.

    Attributes:
        id: Unique identifier (the record key, e.g. ``cycle:<id>``).
        vector: Embedding vector.
        metadata: Arbitrary key-value metadata stored alongside the vector.
    """

    id: str
    vector: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class VectorSearchResult:
    """A single result from a VectorStore search.

    Attributes:
        id: Identifier of the matched entry.
        score: Similarity score (higher is more similar).
        metadata: Metadata stored with the vector.
    """

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class UpsertResult:
    """Result of a vector upsert operation."""

    upserted_count: int
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DeleteResult:
    """Result of a vector delete operation."""

    deleted_count: int


# ------------------------------------------------------------------
# Embedding records
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    """A stored embedding with the provenance of the job that produced it.

    Attributes:
        id: Composite key derived from level and source ids.
        level: Granularity of the embedded text.
        session_id: Owning session.
        vector: The embedding.
        text: Exact text embedded (the summary, for sessions).
        cycle_id: Owning cycle, if any.
        column: Source column for field-level records.
        field_label: Human-readable question for field-level records.
        version: Content version, currently always 1.
        created_at: When the record was produced.
    """

    id: str
    level: Level
    session_id: str
    vector: list[float]
    text: str
    cycle_id: str | None = None
    column: str | None = None
    field_label: str | None = None
    version: int = 1
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_entry(self) -> VectorEntry:
        """Flatten into a :class:`VectorEntry` for the vector store."""
        return VectorEntry(
            id=self.id,
            vector=self.vector,
            metadata={
                "level": self.level.value,
                "session_id": self.session_id,
                "cycle_id": self.cycle_id,
                "column": self.column,
                "field_label": self.field_label,
                "text": self.text,
                "version": self.version,
                "created_at": self.created_at.isoformat(),
            },
        )


# ------------------------------------------------------------------
# User-facing search hit
# ------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SearchHit:
    """A single ranked search result.

    Attributes:
        id: Record key of the matched embedding.
        score: Similarity (higher is more similar).
        level: Granularity of the match.
        session_id: Owning session.
        text: The embedded text that matched.
        cycle_id: Owning cycle, if any.
        column: Source column for field-level hits.
        field_label: Question label for field-level hits.
    """

    id: str
    score: float
    level: Level
    session_id: str
    text: str
    cycle_id: str | None = None
    column: str | None = None
    field_label: str | None = None

    @classmethod
    def from_result(cls, result: VectorSearchResult) -> SearchHit:
        meta = result.metadata
        return cls(
            id=result.id,
            score=result.score,
            level=Level(meta.get("level", Level.FIELD.value)),
            session_id=meta.get("session_id", ""),
            text=meta.get("text", ""),
            cycle_id=meta.get("cycle_id"),
            column=meta.get("column"),
            field_label=meta.get("field_label"),
        )

    @property
    def parent_key(self) -> str:
        """Entity this hit belongs to: its session for session hits, else its cycle.

        Field hits from session-level columns have no cycle and fall back
        to their session.
        """
        if self.level is Level.SESSION or self.cycle_id is None:
            return f"session:{self.session_id}"
        return f"cycle:{self.cycle_id}"
