"""EmbedJob model — durable queue of pending indexing work."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


class Level(str, Enum):
    """Granularity of embedded text."""

    FIELD = "field"
    CYCLE = "cycle"
    SESSION = "session"


class JobStatus(str, Enum):
    """Lifecycle of an embed job: ``pending → processing → done | error``."""

    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


TERMINAL_STATUSES: frozenset[JobStatus] = frozenset({JobStatus.DONE, JobStatus.ERROR})


def record_key(
    level: Level | str,
    *,
    session_id: str,
    row_id: str,
    cycle_id: str | None = None,
    column_name: str | None = None,
) -> str:
    """Return the stable vector-store key for a job's output.

    ``field:<row>:<column>``, ``cycle:<cycle_id>`` or ``session:<session_id>``.
    Re-embedding the same source therefore overwrites instead of forking.
    """
    level = Level(level)
    if level is Level.FIELD:
        if not column_name:
            msg = "field-level keys require a column name"
            raise ValueError(msg)
        return f"field:{row_id}:{column_name}"
    if level is Level.CYCLE:
        return f"cycle:{cycle_id or row_id}"
    return f"session:{session_id}"


class EmbedJobBase(SQLModel):
    """Base fields for an embed job. Subclass with ``table=True`` for a concrete table."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    level: str = Field(index=True)
    session_id: str = Field(index=True)
    cycle_id: str | None = Field(default=None, index=True)
    source_table: str = Field(default="")
    row_id: str = Field(default="")
    column_name: str | None = Field(default=None)
    field_label: str | None = Field(default=None)
    record_key: str = Field(index=True)
    text: str = Field(default="")
    status: str = Field(default=JobStatus.PENDING.value, index=True)
    error_message: str | None = Field(default=None)
    version: int = Field(default=1)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    started_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )
    processed_at: datetime | None = Field(
        default=None,
        sa_type=DateTime(timezone=True),  # type: ignore[invalid-argument-type]
    )


class EmbedJob(EmbedJobBase, table=True):
    """Default embed job table — ``cyclesearch_embed_jobs``."""

    __tablename__ = "cyclesearch_embed_jobs"
