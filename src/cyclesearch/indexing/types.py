"""Indexing data types — batch items and batch outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from cyclesearch.models.jobs import Level

if TYPE_CHECKING:
    from cyclesearch.models.jobs import EmbedJobBase


@dataclass(frozen=True, slots=True)
class BatchItem:
    """One embed job as seen by the dispatcher.

    Attributes:
        id: Job id in the job store.
        record_key: Vector-store key the embedding is written under.
        level: Granularity of the text.
        session_id: Owning session.
        text: Raw text (a serialization to summarize, for sessions).
        cycle_id: Owning cycle, if any.
        column: Source column for field jobs.
        field_label: Question label for field jobs.
    """

    id: str
    record_key: str
    level: Level
    session_id: str
    text: str
    cycle_id: str | None = None
    column: str | None = None
    field_label: str | None = None

    @classmethod
    def from_job(cls, job: EmbedJobBase) -> BatchItem:
        return cls(
            id=job.id,
            record_key=job.record_key,
            level=Level(job.level),
            session_id=job.session_id,
            text=job.text,
            cycle_id=job.cycle_id,
            column=job.column_name,
            field_label=job.field_label,
        )


@dataclass(frozen=True, slots=True)
class BatchError:
    """A failed item and why.

    Attributes:
        id: Job id of the failed item.
        error: Human-readable failure reason.
        retryable: Whether another attempt could succeed.
    """

    id: str
    error: str
    retryable: bool = True


@dataclass(frozen=True, slots=True)
class BatchResult:
    """Outcome of a batch run.

    Attributes:
        success: False if any item or chunk failed.
        processed: Items embedded and stored in this run.
        errors: Failed items, in dispatch order.
    """

    success: bool
    processed: int
    errors: list[BatchError] = field(default_factory=list)

    @property
    def failed_ids(self) -> list[str]:
        return [e.id for e in self.errors]


@dataclass(frozen=True, slots=True)
class QueueRunResult:
    """Outcome of one :meth:`IndexingManager.process_queue` pass.

    Attributes:
        dequeued: Pending jobs pulled from the store.
        result: Batch outcome, or None if nothing was dispatched.
        skipped: Why the pass did not dispatch, if it did not.
    """

    dequeued: int
    result: BatchResult | None = None
    skipped: str | None = None


@dataclass(frozen=True, slots=True)
class BackfillResult:
    """Counts from enqueueing jobs for existing journal rows."""

    sessions_processed: int
    cycles_processed: int
    jobs_created: int
