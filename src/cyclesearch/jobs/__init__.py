"""Embed job queue — persistence and job construction."""

from cyclesearch.jobs.builders import (
    cycle_text,
    enqueue_cycle_job,
    enqueue_field_jobs,
    enqueue_session_job,
    field_texts,
    session_text,
)
from cyclesearch.jobs.store import JobStore, QueueStatus, RetentionResult

__all__ = [
    "JobStore",
    "QueueStatus",
    "RetentionResult",
    "cycle_text",
    "enqueue_cycle_job",
    "enqueue_field_jobs",
    "enqueue_session_job",
    "field_texts",
    "session_text",
]
