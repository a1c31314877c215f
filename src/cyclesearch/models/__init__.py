"""SQLModel database models for cyclesearch."""

from cyclesearch.models.jobs import (
    TERMINAL_STATUSES,
    EmbedJob,
    EmbedJobBase,
    JobStatus,
    Level,
    record_key,
)

__all__ = [
    "TERMINAL_STATUSES",
    "EmbedJob",
    "EmbedJobBase",
    "JobStatus",
    "Level",
    "record_key",
]
