"""Tunables for the indexing pipeline and search engine."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

DEFAULT_BATCH_SIZE: int = 96
"""Practical per-request ceiling of the embedding provider."""

DEFAULT_CONNECTIVITY_URL = "https://dns.google/resolve?name=google.com&type=A"


@dataclass(frozen=True, slots=True)
class IndexingConfig:
    """Configuration shared by the dispatcher, retry controller and manager.

    Attributes:
        batch_size: Items dispatched concurrently per chunk.
        max_retries: Total attempts made by the retry controller.
        initial_delay: Backoff before the second attempt, in seconds.
        max_requests_per_minute: Provider calls allowed per rate window.
        rate_window: Length of the rate-limiter window, in seconds.
        dequeue_limit: Jobs pulled from the store per ``process_queue`` run.
        search_k: Nearest neighbours fetched per level in cascading search.
        done_retention: Age after which ``done`` jobs are swept.
        error_retention: Age after which ``error`` jobs are swept.
        stale_processing_after: Age after which a ``processing`` job is
            considered abandoned by a crashed dispatcher.
        connectivity_url: Endpoint probed before draining the queue.
        connectivity_timeout: Probe timeout, in seconds.
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    max_retries: int = 3
    initial_delay: float = 1.0
    max_requests_per_minute: int = 3000
    rate_window: float = 60.0
    dequeue_limit: int = 50
    search_k: int = 8
    done_retention: timedelta = timedelta(days=7)
    error_retention: timedelta = timedelta(days=30)
    stale_processing_after: timedelta = timedelta(hours=1)
    connectivity_url: str = DEFAULT_CONNECTIVITY_URL
    connectivity_timeout: float = 5.0

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            msg = f"batch_size must be positive, got {self.batch_size}"
            raise ValueError(msg)
        if self.max_retries < 1:
            msg = f"max_retries must be positive, got {self.max_retries}"
            raise ValueError(msg)
        if self.max_requests_per_minute < 1:
            msg = f"max_requests_per_minute must be positive, got {self.max_requests_per_minute}"
            raise ValueError(msg)
