"""RateLimiter — fixed-window cap on outbound provider calls."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Allow at most *max_requests* acquisitions per *window* seconds.

    The window is evaluated lazily on each :meth:`acquire`; there is no
    background timer.  When more than one window has passed since the
    last request the counter starts over.  When the counter is exhausted
    the caller sleeps out the remainder of the window.

    Acquisitions are serialized, so concurrent callers queue behind a
    caller that is waiting out the window.
    """

    def __init__(
        self,
        max_requests: int = 3000,
        window: float = 60.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_requests < 1:
            msg = f"max_requests must be positive, got {max_requests}"
            raise ValueError(msg)
        self._max_requests = max_requests
        self._window = window
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._count = 0
        self._last_request: float | None = None

    async def acquire(self) -> None:
        """Take one slot, waiting for the window to reset if necessary."""
        async with self._lock:
            now = self._clock()
            if self._last_request is not None and now - self._last_request > self._window:
                self._count = 0

            if self._count >= self._max_requests:
                assert self._last_request is not None
                wait = self._window - (now - self._last_request)
                if wait > 0:
                    logger.info("Rate limit reached, waiting %.1fs", wait)
                    await self._sleep(wait)
                self._count = 0
                now = self._clock()

            self._count += 1
            self._last_request = now

    @property
    def max_requests(self) -> int:
        return self._max_requests

    @property
    def window(self) -> float:
        return self._window

    @property
    def count(self) -> int:
        """Acquisitions made in the current window."""
        return self._count
