"""Network reachability probe run before draining the queue."""

from __future__ import annotations

import logging

import httpx

from cyclesearch.config import DEFAULT_CONNECTIVITY_URL

logger = logging.getLogger(__name__)


async def check_connectivity(
    url: str = DEFAULT_CONNECTIVITY_URL,
    *,
    timeout: float = 5.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> bool:
    """Return True if a ``HEAD`` request to *url* succeeds within *timeout*.

    Any transport error, timeout or non-2xx response counts as offline.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.head(url)
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.info("Connectivity check failed: %s", exc)
        return False
    if not response.is_success:
        logger.info("Connectivity check got HTTP %d", response.status_code)
        return False
    return True
