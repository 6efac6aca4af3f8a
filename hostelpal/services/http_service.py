"""HTTP helpers with retry/backoff for integrations."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

DEFAULT_RETRY_STATUSES = {429, 500, 502, 503, 504}


def _retry_delay(
    attempt: int, *, base_delay: float, max_delay: float, backoff: str
) -> float:
    if backoff == "fixed":
        return base_delay
    delay = min(max_delay, base_delay * (2**attempt))
    if delay:
        delay = delay + random.uniform(0, delay / 2)
    return delay


async def request_with_retries(
    request_fn: Callable[[], Awaitable[httpx.Response]],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    retry_statuses: set[int] | None = None,
    backoff: str = "exponential",
) -> httpx.Response:
    """
    Execute an HTTP request, retrying transport errors and retryable statuses.

    ``backoff="fixed"`` waits ``base_delay`` between every attempt; the
    default doubles it per attempt with jitter, capped at ``max_delay``.
    The last response is returned as-is once attempts are exhausted;
    the last transport error is raised.
    """
    statuses = retry_statuses or DEFAULT_RETRY_STATUSES

    for attempt in range(max_attempts):
        try:
            response = await request_fn()
        except httpx.RequestError as exc:
            if attempt >= max_attempts - 1:
                raise
            delay = _retry_delay(
                attempt, base_delay=base_delay, max_delay=max_delay, backoff=backoff
            )
            logger.warning(
                "HTTP request failed (attempt %s/%s), retrying",
                attempt + 1,
                max_attempts,
                exc_info=exc,
            )
            if delay:
                await asyncio.sleep(delay)
            continue

        if response.status_code in statuses and attempt < max_attempts - 1:
            delay = _retry_delay(
                attempt, base_delay=base_delay, max_delay=max_delay, backoff=backoff
            )
            logger.warning(
                "HTTP request returned %s (attempt %s/%s), retrying",
                response.status_code,
                attempt + 1,
                max_attempts,
            )
            if delay:
                await asyncio.sleep(delay)
            continue

        return response

    return response
