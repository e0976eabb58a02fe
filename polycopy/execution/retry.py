"""Exponential-backoff retry for venue, data API and RPC calls."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import httpx
import structlog

from polycopy.exceptions import NetworkError

logger = structlog.get_logger()
T = TypeVar("T")

RETRYABLE = (httpx.TimeoutException, httpx.HTTPStatusError, httpx.TransportError)


async def with_backoff(
    coro_factory: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    operation: str = "",
) -> T:
    """Await ``coro_factory()`` until it succeeds or attempts run out.

    Transport errors and non-2xx statuses are retried with a delay of
    ``base_delay * 2**attempt``. The final failure is raised as NetworkError.
    """
    for attempt in range(max_attempts):
        try:
            return await coro_factory()
        except RETRYABLE as e:
            if attempt == max_attempts - 1:
                logger.error("network_failed", op=operation, error=str(e), attempts=attempt + 1)
                raise NetworkError(
                    f"{operation or 'request'} failed after {attempt + 1} attempts: {e}"
                ) from e
            delay = base_delay * (2 ** attempt)
            logger.warning("network_retry", op=operation, attempt=attempt + 1, delay=delay, error=str(e))
            await asyncio.sleep(delay)
    raise NetworkError(f"{operation or 'request'}: no attempts made")
