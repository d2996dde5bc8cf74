"""
Retry helper with exponential backoff for network calls.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

import aiohttp

from unit_storage.exceptions import TransientNetworkError

log = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    aiohttp.ClientConnectionError,
    aiohttp.ClientPayloadError,
    asyncio.TimeoutError,
)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    *,
    retries: int = 3,
    backoff_ms: int = 300,
    description: str = "request",
) -> T:
    """
    Runs ``operation`` until it succeeds or the retry budget is spent.

    ``retries`` counts extra attempts, so the default of 3 makes 4 attempts in
    total. Attempt ``n`` (0-based) that fails waits ``backoff_ms * 2**n``
    before the next one. Only network-level failures are retried; HTTP status
    handling is left to the operation.

    Raises:
        TransientNetworkError: If every attempt failed.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except RETRYABLE_ERRORS as e:
            if attempt >= retries:
                raise TransientNetworkError(
                    f"Network error during {description} after {retries + 1} "
                    f"attempts: {e}"
                ) from e
            delay_s = backoff_ms * (2**attempt) / 1000
            log.debug(
                f"{description} attempt {attempt + 1}/{retries + 1} failed: {e}. "
                f"Retrying in {delay_s:.2f}s..."
            )
            await asyncio.sleep(delay_s)
            attempt += 1
