"""
Bounded retry for network mutations.

WHAT: Run an async operation up to max_retries + 1 times with a fixed delay
WHY: Ride out transient network failures without user intervention
HOW: In-order attempt loop; the last error propagates unchanged

The controller does not interpret errors. Deciding that a failure is really
an "already done" success is left to the caller.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from ..core.config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int | None = None,
    delay: float | None = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "operation"
) -> T:
    """
    Attempt `operation` until it succeeds or the retry budget runs out.

    Args:
        operation: Zero-argument coroutine factory (called once per attempt)
        max_retries: Extra attempts after the first (default settings.RETRY_MAX_RETRIES)
        delay: Fixed seconds between attempts (default settings.RETRY_DELAY)
        sleep: Awaitable sleep; cancelling the calling task cancels the wait
        label: Name used in log lines

    Returns:
        Result of the first successful attempt

    Raises:
        The exception from the final attempt. asyncio.CancelledError is
        never retried.
    """
    if max_retries is None:
        max_retries = settings.RETRY_MAX_RETRIES
    if delay is None:
        delay = settings.RETRY_DELAY
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    last_error: Exception | None = None

    for attempt in range(max_retries + 1):
        try:
            if attempt > 0:
                logger.info(f"Retry attempt {attempt}/{max_retries} for {label}")
            result = await operation()
            if attempt > 0:
                logger.info(f"{label} recovered after {attempt} failed attempts")
            return result
        except Exception as e:
            last_error = e
            logger.warning(f"{label} attempt {attempt + 1}/{max_retries + 1} failed: {e}")
            if attempt < max_retries:
                await sleep(delay)

    logger.error(f"All {max_retries + 1} attempts failed for {label}")
    raise last_error
