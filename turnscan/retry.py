"""Bounded retry for device probing.

Only detection and responsiveness probing are retried. The capture command
itself is never passed through here, so a failed shutter trip is reported
instead of repeated.
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from turnscan.utils import get_logger

logger = get_logger("retry")

T = TypeVar("T")


@dataclass
class RetryResult(Generic[T]):
    """Outcome of a retried operation."""
    success: bool
    value: Optional[T]
    attempts: int
    last_error: Optional[BaseException] = None


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    delay: float = 1.0,
    predicate: Callable[[T], bool] = bool,
    before_attempt: Optional[Callable[[], Awaitable[None]]] = None,
    description: str = "operation",
) -> RetryResult[T]:
    """
    Run an async operation until its result satisfies a predicate.

    Exceptions raised by the operation count as failed attempts. The last
    value (or None) is returned with ``success=False`` once attempts run out;
    this function never raises for operation failures.

    Args:
        operation: Zero-argument coroutine factory
        attempts: Maximum number of attempts (at least 1)
        delay: Fixed seconds between attempts
        predicate: Success test applied to each result
        before_attempt: Coroutine awaited before every attempt
        description: Label used in log messages

    Returns:
        RetryResult with the final value and attempt count
    """
    attempts = max(1, attempts)
    value: Optional[T] = None
    last_error: Optional[BaseException] = None

    for attempt in range(1, attempts + 1):
        if before_attempt is not None:
            await before_attempt()

        try:
            value = await operation()
            if predicate(value):
                logger.debug(f"{description} succeeded on attempt {attempt}")
                return RetryResult(success=True, value=value, attempts=attempt)
            logger.debug(f"{description} attempt {attempt}/{attempts} unsuccessful")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            logger.debug(f"{description} attempt {attempt}/{attempts} error: {e}")

        if attempt < attempts and delay > 0:
            await asyncio.sleep(delay)

    logger.info(f"{description} gave up after {attempts} attempts")
    return RetryResult(success=False, value=value, attempts=attempts, last_error=last_error)
