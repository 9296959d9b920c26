"""Retry-with-backoff helper shared by every oracle call site."""

import asyncio
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from cayman_watch.utils.logging import get_logger

LOGGER = get_logger(__name__)

T = TypeVar("T")


def backoff_delay_seconds(attempt: int, base_delay_ms: int) -> float:
    """Delay before the next attempt, doubling each time.

    Args:
        attempt: 1-based number of the attempt that just failed
        base_delay_ms: Delay after the first failure, in milliseconds

    Returns:
        Seconds to sleep
    """
    return (base_delay_ms * (2 ** (attempt - 1))) / 1000.0


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay_ms: int = 2000,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    give_up_on: Tuple[Type[BaseException], ...] = (),
    operation: str = "operation",
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> T:
    """Await ``fn`` until it succeeds or the attempt bound is reached.

    Args:
        fn: Zero-argument coroutine factory, called once per attempt
        max_attempts: Total number of attempts (not retries)
        base_delay_ms: Base delay for exponential backoff
        retry_on: Exception types that trigger another attempt; anything
            else propagates immediately
        give_up_on: Subclasses of ``retry_on`` that propagate without retry
        operation: Label used in log messages
        sleep: Sleep coroutine, replaceable in tests

    Returns:
        The first successful result

    Raises:
        The last exception raised by ``fn`` once attempts are exhausted
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    sleep = sleep or asyncio.sleep

    for attempt in range(1, max_attempts + 1):
        try:
            return await fn()
        except retry_on as e:
            if give_up_on and isinstance(e, give_up_on):
                LOGGER.error(
                    f"{operation} failed with a non-retryable error: {e}",
                    extra={"operation": operation, "attempt": attempt},
                )
                raise
            if attempt >= max_attempts:
                LOGGER.error(
                    f"{operation} failed after {max_attempts} attempts: {e}",
                    extra={"operation": operation, "attempts": max_attempts},
                )
                raise

            delay = backoff_delay_seconds(attempt, base_delay_ms)
            LOGGER.warning(
                f"{operation} failed (attempt {attempt}/{max_attempts}), "
                f"retrying in {delay:.2f}s: {e}",
                extra={"operation": operation, "attempt": attempt, "delay_seconds": delay},
            )
            await sleep(delay)

    # Unreachable: the loop either returns or raises.
    raise RuntimeError(f"{operation} exhausted retries")
