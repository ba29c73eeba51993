from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Iterator, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(attempt: int, base: float = 0.05, jitter: float = 0.05) -> float:
    """Compute exponential backoff with jitter."""
    delay = base * 2**attempt
    return delay + random.uniform(0, jitter)


def poll_intervals(floor: float, ceiling: float, factor: float = 2.0) -> Iterator[float]:
    """Yield poll delays starting at ``floor`` and growing up to ``ceiling``."""
    delay = floor
    while True:
        yield delay
        delay = min(delay * factor, ceiling)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    description: str = "operation",
) -> T:
    """Await ``operation`` until it succeeds, sleeping between failures.

    The last exception is re-raised once ``attempts`` are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            attempt += 1
            if attempt >= attempts:
                raise
            delay = compute_backoff(attempt - 1)
            logger.warning(
                f"{description} failed (attempt {attempt}/{attempts}): {exc}; "
                f"retrying in {delay:.3f}s"
            )
            await asyncio.sleep(delay)
