"""
Bounded exponential backoff for store operations.

Only failures classified by is_transient_store_error are retried. Anything
else propagates immediately so real bugs are not hidden behind retries.
"""

import asyncio
import random
from typing import Awaitable, Callable, TypeVar

from app.core.errors import TransientStoreError, is_transient_store_error
from app.core.logging import get_logger
from app.core.metrics import record_store_retry

logger = get_logger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number `attempt` (1-based), with up to base_delay of jitter."""
    delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
    return delay + random.uniform(0, base_delay)


async def retry_transient(
    operation: str,
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    base_delay: float,
    max_delay: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Run `fn` up to `attempts` times.
    Raises TransientStoreError once the budget is exhausted.
    """
    for attempt in range(1, attempts + 1):
        try:
            return await fn()
        except Exception as exc:
            if not is_transient_store_error(exc):
                raise
            if attempt == attempts:
                raise TransientStoreError(operation, attempts) from exc

            delay = backoff_delay(attempt, base_delay, max_delay)
            record_store_retry(operation)
            logger.warning(
                "store_retry",
                operation=operation,
                attempt=attempt,
                delay_seconds=round(delay, 3),
                error=str(exc),
            )
            await sleep(delay)

    # attempts < 1
    raise TransientStoreError(operation, attempts)
