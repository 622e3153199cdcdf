from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(
    attempt: int, base_delay: float = 1.0, factor: float = 2.0, jitter: float = 0.0
) -> float:
    """Compute exponential backoff with optional jitter."""
    delay = base_delay * factor ** attempt
    return delay + random.uniform(0, jitter) if jitter else delay


async def schedule_retry(attempt: int, base_delay: float = 1.0, jitter: float = 0.0) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(attempt, base_delay=base_delay, jitter=jitter)
    await asyncio.sleep(delay)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 3,
    base_delay: float = 1.0,
    jitter: float = 0.0,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """Run ``operation`` retrying transient failures.

    Non-retryable failures propagate immediately. Once ``attempts`` calls
    have failed, the last original error is re-raised.
    """

    retryable = is_retryable or is_transient
    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as exc:
            if not retryable(exc) or attempt == attempts - 1:
                raise
            logger.warning(
                f"Transient failure (attempt {attempt + 1}/{attempts}): {exc}"
            )
            await schedule_retry(attempt, base_delay=base_delay, jitter=jitter)
    raise ValueError("attempts must be at least 1")
