import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from shelf_catalog.config import RETRY_ATTEMPTS, RETRY_BASE_DELAY_SECONDS
from shelf_catalog.errors import TransientServiceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


async def call_with_retry(
    fn: Callable[[], T],
    *,
    label: str,
    attempts: int = RETRY_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY_SECONDS,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run a blocking call in a worker thread, retrying transient failures.

    Waits base_delay * 2**(attempt-1) between attempts (2s, 4s, 8s...).
    Anything that is not a TransientServiceError propagates on the first
    attempt without consuming the retry budget.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            return await asyncio.to_thread(fn)
        except TransientServiceError as exc:
            if attempt == attempts:
                logger.error("%s failed after %s attempts: %s", label, attempts, exc)
                raise
            wait = base_delay * 2 ** (attempt - 1)
            logger.warning("%s failed (attempt %s/%s): %s; retrying in %.0fs", label, attempt, attempts, exc, wait)
            await sleep(wait)
    raise AssertionError("unreachable")
