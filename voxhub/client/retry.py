import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

import httpx
import structlog

from voxhub.core.constants import PART_RETRY_ATTEMPTS, PART_RETRY_BASE_DELAY

T = TypeVar("T")
logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class LinearBackoff:
    base: float = PART_RETRY_BASE_DELAY

    def delay(self, attempt: int) -> float:
        return self.base * attempt


def is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return False


async def attempt_with_retries(
    operation: Callable[[int], Awaitable[T]],
    *,
    attempts: int = PART_RETRY_ATTEMPTS,
    backoff: LinearBackoff = LinearBackoff(),
    is_retryable: Callable[[BaseException], bool] = is_transient,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    for attempt in range(1, attempts + 1):
        try:
            return await operation(attempt)
        except Exception as exc:
            if attempt == attempts or not is_retryable(exc):
                raise
            delay = backoff.delay(attempt)
            if on_retry:
                on_retry(attempt, exc, delay)
            else:
                logger.warning("retry_scheduled", attempt=attempt, delay=delay, error=repr(exc))
            await sleep(delay)
    raise ValueError("attempts must be at least 1")
