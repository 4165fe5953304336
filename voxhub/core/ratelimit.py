from collections import deque
from time import monotonic

from voxhub.core.errors import RateLimited

_MEMORY_BUCKET: dict[str, deque[float]] = {}


def rate_limit(key: str, limit: int, window_seconds: int) -> None:
    now = monotonic()
    bucket = _MEMORY_BUCKET.setdefault(key, deque())
    while bucket and (now - bucket[0]) > window_seconds:
        bucket.popleft()
    if len(bucket) >= limit:
        raise RateLimited("Too many upload requests, slow down")
    bucket.append(now)


def reset_rate_limits() -> None:
    _MEMORY_BUCKET.clear()
