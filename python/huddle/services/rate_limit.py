"""Injectable rate limiting.

RateLimiter.allow(key) answers whether one more action under `key` fits in
the sliding window. Implementations:

- RedisRateLimiter: sorted-set sliding window shared by every instance
- InMemoryRateLimiter: per-process sliding window (local/test)
- NoOpRateLimiter: never limits

Redis keys:
- rate:{key} - one member per accepted or attempted action, scored by time

Fail mode:
- Redis unavailable: fail open
"""

import threading
import time
import uuid
from collections import deque
from typing import Protocol

import redis

from huddle.errors import RateLimitedError
from huddle.logging import get_logger
from huddle.services.redact import safe_kv

logger = get_logger(__name__)


class RateLimiter(Protocol):
    def allow(self, key: str) -> bool: ...


class RedisRateLimiter:
    """Sliding window limiter on Redis sorted sets."""

    def __init__(self, redis_client: redis.Redis, limit: int, window_seconds: int):
        self._redis = redis_client
        self._limit = limit
        self._window_seconds = window_seconds

    def allow(self, key: str) -> bool:
        redis_key = f"rate:{key}"
        now_ts = time.time()
        window_start_ts = now_ts - self._window_seconds

        try:
            pipe = self._redis.pipeline()
            # Remove old entries
            pipe.zremrangebyscore(redis_key, 0, window_start_ts)
            # Add current attempt
            pipe.zadd(redis_key, {f"{now_ts}:{uuid.uuid4().hex}": now_ts})
            # Count entries in window
            pipe.zcount(redis_key, window_start_ts, now_ts)
            pipe.expire(redis_key, self._window_seconds * 2)
            results = pipe.execute()
        except redis.RedisError as e:
            logger.warning("rate_limit_check_failed", error=str(e))
            return True

        return results[2] <= self._limit


class InMemoryRateLimiter:
    """Sliding window limiter held in process memory."""

    def __init__(self, limit: int, window_seconds: int):
        self._limit = limit
        self._window_seconds = window_seconds
        self._hits: dict[str, deque[float]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        now = time.monotonic()
        with self._lock:
            hits = self._hits.setdefault(key, deque())
            while hits and hits[0] <= now - self._window_seconds:
                hits.popleft()
            if len(hits) >= self._limit:
                return False
            hits.append(now)
            return True


class NoOpRateLimiter:
    """Rate limiter that never limits."""

    def allow(self, key: str) -> bool:
        return True


def enforce(limiter: RateLimiter | None, key: str) -> None:
    """Raise if the limiter rejects one more action under key.

    Raises:
        RateLimitedError(E_RATE_LIMITED)
    """
    if limiter is None:
        return
    if not limiter.allow(key):
        limit_type = key.split(":", 1)[0]
        logger.warning("rate_limit.blocked", **safe_kv(limit_type=limit_type))
        raise RateLimitedError(f"Too many {limit_type} requests, slow down")
