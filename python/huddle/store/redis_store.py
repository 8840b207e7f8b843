"""Redis-backed store.

Wraps a sync redis client created with decode_responses=True. Any
redis.RedisError is re-raised as StoreError so routes answer E_STORE_ERROR.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import redis

from huddle.logging import get_logger
from huddle.store.base import StoreError

logger = get_logger(__name__)

T = TypeVar("T")


class RedisStore:
    """KeyValueStore over a shared Redis instance."""

    def __init__(self, client: redis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = 5.0) -> "RedisStore":
        return cls(redis.Redis.from_url(url, decode_responses=True, socket_timeout=socket_timeout))

    @property
    def client(self) -> redis.Redis:
        return self._redis

    def _call(self, op: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            return fn(*args)
        except redis.RedisError as e:
            logger.error("store_call_failed", op=op, error=str(e))
            raise StoreError() from e

    def get(self, key: str) -> str | None:
        return self._call("get", self._redis.get, key)

    def set(self, key: str, value: str) -> None:
        self._call("set", self._redis.set, key, value)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return self._call("delete", self._redis.delete, *keys)

    def sadd(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return self._call("sadd", self._redis.sadd, key, *members)

    def srem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return self._call("srem", self._redis.srem, key, *members)

    def sismember(self, key: str, member: str) -> bool:
        return bool(self._call("sismember", self._redis.sismember, key, member))

    def smembers(self, key: str) -> set[str]:
        return set(self._call("smembers", self._redis.smembers, key))

    def zadd(self, key: str, member: str, score: float) -> int:
        return self._call("zadd", self._redis.zadd, key, {member: score})

    def zrem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return self._call("zrem", self._redis.zrem, key, *members)

    def zrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        return list(self._call("zrange", self._redis.zrange, key, start, stop))

    def zscore(self, key: str, member: str) -> float | None:
        return self._call("zscore", self._redis.zscore, key, member)

    def ping(self) -> bool:
        try:
            return bool(self._redis.ping())
        except redis.RedisError:
            return False

    def close(self) -> None:
        try:
            self._redis.close()
        except redis.RedisError as e:
            logger.warning("store_close_failed", error=str(e))
