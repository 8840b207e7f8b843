"""Store protocol.

The engine relies only on these primitives. There are no multi-key
transactions: every multi-key mutation is a sequence of independent writes.
"""

from __future__ import annotations

from typing import Protocol

from huddle.errors import ApiError, ApiErrorCode


class StoreError(ApiError):
    """A store call failed (connection loss, timeout, server error)."""

    def __init__(self, message: str = "Store unavailable"):
        super().__init__(ApiErrorCode.E_STORE_ERROR, message)


class KeyValueStore(Protocol):
    """String values, unordered string sets, and score-ordered sorted sets."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, *keys: str) -> int: ...

    def sadd(self, key: str, *members: str) -> int: ...

    def srem(self, key: str, *members: str) -> int: ...

    def sismember(self, key: str, member: str) -> bool: ...

    def smembers(self, key: str) -> set[str]: ...

    def zadd(self, key: str, member: str, score: float) -> int: ...

    def zrem(self, key: str, *members: str) -> int: ...

    def zrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        """Members by rank, ascending score; ties ordered by member.

        start/stop are inclusive and may be negative (counted from the end).
        """
        ...

    def zscore(self, key: str, member: str) -> float | None: ...

    def ping(self) -> bool: ...
