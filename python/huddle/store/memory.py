"""Process-local store with Redis-compatible semantics.

Used for local development and tests. Each call holds a single lock, so
individual calls are atomic; multi-call sequences are not, same as Redis.
"""

from __future__ import annotations

import threading


class MemoryStore:
    """In-memory KeyValueStore."""

    def __init__(self) -> None:
        self._strings: dict[str, str] = {}
        self._sets: dict[str, set[str]] = {}
        self._zsets: dict[str, dict[str, float]] = {}
        self._lock = threading.Lock()

    # =========================================================================
    # Strings
    # =========================================================================

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._strings.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._drop(key)
            self._strings[key] = value

    def delete(self, *keys: str) -> int:
        with self._lock:
            return sum(1 for key in keys if self._drop(key))

    # =========================================================================
    # Sets
    # =========================================================================

    def sadd(self, key: str, *members: str) -> int:
        with self._lock:
            bucket = self._sets.setdefault(key, set())
            added = len(set(members) - bucket)
            bucket.update(members)
            return added

    def srem(self, key: str, *members: str) -> int:
        with self._lock:
            bucket = self._sets.get(key)
            if not bucket:
                return 0
            removed = len(bucket & set(members))
            bucket.difference_update(members)
            if not bucket:
                del self._sets[key]
            return removed

    def sismember(self, key: str, member: str) -> bool:
        with self._lock:
            return member in self._sets.get(key, ())

    def smembers(self, key: str) -> set[str]:
        with self._lock:
            return set(self._sets.get(key, ()))

    # =========================================================================
    # Sorted sets
    # =========================================================================

    def zadd(self, key: str, member: str, score: float) -> int:
        with self._lock:
            zset = self._zsets.setdefault(key, {})
            is_new = member not in zset
            zset[member] = score
            return 1 if is_new else 0

    def zrem(self, key: str, *members: str) -> int:
        with self._lock:
            zset = self._zsets.get(key)
            if not zset:
                return 0
            removed = 0
            for member in members:
                if zset.pop(member, None) is not None:
                    removed += 1
            if not zset:
                del self._zsets[key]
            return removed

    def zrange(self, key: str, start: int = 0, stop: int = -1) -> list[str]:
        with self._lock:
            zset = self._zsets.get(key)
            if not zset:
                return []
            ordered = sorted(zset.items(), key=lambda item: (item[1], item[0]))
            size = len(ordered)
            if start < 0:
                start = max(size + start, 0)
            if stop < 0:
                stop = size + stop
            if start > stop or start >= size:
                return []
            return [member for member, _ in ordered[start : stop + 1]]

    def zscore(self, key: str, member: str) -> float | None:
        with self._lock:
            return self._zsets.get(key, {}).get(member)

    def ping(self) -> bool:
        return True

    def _drop(self, key: str) -> bool:
        found = False
        for space in (self._strings, self._sets, self._zsets):
            if key in space:
                del space[key]
                found = True
        return found
