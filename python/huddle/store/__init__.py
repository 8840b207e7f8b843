"""Key-value / set / sorted-set store abstraction.

Provides:
- KeyValueStore: Protocol every backend implements
- RedisStore: Redis-backed store (shared across instances)
- MemoryStore: process-local store for local development and tests
"""

from huddle.store.base import KeyValueStore, StoreError
from huddle.store.memory import MemoryStore
from huddle.store.redis_store import RedisStore

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "RedisStore",
    "StoreError",
]
