"""Realtime fan-out.

Provides:
- Notifier: Protocol for publish(channel, event, payload)
- RedisNotifier / PusherNotifier / InMemoryNotifier backends
- publish_best_effort: publish that logs and swallows transport failures
- Channel builders and event names
"""

from huddle.realtime.notifier import (
    InMemoryNotifier,
    Notifier,
    PublishedEvent,
    PusherNotifier,
    RedisNotifier,
    publish_best_effort,
)

__all__ = [
    "InMemoryNotifier",
    "Notifier",
    "PublishedEvent",
    "PusherNotifier",
    "RedisNotifier",
    "publish_best_effort",
]
