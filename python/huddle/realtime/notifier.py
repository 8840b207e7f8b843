"""Fan-out notifier backends.

publish(channel, event, payload) reaches whoever is subscribed to the
channel right now. Nothing is persisted and nothing is retried.

Backends:
- RedisNotifier: Redis PUBLISH of {"event", "data"} JSON on the channel name
- PusherNotifier: Pusher Channels trigger (channel names made Pusher-safe)
- InMemoryNotifier: in-process subscription hub that also records every event
"""

import json
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import pusher
import redis

from huddle.logging import get_logger

logger = get_logger(__name__)


class Notifier(Protocol):
    """Protocol for realtime fan-out."""

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        """Deliver payload to current subscribers of channel.

        Raises:
            Any transport error. Callers that must not fail use publish_best_effort.
        """
        ...


def publish_best_effort(
    notifier: Notifier, channel: str, event: str, payload: dict[str, Any]
) -> bool:
    """Publish and swallow transport failures.

    Fan-out is best-effort: a publish failure after a successful mutation is
    logged and never turned into an error response.

    Returns:
        True if the backend accepted the publish.
    """
    try:
        notifier.publish(channel, event, payload)
        return True
    except Exception as e:
        logger.warning("fanout_failed", channel=channel, fanout_event=event, error=str(e))
        return False


class RedisNotifier:
    """Publishes JSON envelopes with Redis PUBLISH."""

    def __init__(self, client: redis.Redis):
        self._redis = client

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        message = json.dumps({"event": event, "data": payload}, separators=(",", ":"))
        receivers = self._redis.publish(channel, message)
        logger.debug("fanout_published", channel=channel, fanout_event=event, receivers=receivers)


def pusher_channel_name(channel: str) -> str:
    """Pusher channel names may not contain ':'."""
    return channel.replace(":", "__")


class PusherNotifier:
    """Publishes through Pusher Channels."""

    def __init__(self, client: pusher.Pusher):
        self._client = client

    @classmethod
    def from_credentials(
        cls, app_id: str, key: str, secret: str, cluster: str
    ) -> "PusherNotifier":
        return cls(pusher.Pusher(app_id=app_id, key=key, secret=secret, cluster=cluster, ssl=True))

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        self._client.trigger(pusher_channel_name(channel), event, payload)


@dataclass
class PublishedEvent:
    channel: str
    event: str
    payload: dict[str, Any]


@dataclass
class Subscription:
    channel: str
    callback: Callable[[PublishedEvent], None]


@dataclass
class InMemoryNotifier:
    """Registers subscriptions and delivers events synchronously.

    Every published event is also appended to `events`, which tests use to
    assert on fan-out.
    """

    events: list[PublishedEvent] = field(default_factory=list)
    _subscriptions: dict[str, list[Subscription]] = field(
        default_factory=dict, init=False, repr=False
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def subscribe(
        self, channel: str, callback: Callable[[PublishedEvent], None]
    ) -> Subscription:
        subscription = Subscription(channel=channel, callback=callback)
        with self._lock:
            self._subscriptions.setdefault(channel, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subs = self._subscriptions.get(subscription.channel)
            if not subs or subscription not in subs:
                return
            subs.remove(subscription)
            if not subs:
                self._subscriptions.pop(subscription.channel, None)

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        published = PublishedEvent(channel=channel, event=event, payload=payload)
        with self._lock:
            self.events.append(published)
            listeners = list(self._subscriptions.get(channel, []))
        for subscription in listeners:
            subscription.callback(published)

    def on(self, channel: str, event: str | None = None) -> list[PublishedEvent]:
        """Recorded events for a channel, optionally filtered by event name."""
        return [
            e for e in self.events if e.channel == channel and (event is None or e.event == event)
        ]

    def clear(self) -> None:
        with self._lock:
            self.events.clear()
