"""Tests for fan-out backends."""

import json
from unittest.mock import MagicMock

from huddle.realtime import (
    InMemoryNotifier,
    PusherNotifier,
    RedisNotifier,
    channels,
    publish_best_effort,
)
from huddle.realtime.notifier import pusher_channel_name


class TestInMemoryNotifier:
    def test_records_and_delivers(self):
        notifier = InMemoryNotifier()
        received = []
        notifier.subscribe("chat:a--b", received.append)

        notifier.publish("chat:a--b", channels.NEW_MESSAGE, {"id": "m1"})
        notifier.publish("chat:c--d", channels.NEW_MESSAGE, {"id": "m2"})

        assert [e.payload["id"] for e in received] == ["m1"]
        assert len(notifier.events) == 2
        assert [e.payload["id"] for e in notifier.on("chat:c--d")] == ["m2"]

    def test_unsubscribe_stops_delivery(self):
        notifier = InMemoryNotifier()
        received = []
        subscription = notifier.subscribe("group:g1", received.append)
        notifier.unsubscribe(subscription)
        notifier.unsubscribe(subscription)

        notifier.publish("group:g1", channels.POLL_UPDATED, {})

        assert received == []

    def test_on_filters_by_event(self):
        notifier = InMemoryNotifier()
        notifier.publish("group:g1", channels.NEW_MESSAGE, {})
        notifier.publish("group:g1", channels.MESSAGE_UPDATED, {})
        assert len(notifier.on("group:g1", channels.MESSAGE_UPDATED)) == 1


class TestRedisNotifier:
    def test_publishes_json_envelope(self):
        client = MagicMock()
        RedisNotifier(client).publish("chat:a--b", "new-message", {"id": "m1"})

        channel, message = client.publish.call_args.args
        assert channel == "chat:a--b"
        assert json.loads(message) == {"event": "new-message", "data": {"id": "m1"}}


class TestPusherNotifier:
    def test_channel_names_made_safe(self):
        assert pusher_channel_name("user:u1:chats") == "user__u1__chats"

    def test_trigger(self):
        client = MagicMock()
        PusherNotifier(client).publish("group:g1", "poll-updated", {"id": "m1"})
        client.trigger.assert_called_once_with("group__g1", "poll-updated", {"id": "m1"})


class TestPublishBestEffort:
    def test_failure_is_swallowed(self):
        notifier = MagicMock()
        notifier.publish.side_effect = ConnectionError("down")
        assert publish_best_effort(notifier, "c", "e", {}) is False

    def test_success(self):
        assert publish_best_effort(InMemoryNotifier(), "c", "e", {}) is True


class TestChannels:
    def test_conversation_channels(self):
        assert channels.conversation_channel("a--b") == "chat:a--b"
        assert channels.conversation_channel("group:g1") == "group:g1"
        assert channels.typing_channel("a--b") == "chat:a--b:typing"

    def test_user_channels(self):
        assert channels.user_chats_channel("u") == "user:u:chats"
        assert channels.user_groups_channel("u") == "user:u:groups"
        assert channels.user_join_requests_channel("u") == "user:u:group_entry_requests"
        assert channels.user_friends_channel("u") == "user:u:friends"
