"""Tests for friend requests and friendship."""

import pytest

from huddle.errors import ApiError, ApiErrorCode, RateLimitedError
from huddle.realtime import channels
from huddle.services import friends as friends_service
from huddle.services import messages as messages_service
from huddle.services.identity import direct_chat_key
from huddle.services.rate_limit import InMemoryRateLimiter
from huddle.store import keys


@pytest.fixture
def alice(make_user):
    return make_user(name="Alice", email="alice@example.com")


@pytest.fixture
def bob(make_user):
    return make_user(name="Bob")


class TestSendFriendRequest:
    def test_creates_pending_request(self, store, notifier, alice, bob):
        status = friends_service.send_friend_request(store, notifier, alice, bob)

        assert status == "pending"
        assert store.sismember(keys.user_incoming_friend_requests(bob), alice)
        [event] = notifier.on(
            channels.user_incoming_friend_requests_channel(bob), channels.INCOMING_FRIEND_REQUEST
        )
        assert event.payload == {
            "senderId": alice,
            "senderName": "Alice",
            "senderEmail": "alice@example.com",
        }

    def test_duplicate_request_stays_pending(self, store, notifier, alice, bob):
        friends_service.send_friend_request(store, notifier, alice, bob)
        notifier.clear()

        assert friends_service.send_friend_request(store, notifier, alice, bob) == "pending"
        assert notifier.events == []

    def test_crossed_request_accepts(self, store, notifier, alice, bob):
        friends_service.send_friend_request(store, notifier, alice, bob)

        assert friends_service.send_friend_request(store, notifier, bob, alice) == "accepted"
        assert friends_service.are_friends(store, alice, bob)
        assert friends_service.are_friends(store, bob, alice)
        assert store.smembers(keys.user_incoming_friend_requests(bob)) == set()

    def test_self_request_rejected(self, store, notifier, alice):
        with pytest.raises(ApiError) as exc_info:
            friends_service.send_friend_request(store, notifier, alice, alice)
        assert exc_info.value.code == ApiErrorCode.E_INVALID_REQUEST

    def test_unknown_user(self, store, notifier, alice):
        with pytest.raises(ApiError) as exc_info:
            friends_service.send_friend_request(store, notifier, alice, "nobody")
        assert exc_info.value.code == ApiErrorCode.E_USER_NOT_FOUND

    def test_already_friends(self, store, notifier, alice, bob):
        friends_service.send_friend_request(store, notifier, alice, bob)
        friends_service.accept_friend_request(store, notifier, bob, alice)

        with pytest.raises(ApiError) as exc_info:
            friends_service.send_friend_request(store, notifier, alice, bob)
        assert exc_info.value.code == ApiErrorCode.E_ALREADY_FRIENDS

    def test_rate_limited(self, store, notifier, make_user, alice):
        limiter = InMemoryRateLimiter(limit=1, window_seconds=60)
        friends_service.send_friend_request(
            store, notifier, alice, make_user(), rate_limiter=limiter
        )
        with pytest.raises(RateLimitedError):
            friends_service.send_friend_request(
                store, notifier, alice, make_user(), rate_limiter=limiter
            )


class TestAcceptAndDeny:
    def test_accept_links_both_sides_and_notifies(self, store, notifier, alice, bob):
        friends_service.send_friend_request(store, notifier, alice, bob)
        notifier.clear()

        friends_service.accept_friend_request(store, notifier, bob, alice)

        assert [p.id for p in friends_service.list_friends(store, alice)] == [bob]
        assert [p.id for p in friends_service.list_friends(store, bob)] == [alice]
        assert notifier.on(channels.user_friends_channel(alice), channels.NEW_FRIEND)[0].payload[
            "id"
        ] == bob
        assert notifier.on(channels.user_friends_channel(bob), channels.NEW_FRIEND)[0].payload[
            "id"
        ] == alice

    def test_accept_twice_is_harmless(self, store, notifier, alice, bob):
        friends_service.send_friend_request(store, notifier, alice, bob)
        friends_service.accept_friend_request(store, notifier, bob, alice)
        friends_service.accept_friend_request(store, notifier, bob, alice)
        assert friends_service.are_friends(store, alice, bob)

    def test_accept_without_request(self, store, notifier, alice, bob):
        with pytest.raises(ApiError) as exc_info:
            friends_service.accept_friend_request(store, notifier, bob, alice)
        assert exc_info.value.code == ApiErrorCode.E_NOT_FOUND

    def test_deny(self, store, notifier, alice, bob):
        friends_service.send_friend_request(store, notifier, alice, bob)

        friends_service.deny_friend_request(store, bob, alice)
        friends_service.deny_friend_request(store, bob, alice)

        assert friends_service.list_incoming_friend_requests(store, bob) == []
        assert not friends_service.are_friends(store, alice, bob)

    def test_list_incoming(self, store, notifier, alice, bob):
        friends_service.send_friend_request(store, notifier, alice, bob)
        [profile] = friends_service.list_incoming_friend_requests(store, bob)
        assert profile.id == alice
        assert profile.name == "Alice"


class TestListChats:
    @pytest.fixture
    def befriend(self, store, notifier):
        def _befriend(user_id, other_id):
            friends_service.send_friend_request(store, notifier, user_id, other_id)
            friends_service.accept_friend_request(store, notifier, other_id, user_id)

        return _befriend

    def test_most_recent_first(self, store, notifier, clock, make_user, alice, bob, befriend):
        carol = make_user(name="Carol")
        befriend(alice, bob)
        befriend(alice, carol)

        clock.advance(1000)
        messages_service.send_message(store, notifier, direct_chat_key(alice, bob), bob, "old")
        clock.advance(1000)
        messages_service.send_message(store, notifier, direct_chat_key(alice, carol), alice, "new")

        chats = friends_service.list_chats(store, alice)

        assert [c.friend.id for c in chats] == [carol, bob]
        assert [c.last_message.text for c in chats] == ["new", "old"]
        assert chats[0].chat_id == direct_chat_key(alice, carol)
        assert chats[0].friend.name == "Carol"

    def test_only_latest_message_shown(self, store, notifier, clock, alice, bob, befriend):
        befriend(alice, bob)
        chat_id = direct_chat_key(alice, bob)
        for text in ("one", "two"):
            clock.advance(10)
            messages_service.send_message(store, notifier, chat_id, alice, text)

        [chat] = friends_service.list_chats(store, bob)

        assert chat.last_message.text == "two"
        assert chat.last_message.sender_id == alice

    def test_friend_without_messages_sorts_last(
        self, store, notifier, clock, make_user, alice, bob, befriend
    ):
        carol = make_user(name="Carol")
        befriend(alice, bob)
        befriend(alice, carol)
        messages_service.send_message(store, notifier, direct_chat_key(alice, carol), carol, "hi")

        chats = friends_service.list_chats(store, alice)

        assert [c.friend.id for c in chats] == [carol, bob]
        assert chats[1].last_message is None
        assert chats[1].to_payload() == {
            "chatId": direct_chat_key(alice, bob),
            "friend": {"id": bob, "name": "Bob"},
            "lastMessage": None,
        }

    def test_no_friends(self, store, alice):
        assert friends_service.list_chats(store, alice) == []

    def test_unparsable_entry_treated_as_empty(self, store, alice, bob, befriend):
        befriend(alice, bob)
        store.zadd(keys.direct_log(direct_chat_key(alice, bob)), "not json", 5)

        [chat] = friends_service.list_chats(store, alice)

        assert chat.last_message is None
