"""HTTP tests for conversation routes.

Exercises the routes end to end through auth middleware, the response
envelope and the shared in-memory store and notifier.
"""

import base64

import pytest

from huddle.config import clear_settings_cache
from huddle.realtime import channels
from huddle.services import friends as friends_service
from tests.helpers import auth_headers, create_test_user_id, dm_id


@pytest.fixture
def alice():
    return str(create_test_user_id())


@pytest.fixture
def bob():
    return str(create_test_user_id())


def _messages_url(conversation_id: str) -> str:
    return f"/conversations/{conversation_id}/messages"


class TestSendAndList:
    def test_send_then_list(self, authenticated_client, alice, bob):
        conversation_id = dm_id(alice, bob)

        response = authenticated_client.post(
            _messages_url(conversation_id), json={"text": "hello"}, headers=auth_headers(alice)
        )
        assert response.status_code == 201
        sent = response.json()["data"]
        assert sent["senderId"] == alice
        assert sent["text"] == "hello"
        assert "reactions" not in sent

        listed = authenticated_client.get(_messages_url(conversation_id), headers=auth_headers(bob))
        assert listed.status_code == 200
        assert [m["id"] for m in listed.json()["data"]] == [sent["id"]]

    def test_limit_returns_newest(self, authenticated_client, alice, bob, clock):
        conversation_id = dm_id(alice, bob)
        for text in ("one", "two", "three"):
            clock.advance(10)
            authenticated_client.post(
                _messages_url(conversation_id), json={"text": text}, headers=auth_headers(alice)
            )

        response = authenticated_client.get(
            _messages_url(conversation_id) + "?limit=2", headers=auth_headers(alice)
        )

        assert [m["text"] for m in response.json()["data"]] == ["two", "three"]

    def test_outsider_forbidden(self, authenticated_client, alice, bob):
        response = authenticated_client.post(
            _messages_url(dm_id(alice, bob)),
            json={"text": "hi"},
            headers=auth_headers(create_test_user_id()),
        )

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_FORBIDDEN"

    def test_unsorted_direct_id_rejected(self, authenticated_client, alice, bob):
        first, second = sorted([alice, bob])
        response = authenticated_client.get(
            _messages_url(f"{second}--{first}"), headers=auth_headers(alice)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_CONVERSATION"

    def test_empty_message_rejected(self, authenticated_client, alice, bob):
        response = authenticated_client.post(
            _messages_url(dm_id(alice, bob)), json={"text": "  "}, headers=auth_headers(alice)
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_MESSAGE_EMPTY"

    def test_malformed_json_rejected(self, authenticated_client, alice, bob):
        response = authenticated_client.post(
            _messages_url(dm_id(alice, bob)),
            content=b"{not json",
            headers={**auth_headers(alice), "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"

    def test_friendship_required_when_enabled(
        self, authenticated_client, alice, bob, store, notifier, monkeypatch
    ):
        monkeypatch.setenv("DIRECT_CHAT_REQUIRES_FRIENDSHIP", "true")
        clear_settings_cache()
        conversation_id = dm_id(alice, bob)

        blocked = authenticated_client.post(
            _messages_url(conversation_id), json={"text": "hi"}, headers=auth_headers(alice)
        )
        assert blocked.status_code == 403

        authenticated_client.get("/me", headers=auth_headers(bob))
        authenticated_client.get("/me", headers=auth_headers(alice))
        friends_service.send_friend_request(store, notifier, alice, bob, rate_limiter=None)
        friends_service.accept_friend_request(store, notifier, bob, alice)

        allowed = authenticated_client.post(
            _messages_url(conversation_id), json={"text": "hi"}, headers=auth_headers(alice)
        )
        assert allowed.status_code == 201


class TestImages:
    def test_inline_image_stored_and_served(self, authenticated_client, alice, bob):
        content = b"\x89PNG fake image"
        data_url = "data:image/png;base64," + base64.b64encode(content).decode()

        sent = authenticated_client.post(
            _messages_url(dm_id(alice, bob)), json={"image": data_url}, headers=auth_headers(alice)
        ).json()["data"]

        assert sent["image"].startswith("/images/")
        assert sent["text"] == ""

        response = authenticated_client.get(sent["image"], headers=auth_headers(bob))
        assert response.status_code == 200
        assert response.content == content
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == "public, max-age=31536000, immutable"

    def test_unknown_image_404(self, authenticated_client, alice):
        response = authenticated_client.get("/images/missing", headers=auth_headers(alice))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_IMAGE_NOT_FOUND"

    def test_image_requires_auth(self, authenticated_client):
        assert authenticated_client.get("/images/anything").status_code == 401


class TestMessageActions:
    @pytest.fixture
    def message(self, authenticated_client, alice, bob):
        return authenticated_client.post(
            _messages_url(dm_id(alice, bob)), json={"text": "hello"}, headers=auth_headers(alice)
        ).json()["data"]

    def test_unsend_by_sender(self, authenticated_client, alice, bob, message):
        url = f"{_messages_url(dm_id(alice, bob))}/{message['id']}/unsend"

        response = authenticated_client.post(url, headers=auth_headers(alice))

        assert response.status_code == 200
        assert response.json()["data"]["text"] == "__deleted__"
        assert response.json()["data"]["timestamp"] == message["timestamp"]

    def test_unsend_by_other_forbidden(self, authenticated_client, alice, bob, message):
        url = f"{_messages_url(dm_id(alice, bob))}/{message['id']}/unsend"

        response = authenticated_client.post(url, headers=auth_headers(bob))

        assert response.status_code == 403
        assert response.json()["error"]["code"] == "E_NOT_MESSAGE_SENDER"

    def test_unknown_message_404(self, authenticated_client, alice, bob):
        url = f"{_messages_url(dm_id(alice, bob))}/nope/unsend"

        response = authenticated_client.post(url, headers=auth_headers(alice))

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "E_MESSAGE_NOT_FOUND"

    def test_reaction_toggle(self, authenticated_client, alice, bob, message):
        url = f"{_messages_url(dm_id(alice, bob))}/{message['id']}/reactions"

        added = authenticated_client.post(url, json={"emoji": "👍"}, headers=auth_headers(bob))
        assert added.json()["data"]["reactions"] == {"👍": [bob]}

        removed = authenticated_client.post(url, json={"emoji": "👍"}, headers=auth_headers(bob))
        assert "reactions" not in removed.json()["data"]

    def test_reaction_missing_emoji_rejected(self, authenticated_client, alice, bob, message):
        url = f"{_messages_url(dm_id(alice, bob))}/{message['id']}/reactions"

        response = authenticated_client.post(url, json={}, headers=auth_headers(bob))

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_REQUEST"


class TestPollsAndTyping:
    @pytest.fixture
    def group_conversation(self, authenticated_client, alice, bob):
        response = authenticated_client.post(
            "/groups",
            json={"name": "Trio", "members": [bob, str(create_test_user_id())]},
            headers=auth_headers(alice),
        )
        return f"group:{response.json()['data']['id']}"

    def test_create_poll_and_vote(self, authenticated_client, alice, bob, group_conversation):
        created = authenticated_client.post(
            f"/conversations/{group_conversation}/polls",
            json={"question": "Lunch?", "options": ["Pizza", "Sushi"]},
            headers=auth_headers(alice),
        )
        assert created.status_code == 201
        poll_message = created.json()["data"]
        assert poll_message["type"] == "poll"
        option_id = poll_message["poll"]["options"][1]["id"]

        voted = authenticated_client.post(
            f"{_messages_url(group_conversation)}/{poll_message['id']}/votes",
            json={"optionIds": [option_id]},
            headers=auth_headers(bob),
        )

        assert voted.status_code == 200
        poll = voted.json()["data"]["poll"]
        assert poll["totalVotes"] == 1
        assert poll["options"][1]["votes"] == [bob]

    def test_poll_rejected_in_direct_chat(self, authenticated_client, alice, bob):
        response = authenticated_client.post(
            f"/conversations/{dm_id(alice, bob)}/polls",
            json={"question": "Lunch?", "options": ["Pizza", "Sushi"]},
            headers=auth_headers(alice),
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "E_INVALID_CONVERSATION"

    def test_typing_broadcast(self, authenticated_client, alice, bob, notifier):
        conversation_id = dm_id(alice, bob)

        response = authenticated_client.post(
            f"/conversations/{conversation_id}/typing",
            json={"isTyping": True},
            headers=auth_headers(alice),
        )

        assert response.status_code == 202
        assert response.json() == {"data": {"ok": True}}
        events = notifier.on(channels.typing_channel(conversation_id), channels.TYPING)
        assert [e.payload for e in events] == [{"userId": alice, "isTyping": True}]
