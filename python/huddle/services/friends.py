"""Friendship service.

Friendship is symmetric: accepting writes both user:{a}:friends and
user:{b}:friends. Pending requests live in the target's
user:{uid}:incoming_friend_requests set.
"""

from huddle.errors import ApiErrorCode, ConflictError, InvalidRequestError, NotFoundError
from huddle.logging import get_logger
from huddle.realtime import Notifier, channels, publish_best_effort
from huddle.schemas.message import Message
from huddle.schemas.user import ChatPreview, UserProfile
from huddle.services import rate_limit, users
from huddle.services.identity import direct_chat_key
from huddle.services.rate_limit import RateLimiter
from huddle.store import KeyValueStore, keys

logger = get_logger(__name__)


def are_friends(store: KeyValueStore, user_a: str, user_b: str) -> bool:
    return store.sismember(keys.user_friends(user_a), user_b)


def send_friend_request(
    store: KeyValueStore,
    notifier: Notifier,
    user_id: str,
    target_id: str,
    *,
    rate_limiter: RateLimiter | None = None,
) -> str:
    """Ask target_id to become a friend.

    A repeated request succeeds without a second record. If target_id has
    already asked user_id, the two become friends immediately.

    Returns:
        "pending" or "accepted".

    Raises:
        InvalidRequestError: Requesting yourself.
        NotFoundError(E_USER_NOT_FOUND): Target has no profile.
        ConflictError(E_ALREADY_FRIENDS)
    """
    target_id = target_id.strip()
    if target_id == user_id:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Cannot add yourself")
    if users.get_profile(store, target_id) is None:
        raise NotFoundError(ApiErrorCode.E_USER_NOT_FOUND, "User not found")
    if are_friends(store, user_id, target_id):
        raise ConflictError(ApiErrorCode.E_ALREADY_FRIENDS, "Already friends")

    if store.sismember(keys.user_incoming_friend_requests(user_id), target_id):
        accept_friend_request(store, notifier, user_id, target_id)
        return "accepted"

    if store.sismember(keys.user_incoming_friend_requests(target_id), user_id):
        return "pending"

    rate_limit.enforce(rate_limiter, f"friend:{user_id}")
    store.sadd(keys.user_incoming_friend_requests(target_id), user_id)

    logger.info("friend_requested", target_id=target_id)
    sender = users.get_profile(store, user_id) or UserProfile(id=user_id)
    publish_best_effort(
        notifier,
        channels.user_incoming_friend_requests_channel(target_id),
        channels.INCOMING_FRIEND_REQUEST,
        {"senderId": user_id, "senderName": sender.name, "senderEmail": sender.email},
    )
    return "pending"


def accept_friend_request(
    store: KeyValueStore, notifier: Notifier, user_id: str, requester_id: str
) -> None:
    """Accept requester_id's pending request.

    Raises:
        NotFoundError: No pending request (and not already friends).
    """
    pending = store.sismember(keys.user_incoming_friend_requests(user_id), requester_id)
    if not pending:
        if are_friends(store, user_id, requester_id):
            return
        raise NotFoundError(ApiErrorCode.E_NOT_FOUND, "No pending friend request")

    store.sadd(keys.user_friends(user_id), requester_id)
    store.sadd(keys.user_friends(requester_id), user_id)
    store.srem(keys.user_incoming_friend_requests(user_id), requester_id)
    # A crossed request in the other direction is resolved too
    store.srem(keys.user_incoming_friend_requests(requester_id), user_id)

    logger.info("friend_accepted", requester_id=requester_id)
    me = users.get_profile(store, user_id) or UserProfile(id=user_id)
    them = users.get_profile(store, requester_id) or UserProfile(id=requester_id)
    publish_best_effort(
        notifier, channels.user_friends_channel(requester_id), channels.NEW_FRIEND, me.to_payload()
    )
    publish_best_effort(
        notifier, channels.user_friends_channel(user_id), channels.NEW_FRIEND, them.to_payload()
    )


def deny_friend_request(store: KeyValueStore, user_id: str, requester_id: str) -> None:
    """Drop a pending request. Succeeds when nothing is pending."""
    store.srem(keys.user_incoming_friend_requests(user_id), requester_id)
    logger.info("friend_denied", requester_id=requester_id)


def list_friends(store: KeyValueStore, user_id: str) -> list[UserProfile]:
    return users.get_profiles(store, sorted(store.smembers(keys.user_friends(user_id))))


def list_incoming_friend_requests(store: KeyValueStore, user_id: str) -> list[UserProfile]:
    return users.get_profiles(
        store, sorted(store.smembers(keys.user_incoming_friend_requests(user_id)))
    )


def list_chats(store: KeyValueStore, user_id: str) -> list[ChatPreview]:
    """One direct chat per friend, most recent activity first.

    Friends with no messages yet sort last, in id order.
    """
    chats = []
    for friend in list_friends(store, user_id):
        chat_id = direct_chat_key(user_id, friend.id)
        chats.append(
            ChatPreview(
                chat_id=chat_id, friend=friend, last_message=_last_message(store, chat_id)
            )
        )
    chats.sort(
        key=lambda chat: chat.last_message.timestamp if chat.last_message else 0, reverse=True
    )
    return chats


def _last_message(store: KeyValueStore, chat_id: str) -> Message | None:
    log_key = keys.direct_log(chat_id)
    for raw in store.zrange(log_key, -1, -1):
        try:
            return Message.model_validate_json(raw)
        except ValueError:
            logger.warning("log_entry_unparsable", log_key=log_key, entry_chars=len(raw))
    return None
