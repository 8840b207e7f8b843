"""Message log engine.

Each conversation owns one sorted set of serialized messages scored by
their timestamp. Messages are never looked up by id through an index: the
log is read in full and scanned (acceptable at chat-log scale).

In-place mutation (unsend, react, vote) removes the exact stored string and
re-inserts the new serialization at the same score, so a message never
moves. Concurrent mutations of one message resolve last-write-wins: two
writers can both read the same stored string, and the later zadd wins. This
is accepted for reactions and votes; membership state is handled elsewhere.

Ordering per operation:
1. Classify the conversation id
2. Authorize the actor (before any message lookup)
3. Validate input (before any write)
4. Mutate the log
5. Publish (best-effort, after the mutation)
"""

from uuid import uuid4

from huddle.errors import (
    ApiErrorCode,
    ForbiddenError,
    InvalidRequestError,
    NotFoundError,
)
from huddle.logging import get_logger, set_conversation_context
from huddle.realtime import Notifier, channels, publish_best_effort
from huddle.schemas.message import (
    MAX_TEXT_CHARS,
    POLL_MAX_OPTION_CHARS,
    POLL_MAX_OPTIONS,
    POLL_MAX_QUESTION_CHARS,
    POLL_MIN_OPTIONS,
    TOMBSTONE_TEXT,
    Message,
    Poll,
    PollOption,
)
from huddle.services import clock, images, rate_limit, users
from huddle.services.identity import ConversationRef, parse_conversation
from huddle.services.rate_limit import RateLimiter
from huddle.services.redact import safe_kv, text_fields
from huddle.store import KeyValueStore, keys

logger = get_logger(__name__)

MAX_EMOJI_CHARS = 8
DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024


# =============================================================================
# Authorization
# =============================================================================


def _group_members(store: KeyValueStore, ref: ConversationRef) -> set[str]:
    return store.smembers(keys.group_members(ref.group_id))  # type: ignore[arg-type]


def require_participant(
    store: KeyValueStore,
    ref: ConversationRef,
    user_id: str,
    require_friendship: bool = False,
) -> None:
    """Check that user_id may read and write the conversation.

    Direct: the user is one of the two ids in the key (and, when
    require_friendship is set, the two are friends).
    Group: the group exists and the user is in its membership index.

    Raises:
        NotFoundError(E_CONVERSATION_NOT_FOUND): Group does not exist.
        ForbiddenError(E_NOT_A_MEMBER / E_FORBIDDEN): Caller may not participate.
    """
    if ref.is_group:
        if store.get(keys.group_record(ref.group_id)) is None:  # type: ignore[arg-type]
            raise NotFoundError(ApiErrorCode.E_CONVERSATION_NOT_FOUND, "Conversation not found")
        if not store.sismember(keys.group_members(ref.group_id), user_id):  # type: ignore[arg-type]
            raise ForbiddenError(ApiErrorCode.E_NOT_A_MEMBER, "Not a member of this group")
        return

    if user_id not in ref.participants:
        raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "Not a participant of this conversation")
    if require_friendship:
        other = ref.other_participant(user_id)
        if not store.sismember(keys.user_friends(user_id), other):  # type: ignore[arg-type]
            raise ForbiddenError(ApiErrorCode.E_FORBIDDEN, "Direct chats require friendship")


def _open(conversation_id: str) -> ConversationRef:
    ref = parse_conversation(conversation_id)
    set_conversation_context(ref.conversation_id)
    return ref


# =============================================================================
# Log access
# =============================================================================


def _read_log(store: KeyValueStore, log_key: str) -> list[tuple[str, Message]]:
    """All parsable entries, oldest first, with their exact stored strings."""
    entries = []
    for raw in store.zrange(log_key, 0, -1):
        try:
            entries.append((raw, Message.model_validate_json(raw)))
        except ValueError:
            logger.warning("log_entry_unparsable", log_key=log_key, entry_chars=len(raw))
    return entries


def _find_message(store: KeyValueStore, log_key: str, message_id: str) -> tuple[str, Message]:
    for raw, message in _read_log(store, log_key):
        if message.id == message_id:
            return raw, message
    raise NotFoundError(ApiErrorCode.E_MESSAGE_NOT_FOUND, "Message not found")


def _replace(store: KeyValueStore, log_key: str, stored: str, updated: Message) -> None:
    """Swap one log entry for its new serialization at the same score."""
    serialized = updated.to_json()
    if serialized == stored:
        return
    store.zrem(log_key, stored)
    store.zadd(log_key, serialized, updated.timestamp)


def _append(store: KeyValueStore, log_key: str, message: Message) -> None:
    store.zadd(log_key, message.to_json(), message.timestamp)


def _recipients(store: KeyValueStore, ref: ConversationRef, sender_id: str) -> list[str]:
    if ref.is_group:
        return sorted(_group_members(store, ref) - {sender_id})
    other = ref.other_participant(sender_id)
    return [other] if other else []


def _announce_new(
    store: KeyValueStore, notifier: Notifier, ref: ConversationRef, message: Message
) -> None:
    payload = message.to_payload()
    publish_best_effort(notifier, ref.channel, channels.NEW_MESSAGE, payload)

    preview = {
        **payload,
        "conversationId": ref.conversation_id,
        **users.display_metadata(store, message.sender_id),
    }
    for recipient in _recipients(store, ref, message.sender_id):
        publish_best_effort(
            notifier, channels.user_chats_channel(recipient), channels.NEW_MESSAGE, preview
        )


# =============================================================================
# Validation
# =============================================================================


def _clean_text(text: str | None) -> str:
    text = (text or "").strip()
    if text == TOMBSTONE_TEXT:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_REQUEST, "Reserved message text")
    if len(text) > MAX_TEXT_CHARS:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, f"Message text exceeds {MAX_TEXT_CHARS} characters"
        )
    return text


def clean_emoji(emoji: str | None) -> str:
    """Short sanity check, not a grapheme validator.

    Raises:
        InvalidRequestError(E_INVALID_EMOJI)
    """
    value = (emoji or "").strip()
    if not value or len(value) > MAX_EMOJI_CHARS:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_EMOJI, "Invalid reaction emoji")
    return value


# =============================================================================
# Reads
# =============================================================================


def list_messages(
    store: KeyValueStore, conversation_id: str, viewer_id: str, limit: int | None = None
) -> list[Message]:
    """Return the conversation log oldest-first (optionally only the newest `limit`)."""
    ref = _open(conversation_id)
    require_participant(store, ref, viewer_id)

    if limit is not None and limit > 0:
        raw_entries = store.zrange(ref.log_key, -limit, -1)
    else:
        raw_entries = store.zrange(ref.log_key, 0, -1)

    result = []
    for raw in raw_entries:
        try:
            result.append(Message.model_validate_json(raw))
        except ValueError:
            logger.warning("log_entry_unparsable", log_key=ref.log_key, entry_chars=len(raw))
    return result


# =============================================================================
# Mutations
# =============================================================================


def send_message(
    store: KeyValueStore,
    notifier: Notifier,
    conversation_id: str,
    sender_id: str,
    text: str | None = None,
    image: str | None = None,
    *,
    rate_limiter: RateLimiter | None = None,
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
    require_friendship: bool = False,
) -> Message:
    """Append a text and/or image message to a conversation.

    Raises:
        NotFoundError: Group conversation does not exist.
        ForbiddenError: Sender is not a participant.
        InvalidRequestError: Empty, reserved, oversized, or malformed content.
        RateLimitedError: Sender exceeded the send rate.
    """
    ref = _open(conversation_id)
    require_participant(store, ref, sender_id, require_friendship=require_friendship)
    rate_limit.enforce(rate_limiter, f"send:{sender_id}")

    clean_text = _clean_text(text)
    image_input = images.parse_image(store, image, max_image_bytes)
    if not clean_text and image_input is None:
        raise InvalidRequestError(ApiErrorCode.E_MESSAGE_EMPTY, "Message needs text or an image")

    image_ref = images.store_image(store, image_input) if image_input is not None else None
    message = Message(
        id=str(uuid4()),
        sender_id=sender_id,
        text=clean_text,
        image=image_ref,
        timestamp=clock.now_ms(),
    )
    _append(store, ref.log_key, message)

    logger.info(
        "message_sent",
        **safe_kv(
            message_id=message.id,
            has_image=bool(image_ref),
            **text_fields("text", clean_text),
        ),
    )
    _announce_new(store, notifier, ref, message)
    return message


def unsend_message(
    store: KeyValueStore,
    notifier: Notifier,
    conversation_id: str,
    actor_id: str,
    message_id: str,
) -> Message:
    """Replace a message with a tombstone at the same position.

    Only the original sender may unsend. Unsending a tombstone writes
    nothing and succeeds.

    Raises:
        NotFoundError(E_MESSAGE_NOT_FOUND)
        ForbiddenError(E_NOT_MESSAGE_SENDER)
    """
    ref = _open(conversation_id)
    require_participant(store, ref, actor_id)

    stored, message = _find_message(store, ref.log_key, message_id)
    if message.sender_id != actor_id:
        raise ForbiddenError(
            ApiErrorCode.E_NOT_MESSAGE_SENDER, "Only the sender can unsend a message"
        )

    if message.is_tombstone:
        tombstone = message
    else:
        tombstone = Message(
            id=message.id,
            sender_id=message.sender_id,
            text=TOMBSTONE_TEXT,
            timestamp=message.timestamp,
        )
        _replace(store, ref.log_key, stored, tombstone)
        logger.info("message_unsent", message_id=message.id)

    publish_best_effort(notifier, ref.channel, channels.MESSAGE_UPDATED, tombstone.to_payload())
    return tombstone


def toggle_reaction(
    store: KeyValueStore,
    notifier: Notifier,
    conversation_id: str,
    actor_id: str,
    message_id: str,
    emoji: str,
    *,
    require_friendship: bool = False,
) -> Message:
    """Toggle actor's reaction; a user holds at most one emoji per message.

    Reacting with the emoji already held removes it. Reacting with another
    emoji moves the user. Empty buckets are pruned. Tombstones are returned
    unchanged.
    """
    emoji = clean_emoji(emoji)
    ref = _open(conversation_id)
    require_participant(store, ref, actor_id, require_friendship=require_friendship)

    stored, message = _find_message(store, ref.log_key, message_id)
    if message.is_tombstone:
        return message

    reactions = {key: list(voters) for key, voters in (message.reactions or {}).items()}
    had_same = actor_id in reactions.get(emoji, [])

    for key in list(reactions):
        reactions[key] = [uid for uid in reactions[key] if uid != actor_id]
    if not had_same:
        reactions.setdefault(emoji, []).append(actor_id)
    reactions = {key: voters for key, voters in reactions.items() if voters}

    updated = message.model_copy(update={"reactions": reactions or None})
    _replace(store, ref.log_key, stored, updated)

    publish_best_effort(notifier, ref.channel, channels.MESSAGE_UPDATED, updated.to_payload())
    return updated


def vote_on_poll(
    store: KeyValueStore,
    notifier: Notifier,
    conversation_id: str,
    actor_id: str,
    message_id: str,
    option_ids: list[str],
) -> Message:
    """Replace actor's votes on a poll with the given selection.

    Unknown option ids are ignored. Single-choice polls keep only the first
    valid id in selection order. totalVotes is recomputed from the options.

    Raises:
        InvalidRequestError(E_INVALID_POLL_OPTION): Empty or entirely unknown selection.
        InvalidRequestError(E_NOT_A_POLL / E_POLL_EXPIRED)
    """
    if not option_ids:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_POLL_OPTION, "Select at least one option")

    ref = _open(conversation_id)
    require_participant(store, ref, actor_id)

    stored, message = _find_message(store, ref.log_key, message_id)
    if message.is_tombstone:
        return message
    if not message.is_poll:
        raise InvalidRequestError(ApiErrorCode.E_NOT_A_POLL, "Message is not a poll")

    poll: Poll = message.poll  # type: ignore[assignment]
    if poll.expires_at is not None and clock.now_ms() >= poll.expires_at:
        raise InvalidRequestError(ApiErrorCode.E_POLL_EXPIRED, "Poll has expired")

    known = {option.id for option in poll.options}
    selected: list[str] = []
    for option_id in option_ids:
        if option_id in known and option_id not in selected:
            selected.append(option_id)
    if not selected:
        raise InvalidRequestError(ApiErrorCode.E_INVALID_POLL_OPTION, "Unknown poll option")
    if not poll.allow_multiple_votes:
        selected = selected[:1]

    options = []
    for option in poll.options:
        votes = [uid for uid in option.votes if uid != actor_id]
        if option.id in selected:
            votes.append(actor_id)
        options.append(option.model_copy(update={"votes": votes}))

    updated_poll = poll.model_copy(
        update={"options": options, "total_votes": sum(len(o.votes) for o in options)}
    )
    updated = message.model_copy(update={"poll": updated_poll})
    _replace(store, ref.log_key, stored, updated)

    logger.info("poll_voted", message_id=message.id, option_count=len(selected))
    publish_best_effort(notifier, ref.channel, channels.POLL_UPDATED, updated.to_payload())
    return updated


def create_poll(
    store: KeyValueStore,
    notifier: Notifier,
    conversation_id: str,
    sender_id: str,
    question: str,
    options: list[str],
    allow_multiple_votes: bool = False,
    anonymous: bool = False,
    expires_in: int | None = None,
    *,
    rate_limiter: RateLimiter | None = None,
) -> Message:
    """Post a poll message into a group conversation.

    Raises:
        InvalidRequestError(E_INVALID_CONVERSATION): Not a group conversation.
        InvalidRequestError(E_INVALID_POLL): Question or options out of bounds.
    """
    ref = _open(conversation_id)
    if not ref.is_group:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_CONVERSATION, "Polls are only available in groups"
        )
    require_participant(store, ref, sender_id)
    rate_limit.enforce(rate_limiter, f"send:{sender_id}")

    question = (question or "").strip()
    if not question or len(question) > POLL_MAX_QUESTION_CHARS:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_POLL,
            f"Poll question must be 1-{POLL_MAX_QUESTION_CHARS} characters",
        )
    texts = [(text or "").strip() for text in options]
    if not POLL_MIN_OPTIONS <= len(texts) <= POLL_MAX_OPTIONS:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_POLL,
            f"Polls need {POLL_MIN_OPTIONS}-{POLL_MAX_OPTIONS} options",
        )
    if any(not text or len(text) > POLL_MAX_OPTION_CHARS for text in texts):
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_POLL,
            f"Poll options must be 1-{POLL_MAX_OPTION_CHARS} characters",
        )

    now = clock.now_ms()
    poll = Poll(
        question=question,
        options=[PollOption(id=str(uuid4()), text=text) for text in texts],
        total_votes=0,
        allow_multiple_votes=allow_multiple_votes,
        anonymous=anonymous,
        expires_at=now + expires_in if expires_in else None,
    )
    message = Message(
        id=str(uuid4()),
        sender_id=sender_id,
        text=f"Poll: {question}",
        timestamp=now,
        type="poll",
        poll=poll,
    )
    _append(store, ref.log_key, message)

    logger.info("poll_created", message_id=message.id, option_count=len(texts))
    _announce_new(store, notifier, ref, message)
    return message


def send_typing(
    store: KeyValueStore,
    notifier: Notifier,
    conversation_id: str,
    user_id: str,
    is_typing: bool,
) -> None:
    """Broadcast an ephemeral typing indicator; nothing is stored."""
    ref = _open(conversation_id)
    require_participant(store, ref, user_id)
    publish_best_effort(
        notifier,
        channels.typing_channel(ref.conversation_id),
        channels.TYPING,
        {"userId": user_id, "isTyping": bool(is_typing)},
    )
