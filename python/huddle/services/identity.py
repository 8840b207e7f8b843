"""Conversation identity.

Direct conversations are keyed by the sorted participant pair joined with
"--"; group conversations are "group:{gid}". Every operation that accepts a
conversation id classifies it with parse_conversation() before choosing a
log key or an authorization path.
"""

from dataclasses import dataclass
from typing import Literal

from huddle.errors import ApiErrorCode, InvalidRequestError
from huddle.realtime import channels
from huddle.store import keys

DIRECT_SEPARATOR = "--"
GROUP_PREFIX = "group:"

ConversationKind = Literal["direct", "group"]


def direct_chat_key(user_a: str, user_b: str) -> str:
    """Order-independent key for the direct conversation between two users."""
    first, second = sorted((user_a, user_b))
    return f"{first}{DIRECT_SEPARATOR}{second}"


def group_conversation_id(group_id: str) -> str:
    return f"{GROUP_PREFIX}{group_id}"


def is_group_conversation(conversation_id: str) -> bool:
    return conversation_id.startswith(GROUP_PREFIX)


@dataclass(frozen=True)
class ConversationRef:
    """A classified conversation id."""

    conversation_id: str
    kind: ConversationKind
    participants: tuple[str, ...] = ()
    group_id: str | None = None

    @property
    def is_group(self) -> bool:
        return self.kind == "group"

    @property
    def log_key(self) -> str:
        if self.group_id is not None:
            return keys.group_log(self.group_id)
        return keys.direct_log(self.conversation_id)

    @property
    def channel(self) -> str:
        return channels.conversation_channel(self.conversation_id)

    def other_participant(self, user_id: str) -> str | None:
        """The other side of a direct conversation."""
        for participant in self.participants:
            if participant != user_id:
                return participant
        return None


def _invalid(message: str) -> InvalidRequestError:
    return InvalidRequestError(ApiErrorCode.E_INVALID_CONVERSATION, message)


def parse_conversation(conversation_id: str) -> ConversationRef:
    """Classify a conversation id as group or direct.

    Raises:
        InvalidRequestError(E_INVALID_CONVERSATION): The id is neither a
            well-formed group id nor a well-formed direct key.
    """
    if not conversation_id:
        raise _invalid("Conversation id is required")

    if is_group_conversation(conversation_id):
        group_id = conversation_id[len(GROUP_PREFIX) :]
        if not group_id or ":" in group_id:
            raise _invalid("Malformed group conversation id")
        return ConversationRef(conversation_id=conversation_id, kind="group", group_id=group_id)

    parts = conversation_id.split(DIRECT_SEPARATOR)
    if len(parts) != 2 or not all(parts):
        raise _invalid("Malformed direct conversation id")
    first, second = parts
    if first == second:
        raise _invalid("A direct conversation needs two different users")
    if ":" in first or ":" in second:
        raise _invalid("Malformed direct conversation id")
    if conversation_id != direct_chat_key(first, second):
        raise _invalid("Direct conversation ids list participants in sorted order")

    return ConversationRef(
        conversation_id=conversation_id, kind="direct", participants=(first, second)
    )
