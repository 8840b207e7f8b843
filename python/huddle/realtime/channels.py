"""Channel names and event names published by the engine.

Event names are a compatibility surface for clients; do not rename.
"""

# Conversation channel events
NEW_MESSAGE = "new-message"
MESSAGE_UPDATED = "message-updated"
POLL_UPDATED = "poll-updated"
TYPING = "typing"

# Per-user group list events
GROUP_CREATED = "group-created"
GROUP_UPDATED = "group-updated"
GROUP_DELETED = "group-deleted"
GROUP_LEFT = "group-left"

# Join request inbox events
GROUP_JOIN_REQUESTED = "group-join-requested"
GROUP_JOIN_INBOX_UPDATED = "group-join-inbox-updated"

# Friend events
INCOMING_FRIEND_REQUEST = "incoming-friend-request"
NEW_FRIEND = "new-friend"


def conversation_channel(conversation_id: str) -> str:
    """Live channel of one conversation.

    Direct conversations publish on chat:{a--b}; group conversation ids
    already carry their group: prefix and are used as-is.
    """
    if conversation_id.startswith("group:"):
        return conversation_id
    return f"chat:{conversation_id}"


def typing_channel(conversation_id: str) -> str:
    return f"{conversation_channel(conversation_id)}:typing"


def user_chats_channel(user_id: str) -> str:
    return f"user:{user_id}:chats"


def user_groups_channel(user_id: str) -> str:
    return f"user:{user_id}:groups"


def user_join_requests_channel(user_id: str) -> str:
    return f"user:{user_id}:group_entry_requests"


def user_friends_channel(user_id: str) -> str:
    return f"user:{user_id}:friends"


def user_incoming_friend_requests_channel(user_id: str) -> str:
    return f"user:{user_id}:incoming_friend_requests"
