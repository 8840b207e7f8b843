"""Pydantic schemas for stored records and request/response models.

All schemas are re-exported here for convenient imports.
"""

from huddle.schemas.group import (
    AddMembersRequest,
    CreateGroupRequest,
    Group,
    GroupSummary,
    JoinRequest,
    UpdateGroupRequest,
)
from huddle.schemas.message import (
    TOMBSTONE_TEXT,
    CreatePollRequest,
    Message,
    Poll,
    PollOption,
    ReactRequest,
    SendMessageRequest,
    TypingRequest,
    VoteRequest,
)
from huddle.schemas.user import ChatPreview, FriendRequestCreate, UserProfile

__all__ = [
    "TOMBSTONE_TEXT",
    "AddMembersRequest",
    "ChatPreview",
    "CreateGroupRequest",
    "CreatePollRequest",
    "FriendRequestCreate",
    "Group",
    "GroupSummary",
    "JoinRequest",
    "Message",
    "Poll",
    "PollOption",
    "ReactRequest",
    "SendMessageRequest",
    "TypingRequest",
    "UpdateGroupRequest",
    "UserProfile",
    "VoteRequest",
]
