"""User profile and friendship schemas."""

from pydantic import Field

from huddle.schemas.message import CamelModel, Message


class UserProfile(CamelModel):
    """Profile record stored at user:{uid}, refreshed from token claims."""

    id: str
    name: str | None = None
    email: str | None = None
    image: str | None = None


class FriendRequestCreate(CamelModel):
    user_id: str = Field(..., min_length=1, max_length=64)


class ChatPreview(CamelModel):
    """One row of the chat list: a friend and the last message exchanged."""

    chat_id: str
    friend: UserProfile
    last_message: Message | None = None

    def to_payload(self) -> dict:
        return {
            "chatId": self.chat_id,
            "friend": self.friend.to_payload(),
            "lastMessage": self.last_message.to_payload() if self.last_message else None,
        }
