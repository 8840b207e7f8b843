"""Message and poll schemas.

Stored log entries and API payloads share one camelCase JSON shape:

    {"id", "senderId", "text", "image"?, "timestamp", "reactions"?, "type"?, "poll"?}
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

TOMBSTONE_TEXT = "__deleted__"
MAX_TEXT_CHARS = 4000

POLL_MAX_QUESTION_CHARS = 200
POLL_MIN_OPTIONS = 2
POLL_MAX_OPTIONS = 10
POLL_MAX_OPTION_CHARS = 100

__all__ = [
    "TOMBSTONE_TEXT",
    "Message",
    "Poll",
    "PollOption",
    "SendMessageRequest",
    "ReactRequest",
    "VoteRequest",
    "CreatePollRequest",
    "TypingRequest",
]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_payload(self) -> dict:
        """camelCase dict without unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


# =============================================================================
# Stored shapes
# =============================================================================


class PollOption(CamelModel):
    id: str
    text: str
    votes: list[str] = Field(default_factory=list)


class Poll(CamelModel):
    question: str
    options: list[PollOption]
    total_votes: int = 0
    allow_multiple_votes: bool = False
    anonymous: bool = False
    expires_at: int | None = None


class Message(CamelModel):
    """One log entry. The timestamp doubles as its sorted-set score."""

    id: str
    sender_id: str
    text: str
    image: str | None = None
    timestamp: int
    reactions: dict[str, list[str]] | None = None
    type: Literal["poll"] | None = None
    poll: Poll | None = None

    @property
    def is_tombstone(self) -> bool:
        return self.text == TOMBSTONE_TEXT

    @property
    def is_poll(self) -> bool:
        return self.type == "poll" and self.poll is not None


# =============================================================================
# Request Schemas
# =============================================================================


class SendMessageRequest(CamelModel):
    """Request body for sending a message. At least one of text/image is required."""

    text: str | None = Field(default=None, max_length=MAX_TEXT_CHARS * 2)
    image: str | None = None


class ReactRequest(CamelModel):
    emoji: str = Field(..., max_length=64)


class VoteRequest(CamelModel):
    option_ids: list[str] = Field(..., max_length=POLL_MAX_OPTIONS * 2)


class CreatePollRequest(CamelModel):
    question: str
    options: list[str]
    allow_multiple_votes: bool = False
    anonymous: bool = False
    expires_in: int | None = Field(default=None, ge=1, description="Lifetime in milliseconds")


class TypingRequest(CamelModel):
    is_typing: bool
