"""Group-related Pydantic schemas.

Contains the canonical Group record, join request inbox records, and
request/response models for group endpoints.
"""

from pydantic import Field

from huddle.schemas.message import CamelModel

__all__ = [
    "Group",
    "GroupSummary",
    "JoinRequest",
    "CreateGroupRequest",
    "UpdateGroupRequest",
    "AddMembersRequest",
]


class Group(CamelModel):
    """Canonical group record stored at group:{gid}.

    admins is a non-empty subset of members while the group exists.
    """

    id: str
    name: str
    description: str | None = None
    members: list[str]
    admins: list[str]
    created_at: int
    created_by: str
    avatar: str | None = None

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.admins


class GroupSummary(CamelModel):
    """Discovery listing entry."""

    id: str
    name: str
    description: str | None = None
    member_count: int
    created_at: int
    is_member: bool


class JoinRequest(CamelModel):
    """Admin inbox record for a pending join request."""

    group_id: str
    group_name: str
    requester_id: str
    requester_name: str | None = None
    requester_email: str | None = None
    requested_at: int


# =============================================================================
# Request Schemas
# =============================================================================


class CreateGroupRequest(CamelModel):
    name: str = Field(..., max_length=200)
    members: list[str] = Field(..., max_length=200)
    description: str | None = Field(default=None, max_length=1000)


class UpdateGroupRequest(CamelModel):
    name: str = Field(..., max_length=200)
    description: str | None = Field(default=None, max_length=1000)


class AddMembersRequest(CamelModel):
    member_ids: list[str] = Field(..., min_length=1, max_length=200)
