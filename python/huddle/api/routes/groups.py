"""Group routes.

Routes are transport-only:
- Extract viewer from request.state
- Call exactly one service function
- Return success(...) or raise ApiError

IMPORTANT: Static routes (/groups/discover, /groups/join-requests) must be
registered BEFORE dynamic routes (/groups/{group_id}) to prevent path capture.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from huddle.api.deps import get_notifier, get_request_limiter, get_store
from huddle.auth.middleware import Viewer, get_viewer
from huddle.realtime import Notifier
from huddle.responses import success_response
from huddle.schemas.group import AddMembersRequest, CreateGroupRequest, UpdateGroupRequest
from huddle.services import groups as groups_service
from huddle.services.rate_limit import RateLimiter
from huddle.store import KeyValueStore

router = APIRouter()

StoreDep = Annotated[KeyValueStore, Depends(get_store)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]


def _membership_result(group) -> dict:
    """Payload for operations that may dissolve the group."""
    if group is None:
        return {"dissolved": True, "group": None}
    return {"dissolved": False, "group": group.to_payload()}


# =============================================================================
# Static routes (MUST be before /groups/{group_id} routes)
# =============================================================================


@router.post("/groups", status_code=201)
def create_group(
    body: CreateGroupRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    """Create a group; the viewer becomes its admin."""
    group = groups_service.create_group(
        store, notifier, viewer.user_id, body.name, body.members, description=body.description
    )
    return success_response(group.to_payload())


@router.get("/groups")
def list_my_groups(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
) -> dict:
    """List the viewer's groups, newest first."""
    result = groups_service.list_user_groups(store, viewer.user_id)
    return success_response([g.to_payload() for g in result])


@router.get("/groups/discover")
def discover_groups(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
) -> dict:
    """List every live group with member counts."""
    result = groups_service.list_all_groups(store, viewer.user_id)
    return success_response([s.to_payload() for s in result])


@router.get("/groups/join-requests")
def list_join_requests(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
) -> dict:
    """List join requests waiting in the viewer's admin inbox."""
    result = groups_service.list_join_requests(store, viewer.user_id)
    return success_response([r.to_payload() for r in result])


# =============================================================================
# Standard group routes
# =============================================================================


@router.get("/groups/{group_id}")
def get_group(
    group_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
) -> dict:
    """Get a group the viewer belongs to."""
    group = groups_service.get_group(store, group_id, viewer.user_id)
    return success_response(group.to_payload())


@router.patch("/groups/{group_id}")
def update_group(
    group_id: str,
    body: UpdateGroupRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    """Rename or re-describe a group (admin only)."""
    group = groups_service.update_group(
        store, notifier, group_id, viewer.user_id, body.name, description=body.description
    )
    return success_response(group.to_payload())


@router.delete("/groups/{group_id}", status_code=204)
def delete_group(
    group_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> Response:
    """Dissolve a group (admin only)."""
    groups_service.delete_group(store, notifier, group_id, viewer.user_id)
    return Response(status_code=204)


@router.post("/groups/{group_id}/members")
def add_members(
    group_id: str,
    body: AddMembersRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    """Add members to a group (admin only)."""
    group = groups_service.add_members(store, notifier, group_id, viewer.user_id, body.member_ids)
    return success_response(group.to_payload())


@router.delete("/groups/{group_id}/members/{member_id}")
def remove_member(
    group_id: str,
    member_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    """Remove another member (admin only). May dissolve the group."""
    group = groups_service.remove_member(store, notifier, group_id, viewer.user_id, member_id)
    return success_response(_membership_result(group))


@router.post("/groups/{group_id}/leave")
def leave_group(
    group_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    """Leave a group. May dissolve the group."""
    group = groups_service.leave_group(store, notifier, group_id, viewer.user_id)
    return success_response(_membership_result(group))


@router.post("/groups/{group_id}/join-requests", status_code=202)
def request_join(
    group_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
    limiter: Annotated[RateLimiter, Depends(get_request_limiter)],
) -> dict:
    """Ask to join a group. Repeating a pending request is a success."""
    record = groups_service.request_join(
        store, notifier, group_id, viewer.user_id, rate_limiter=limiter
    )
    return success_response(record.to_payload())


@router.post("/groups/{group_id}/join-requests/{requester_id}/approve")
def approve_join(
    group_id: str,
    requester_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    """Approve a pending join request (admin only)."""
    group = groups_service.approve_join(store, notifier, group_id, viewer.user_id, requester_id)
    return success_response(group.to_payload())


@router.post("/groups/{group_id}/join-requests/{requester_id}/deny")
def deny_join(
    group_id: str,
    requester_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    """Deny a join request (admin only). Idempotent."""
    groups_service.deny_join(store, notifier, group_id, viewer.user_id, requester_id)
    return success_response({"groupId": group_id, "requesterId": requester_id})
