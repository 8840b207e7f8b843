"""Friendship routes.

Routes are transport-only:
- Extract viewer from request.state
- Call exactly one service function
- Return success(...) or raise ApiError
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from huddle.api.deps import get_notifier, get_request_limiter, get_store
from huddle.auth.middleware import Viewer, get_viewer
from huddle.realtime import Notifier
from huddle.responses import success_response
from huddle.schemas.user import FriendRequestCreate
from huddle.services import friends as friends_service
from huddle.services.rate_limit import RateLimiter
from huddle.store import KeyValueStore

router = APIRouter()

StoreDep = Annotated[KeyValueStore, Depends(get_store)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]


@router.get("/friends")
def list_friends(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
) -> dict:
    """List the viewer's friends."""
    result = friends_service.list_friends(store, viewer.user_id)
    return success_response([p.to_payload() for p in result])


@router.get("/chats")
def list_chats(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
) -> dict:
    """List the viewer's direct chats, most recently active first."""
    result = friends_service.list_chats(store, viewer.user_id)
    return success_response([c.to_payload() for c in result])


@router.get("/friends/requests")
def list_friend_requests(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
) -> dict:
    """List users waiting for the viewer to accept their request."""
    result = friends_service.list_incoming_friend_requests(store, viewer.user_id)
    return success_response([p.to_payload() for p in result])


@router.post("/friends/requests", status_code=202)
def send_friend_request(
    body: FriendRequestCreate,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
    limiter: Annotated[RateLimiter, Depends(get_request_limiter)],
) -> dict:
    """Send a friend request; a crossed request is accepted at once."""
    status = friends_service.send_friend_request(
        store, notifier, viewer.user_id, body.user_id, rate_limiter=limiter
    )
    return success_response({"userId": body.user_id, "status": status})


@router.post("/friends/requests/{requester_id}/accept")
def accept_friend_request(
    requester_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    friends_service.accept_friend_request(store, notifier, viewer.user_id, requester_id)
    return success_response({"userId": requester_id, "status": "accepted"})


@router.post("/friends/requests/{requester_id}/deny")
def deny_friend_request(
    requester_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
) -> dict:
    friends_service.deny_friend_request(store, viewer.user_id, requester_id)
    return success_response({"userId": requester_id, "status": "denied"})
