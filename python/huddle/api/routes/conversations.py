"""Conversation routes: message log, reactions, polls, typing.

Routes are transport-only:
- Extract viewer from request.state
- Call exactly one service function
- Return success(...) or raise ApiError

Conversation ids are either "{a}--{b}" (direct) or "group:{gid}" (group).
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from huddle.api.deps import (
    get_app_settings,
    get_notifier,
    get_send_limiter,
    get_store,
)
from huddle.auth.middleware import Viewer, get_viewer
from huddle.config import Settings
from huddle.realtime import Notifier
from huddle.responses import success_response
from huddle.schemas.message import (
    CreatePollRequest,
    ReactRequest,
    SendMessageRequest,
    TypingRequest,
    VoteRequest,
)
from huddle.services import messages as messages_service
from huddle.services.rate_limit import RateLimiter
from huddle.store import KeyValueStore

router = APIRouter()

StoreDep = Annotated[KeyValueStore, Depends(get_store)]
NotifierDep = Annotated[Notifier, Depends(get_notifier)]


@router.get("/conversations/{conversation_id}/messages")
def list_messages(
    conversation_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    limit: Annotated[int | None, Query(ge=1, le=1000, description="Newest N messages")] = None,
) -> dict:
    """List a conversation's messages, oldest first."""
    result = messages_service.list_messages(store, conversation_id, viewer.user_id, limit=limit)
    return success_response([m.to_payload() for m in result])


@router.post("/conversations/{conversation_id}/messages", status_code=201)
def send_message(
    conversation_id: str,
    body: SendMessageRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
    limiter: Annotated[RateLimiter, Depends(get_send_limiter)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> dict:
    """Send a text and/or image message."""
    message = messages_service.send_message(
        store,
        notifier,
        conversation_id,
        viewer.user_id,
        text=body.text,
        image=body.image,
        rate_limiter=limiter,
        max_image_bytes=settings.max_image_bytes,
        require_friendship=settings.direct_chat_requires_friendship,
    )
    return success_response(message.to_payload())


@router.post("/conversations/{conversation_id}/messages/{message_id}/unsend")
def unsend_message(
    conversation_id: str,
    message_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    """Replace one of the viewer's messages with a tombstone. Idempotent."""
    message = messages_service.unsend_message(
        store, notifier, conversation_id, viewer.user_id, message_id
    )
    return success_response(message.to_payload())


@router.post("/conversations/{conversation_id}/messages/{message_id}/reactions")
def react_to_message(
    conversation_id: str,
    message_id: str,
    body: ReactRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> dict:
    """Toggle the viewer's emoji reaction on a message."""
    message = messages_service.toggle_reaction(
        store,
        notifier,
        conversation_id,
        viewer.user_id,
        message_id,
        body.emoji,
        require_friendship=settings.direct_chat_requires_friendship,
    )
    return success_response(message.to_payload())


@router.post("/conversations/{conversation_id}/messages/{message_id}/votes")
def vote_on_poll(
    conversation_id: str,
    message_id: str,
    body: VoteRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    """Replace the viewer's votes on a poll."""
    message = messages_service.vote_on_poll(
        store, notifier, conversation_id, viewer.user_id, message_id, body.option_ids
    )
    return success_response(message.to_payload())


@router.post("/conversations/{conversation_id}/polls", status_code=201)
def create_poll(
    conversation_id: str,
    body: CreatePollRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
    limiter: Annotated[RateLimiter, Depends(get_send_limiter)],
) -> dict:
    """Post a poll into a group conversation."""
    message = messages_service.create_poll(
        store,
        notifier,
        conversation_id,
        viewer.user_id,
        body.question,
        body.options,
        allow_multiple_votes=body.allow_multiple_votes,
        anonymous=body.anonymous,
        expires_in=body.expires_in,
        rate_limiter=limiter,
    )
    return success_response(message.to_payload())


@router.post("/conversations/{conversation_id}/typing", status_code=202)
def send_typing(
    conversation_id: str,
    body: TypingRequest,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: StoreDep,
    notifier: NotifierDep,
) -> dict:
    """Broadcast a typing indicator."""
    messages_service.send_typing(store, notifier, conversation_id, viewer.user_id, body.is_typing)
    return success_response({"ok": True})
