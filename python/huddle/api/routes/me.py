"""Current user endpoint.

Returns the authenticated viewer's stored profile.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from huddle.api.deps import get_store
from huddle.auth.middleware import Viewer, get_viewer
from huddle.responses import success_response
from huddle.schemas.user import UserProfile
from huddle.services import users as users_service
from huddle.store import KeyValueStore

router = APIRouter()


@router.get("/me")
def get_me(
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: Annotated[KeyValueStore, Depends(get_store)],
) -> dict:
    """Get the viewer's profile.

    The profile is written by the auth bootstrap on every request, so a
    missing record only happens when bootstrap is disabled.
    """
    profile = users_service.get_profile(store, viewer.user_id)
    if profile is None:
        profile = UserProfile(
            id=viewer.user_id, name=viewer.name, email=viewer.email, image=viewer.image
        )
    return success_response(profile.to_payload())
