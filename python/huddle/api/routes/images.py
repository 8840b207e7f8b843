"""Image blob endpoint.

Serves images uploaded inline with a message. Ids are random and content
never changes, so responses are cacheable forever.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Response

from huddle.api.deps import get_store
from huddle.auth.middleware import Viewer, get_viewer
from huddle.services import images as images_service
from huddle.store import KeyValueStore

router = APIRouter()

IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"


@router.get("/images/{image_id}")
def get_image(
    image_id: str,
    viewer: Annotated[Viewer, Depends(get_viewer)],
    store: Annotated[KeyValueStore, Depends(get_store)],
) -> Response:
    """Return raw image bytes with the stored content type."""
    blob = images_service.get_image(store, image_id)
    return Response(
        content=blob.content,
        media_type=blob.mime,
        headers={"Cache-Control": IMMUTABLE_CACHE_CONTROL},
    )
