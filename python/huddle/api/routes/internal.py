"""Internal-only maintenance routes.

These routes bypass bearer auth and are guarded by the X-Huddle-Internal
header instead. With no HUDDLE_INTERNAL_SECRET configured (only allowed in
local and test) the header is not checked.
"""

import hmac
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query

from huddle.api.deps import get_app_settings, get_notifier, get_store
from huddle.config import Settings
from huddle.errors import ApiError, ApiErrorCode, InvalidRequestError
from huddle.logging import get_logger
from huddle.realtime import Notifier
from huddle.responses import success_response
from huddle.services import groups as groups_service
from huddle.store import KeyValueStore

logger = get_logger(__name__)

router = APIRouter()

INTERNAL_HEADER = "X-Huddle-Internal"


def require_internal_secret(
    settings: Annotated[Settings, Depends(get_app_settings)],
    internal_header: Annotated[str | None, Header(alias=INTERNAL_HEADER)] = None,
) -> None:
    """Reject callers that do not present the internal secret."""
    secret = settings.huddle_internal_secret
    if not secret:
        return
    if not internal_header or not hmac.compare_digest(internal_header, secret):
        logger.warning("internal_auth_failure", has_header=internal_header is not None)
        raise ApiError(ApiErrorCode.E_INTERNAL_ONLY, "Internal endpoint")


@router.post(
    "/internal/groups/cleanup",
    dependencies=[Depends(require_internal_secret)],
)
def cleanup_groups(
    store: Annotated[KeyValueStore, Depends(get_store)],
    notifier: Annotated[Notifier, Depends(get_notifier)],
    confirm: Annotated[int, Query()] = 0,
) -> dict:
    """Dissolve every registered group below the minimum size.

    Destructive; callers must pass ?confirm=1.
    """
    if confirm != 1:
        raise InvalidRequestError(
            ApiErrorCode.E_INVALID_REQUEST, "Pass confirm=1 to run group cleanup"
        )
    result = groups_service.cleanup_undersized_groups(store, notifier)
    return success_response(result)
