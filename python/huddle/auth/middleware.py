"""Authentication middleware for FastAPI.

Provides:
- AuthMiddleware: Global middleware for bearer token verification
- get_viewer: Dependency for accessing authenticated viewer identity
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from huddle.auth.verifier import TokenVerifier
from huddle.errors import ApiError, ApiErrorCode
from huddle.logging import set_user_context
from huddle.responses import error_response

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "authorization"

# Paths that don't require authentication
PUBLIC_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

# Paths guarded by the internal secret header instead of a bearer token
INTERNAL_PATH_PREFIX = "/internal/"


@dataclass
class Viewer:
    """Authenticated viewer identity.

    Attributes:
        user_id: The viewer's user ID (from JWT sub claim).
        name / email / image: Display claims, when the token carries them.
    """

    user_id: str
    name: str | None = None
    email: str | None = None
    image: str | None = None


def viewer_from_claims(claims: dict[str, Any]) -> Viewer:
    """Build a Viewer from verified claims (sub, name, email, picture)."""
    return Viewer(
        user_id=str(claims["sub"]),
        name=claims.get("name"),
        email=claims.get("email"),
        image=claims.get("picture") or claims.get("image"),
    )


def _bearer_token(request: Request) -> str:
    """Token from "Authorization: Bearer <token>".

    Raises:
        ApiError(E_UNAUTHENTICATED): Header missing, not a bearer scheme, or empty.
    """
    header = request.headers.get(AUTHORIZATION_HEADER)
    if not header:
        reason, message = "missing_header", "Authentication required"
    else:
        scheme, _, token = header.partition(" ")
        token = token.strip()
        if scheme.lower() == "bearer" and token:
            return token
        reason, message = "invalid_header_format", "Invalid authorization header format"

    logger.warning("auth_failure", extra={"reason": reason, "request_path": request.url.path})
    raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, message)


def _error(status_code: int, code: ApiErrorCode, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_response(code, message))


class AuthMiddleware(BaseHTTPMiddleware):
    """Verify the bearer token and attach request.state.viewer.

    Public paths pass through untouched, and so do /internal/ paths, which
    carry their own header check. For everything else the viewer's profile is
    refreshed from the token claims before the route runs; a failing refresh
    is a 500, since routes assume the profile exists.
    """

    def __init__(
        self,
        app: ASGIApp,
        verifier: TokenVerifier,
        bootstrap_callback: Callable[[Viewer], None] | None = None,
    ):
        super().__init__(app)
        self.verifier = verifier
        self.bootstrap_callback = bootstrap_callback

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if path in PUBLIC_PATHS or path.startswith(INTERNAL_PATH_PREFIX):
            return await call_next(request)

        try:
            viewer = viewer_from_claims(self.verifier.verify(_bearer_token(request)))
        except ApiError as e:
            return _error(e.status_code, e.code, e.message)
        set_user_context(viewer.user_id)

        if self.bootstrap_callback is not None:
            try:
                self.bootstrap_callback(viewer)
            except Exception:
                logger.exception("profile_bootstrap_failed", extra={"user_id": viewer.user_id})
                return _error(500, ApiErrorCode.E_INTERNAL, "Internal server error")

        request.state.viewer = viewer
        return await call_next(request)


def get_viewer(request: Request) -> Viewer:
    """Dependency: the authenticated viewer.

    Raises:
        ApiError(E_UNAUTHENTICATED): The auth middleware did not run for this path.
    """
    viewer = getattr(request.state, "viewer", None)
    if viewer is None:
        raise ApiError(ApiErrorCode.E_UNAUTHENTICATED, "Authentication required")
    return viewer
