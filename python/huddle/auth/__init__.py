"""Authentication module.

This module provides:
- Token verification (HS256 shared secret or JWKS)
- Auth middleware for FastAPI
- Request state with viewer identity
"""

from huddle.auth.middleware import AuthMiddleware, Viewer, get_viewer
from huddle.auth.verifier import HmacTokenVerifier, JwksVerifier, TokenVerifier

__all__ = [
    "AuthMiddleware",
    "HmacTokenVerifier",
    "JwksVerifier",
    "TokenVerifier",
    "Viewer",
    "get_viewer",
]
