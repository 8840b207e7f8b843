"""Bearer token verification.

Two verifiers share one decode path:

- HmacTokenVerifier: HS256 with AUTH_JWT_SECRET (local, test, self-issued tokens)
- JwksVerifier: RS256/ES256 against the identity provider's JWKS document

Every failure becomes an ApiError: E_UNAUTHENTICATED for a bad token,
E_AUTH_UNAVAILABLE when the key document cannot be fetched.

The sub claim is the Huddle user id and must be a UUID, so user ids never
contain the "--" or ":" separators used in conversation ids.
"""

import logging
import threading
from typing import Any, Protocol
from uuid import UUID

import jwt
from jwt import PyJWKClient
from jwt.exceptions import (
    DecodeError,
    ExpiredSignatureError,
    InvalidAudienceError,
    InvalidIssuerError,
    InvalidSignatureError,
    InvalidTokenError,
    PyJWKClientError,
)

from huddle.errors import ApiError, ApiErrorCode

logger = logging.getLogger(__name__)

CLOCK_SKEW_SECONDS = 60
JWKS_CACHE_SECONDS = 3600

# Checked in order; the first isinstance match names the failure
_DECODE_FAILURES: tuple[tuple[type[InvalidTokenError], str, str], ...] = (
    (ExpiredSignatureError, "expired_token", "Token expired"),
    (InvalidSignatureError, "invalid_signature", "Invalid token signature"),
    (InvalidIssuerError, "invalid_issuer", "Invalid token issuer"),
    (InvalidAudienceError, "invalid_audience", "Invalid token audience"),
    (DecodeError, "decode_error", "Invalid token format"),
    (InvalidTokenError, "invalid_token", "Invalid token"),
)


class TokenVerifier(Protocol):
    def verify(self, token: str) -> dict[str, Any]:
        """Return the verified claims.

        Raises:
            ApiError(E_UNAUTHENTICATED): Token is invalid, expired, or malformed.
            ApiError(E_AUTH_UNAVAILABLE): Key material could not be fetched.
        """
        ...


def _unauthenticated(reason: str, message: str) -> ApiError:
    logger.warning("auth_failure", extra={"reason": reason})
    return ApiError(ApiErrorCode.E_UNAUTHENTICATED, message)


def _decode(
    token: str,
    key: Any,
    algorithms: list[str],
    issuer: str | None,
    audiences: list[str],
) -> dict[str, Any]:
    required = ["exp", "sub", *(["iss"] if issuer else [])]
    try:
        claims = jwt.decode(
            token,
            key,
            algorithms=algorithms,
            audience=audiences or None,
            issuer=issuer,
            leeway=CLOCK_SKEW_SECONDS,
            options={"require": required, "verify_aud": bool(audiences)},
        )
    except InvalidTokenError as e:
        for exc_type, reason, message in _DECODE_FAILURES:
            if isinstance(e, exc_type):
                raise _unauthenticated(reason, message) from e
        raise

    try:
        UUID(str(claims["sub"]))
    except ValueError as e:
        raise _unauthenticated("invalid_sub", "Invalid token: sub is not a valid UUID") from e
    return claims


class HmacTokenVerifier:
    """HS256 verifier; iss and aud are checked only when configured."""

    def __init__(self, secret: str, issuer: str | None = None, audiences: list[str] | None = None):
        self.secret = secret
        self.issuer = issuer.rstrip("/") if issuer else None
        self.audiences = audiences or []

    def verify(self, token: str) -> dict[str, Any]:
        return _decode(token, self.secret, ["HS256"], self.issuer, self.audiences)


class JwksVerifier:
    """RS256/ES256 verifier with a cached, lazily created PyJWKClient.

    An unknown kid triggers one refetch of the key set before the token is
    rejected, so provider key rotation does not lock users out.
    """

    def __init__(
        self,
        jwks_url: str,
        issuer: str,
        audiences: list[str] | None = None,
        cache_ttl: int = JWKS_CACHE_SECONDS,
    ):
        self.jwks_url = jwks_url
        self.issuer = issuer.rstrip("/")
        self.audiences = audiences or []
        self.cache_ttl = cache_ttl
        self._jwks_client: PyJWKClient | None = None
        self._jwks_lock = threading.Lock()

    def _new_client(self) -> PyJWKClient:
        return PyJWKClient(self.jwks_url, cache_keys=True, lifespan=self.cache_ttl)

    def _get_jwks_client(self, refresh: bool = False) -> PyJWKClient:
        with self._jwks_lock:
            if self._jwks_client is None or refresh:
                self._jwks_client = self._new_client()
            return self._jwks_client

    def verify(self, token: str) -> dict[str, Any]:
        try:
            signing_key = self._signing_key(token)
        except PyJWKClientError as e:
            logger.warning("auth_failure", extra={"reason": "jwks_unavailable", "error": str(e)})
            raise ApiError(
                ApiErrorCode.E_AUTH_UNAVAILABLE, "Authentication service unavailable"
            ) from e
        except DecodeError as e:
            raise _unauthenticated("decode_error", "Invalid token format") from e

        return _decode(token, signing_key.key, ["RS256", "ES256"], self.issuer, self.audiences)

    def _signing_key(self, token: str) -> Any:
        try:
            return self._get_jwks_client().get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            if not _is_kid_miss(e):
                raise
        logger.info("jwks_refresh", extra={"reason": "kid_miss"})
        try:
            return self._get_jwks_client(refresh=True).get_signing_key_from_jwt(token)
        except PyJWKClientError as e:
            if _is_kid_miss(e):
                raise _unauthenticated(
                    "kid_not_found", "Invalid token: signing key not found"
                ) from e
            raise


def _is_kid_miss(error: PyJWKClientError) -> bool:
    text = str(error)
    return "Unable to find" in text or "kid" in text.lower()
