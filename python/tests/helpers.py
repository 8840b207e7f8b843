"""Test helpers for authentication and common test operations.

Provides:
- Token minting for test authentication (HS256 with the test secret)
- Header generation for test requests
- Conversation id helpers
"""

import time
from uuid import UUID, uuid4

import jwt

from huddle.services.identity import direct_chat_key

TEST_JWT_SECRET = "test-secret-with-enough-length-for-hs256"
DEFAULT_EXPIRES_IN = 3600  # 1 hour


def mint_test_token(
    user_id: UUID | str,
    expires_in: int = DEFAULT_EXPIRES_IN,
    secret: str = TEST_JWT_SECRET,
    **extra_claims,
) -> str:
    """Mint a valid test JWT token.

    Args:
        user_id: The user ID to set as the `sub` claim.
        expires_in: Token validity in seconds from now.
        secret: HS256 signing secret.
        **extra_claims: Additional claims (name, email, picture, iss, aud, ...).

    Returns:
        A signed JWT token string.
    """
    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + expires_in,
        **extra_claims,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def mint_expired_token(user_id: UUID | str) -> str:
    """Mint a token that expired 1 hour ago (beyond the clock skew allowance)."""
    return mint_test_token(user_id, expires_in=-3600)


def mint_token_with_bad_signature(user_id: UUID | str) -> str:
    """Mint a token signed with a different secret."""
    return mint_test_token(user_id, secret="some-other-secret-that-is-long-enough")


def auth_headers(user_id: UUID | str, **token_kwargs) -> dict[str, str]:
    """Return headers dict with valid Authorization for the given user."""
    token = mint_test_token(user_id, **token_kwargs)
    return {"Authorization": f"Bearer {token}"}


def create_test_user_id() -> UUID:
    return uuid4()


def dm_id(user_a: str, user_b: str) -> str:
    """Direct conversation id for two users."""
    return direct_chat_key(user_a, user_b)
