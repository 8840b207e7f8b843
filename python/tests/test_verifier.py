"""Unit tests for token verifiers.

Tests HmacTokenVerifier directly and JwksVerifier with the JWKS client mocked.
"""

import time
from unittest.mock import MagicMock, patch
from uuid import uuid4

import jwt
import pytest
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.exceptions import PyJWKClientConnectionError

from huddle.auth.verifier import HmacTokenVerifier, JwksVerifier
from huddle.errors import ApiError, ApiErrorCode
from tests.helpers import TEST_JWT_SECRET, mint_expired_token, mint_test_token


class TestHmacTokenVerifier:
    @pytest.fixture
    def verifier(self):
        return HmacTokenVerifier(secret=TEST_JWT_SECRET)

    def test_valid_token(self, verifier):
        user_id = str(uuid4())
        claims = verifier.verify(mint_test_token(user_id, name="Alice"))
        assert claims["sub"] == user_id
        assert claims["name"] == "Alice"

    def test_expired_token(self, verifier):
        with pytest.raises(ApiError) as exc_info:
            verifier.verify(mint_expired_token(uuid4()))
        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED
        assert "expired" in exc_info.value.message.lower()

    def test_wrong_secret(self, verifier):
        token = mint_test_token(uuid4(), secret="a-different-secret-of-reasonable-length")
        with pytest.raises(ApiError) as exc_info:
            verifier.verify(token)
        assert "signature" in exc_info.value.message.lower()

    def test_non_uuid_sub(self, verifier):
        with pytest.raises(ApiError) as exc_info:
            verifier.verify(mint_test_token("group:evil"))
        assert "UUID" in exc_info.value.message

    def test_garbage_token(self, verifier):
        with pytest.raises(ApiError) as exc_info:
            verifier.verify("not-a-jwt")
        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED

    def test_missing_exp(self, verifier):
        token = jwt.encode({"sub": str(uuid4())}, TEST_JWT_SECRET, algorithm="HS256")
        with pytest.raises(ApiError) as exc_info:
            verifier.verify(token)
        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED

    def test_issuer_and_audience_checked_when_configured(self):
        verifier = HmacTokenVerifier(
            secret=TEST_JWT_SECRET, issuer="https://auth.example/", audiences=["web"]
        )
        user_id = str(uuid4())

        ok = mint_test_token(user_id, iss="https://auth.example", aud="web")
        assert verifier.verify(ok)["sub"] == user_id

        with pytest.raises(ApiError) as exc_info:
            verifier.verify(mint_test_token(user_id, iss="https://other", aud="web"))
        assert "issuer" in exc_info.value.message.lower()

        with pytest.raises(ApiError) as exc_info:
            verifier.verify(mint_test_token(user_id, iss="https://auth.example", aud="mobile"))
        assert "audience" in exc_info.value.message.lower()


class TestJwksVerifier:
    """All tests mock the JWKS client; no HTTP is performed."""

    ISSUER = "https://auth.example"

    @pytest.fixture(scope="class")
    def rsa_keypair(self):
        private_key = rsa.generate_private_key(
            public_exponent=65537,
            key_size=2048,
            backend=default_backend(),
        )
        return private_key, private_key.public_key()

    @pytest.fixture
    def verifier(self):
        return JwksVerifier(
            jwks_url=f"{self.ISSUER}/.well-known/jwks.json",
            issuer=self.ISSUER,
            audiences=["authenticated"],
        )

    def mint_token(self, private_key, sub: str, **overrides) -> str:
        now = int(time.time())
        payload = {
            "sub": sub,
            "iss": self.ISSUER,
            "aud": "authenticated",
            "iat": now,
            "exp": now + 3600,
            **overrides,
        }
        private_bytes = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return jwt.encode(payload, private_bytes, algorithm="RS256", headers={"kid": "kid-1"})

    def _mock_client(self, public_key):
        client = MagicMock()
        signing_key = MagicMock()
        signing_key.key = public_key
        client.get_signing_key_from_jwt.return_value = signing_key
        return client

    def test_valid_token(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        user_id = str(uuid4())
        token = self.mint_token(private_key, user_id)

        with patch.object(verifier, "_get_jwks_client", return_value=self._mock_client(public_key)):
            claims = verifier.verify(token)

        assert claims["sub"] == user_id
        assert claims["aud"] == "authenticated"

    def test_wrong_issuer(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        token = self.mint_token(private_key, str(uuid4()), iss="https://evil.example")

        with patch.object(verifier, "_get_jwks_client", return_value=self._mock_client(public_key)):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert "issuer" in exc_info.value.message.lower()

    def test_missing_audience(self, verifier, rsa_keypair):
        private_key, public_key = rsa_keypair
        token = self.mint_token(private_key, str(uuid4()), aud=None)

        with patch.object(verifier, "_get_jwks_client", return_value=self._mock_client(public_key)):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert exc_info.value.code == ApiErrorCode.E_UNAUTHENTICATED

    def test_jwks_unreachable(self, verifier, rsa_keypair):
        private_key, _ = rsa_keypair
        token = self.mint_token(private_key, str(uuid4()))
        client = MagicMock()
        client.get_signing_key_from_jwt.side_effect = PyJWKClientConnectionError("timeout")

        with patch.object(verifier, "_get_jwks_client", return_value=client):
            with pytest.raises(ApiError) as exc_info:
                verifier.verify(token)

        assert exc_info.value.code == ApiErrorCode.E_AUTH_UNAVAILABLE
        assert exc_info.value.status_code == 503
