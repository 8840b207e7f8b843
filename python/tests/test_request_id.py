"""Tests for X-Request-ID middleware.

Tests cover:
- Request ID generation when missing
- Request ID preservation when valid
- Request ID normalization (UUID lowercase)
- Request ID replacement when invalid
- Request ID presence on auth failures
- Request ID in error response body
"""

from uuid import UUID

import pytest

from huddle.middleware.request_id import resolve_request_id
from tests.helpers import auth_headers, create_test_user_id


class TestRequestIdMiddleware:
    def test_request_id_generated_when_missing(self, authenticated_client):
        response = authenticated_client.get("/me", headers=auth_headers(create_test_user_id()))

        assert response.status_code == 200
        UUID(response.headers["X-Request-ID"])

    def test_request_id_preserved_when_valid(self, authenticated_client):
        response = authenticated_client.get(
            "/me",
            headers={**auth_headers(create_test_user_id()), "X-Request-ID": "abc_def-123"},
        )
        assert response.headers["X-Request-ID"] == "abc_def-123"

    def test_request_id_uuid_normalized_to_lowercase(self, authenticated_client):
        response = authenticated_client.get(
            "/me",
            headers={
                **auth_headers(create_test_user_id()),
                "X-Request-ID": "550E8400-E29B-41D4-A716-446655440000",
            },
        )
        assert response.headers["X-Request-ID"] == "550e8400-e29b-41d4-a716-446655440000"

    def test_request_id_present_on_auth_failure(self, authenticated_client):
        response = authenticated_client.get("/me")

        assert response.status_code == 401
        assert "X-Request-ID" in response.headers
        assert response.json()["error"]["request_id"] == response.headers["X-Request-ID"]

    def test_error_response_includes_request_id_in_body(self, authenticated_client):
        response = authenticated_client.get(
            "/groups/does-not-exist", headers=auth_headers(create_test_user_id())
        )

        assert response.status_code == 404
        data = response.json()
        assert data["error"]["code"] == "E_GROUP_NOT_FOUND"
        assert data["error"]["request_id"] == response.headers["X-Request-ID"]


class TestResolveRequestId:
    @pytest.mark.parametrize("incoming", ["request.id.with.dots", "A_b-9"])
    def test_valid_ids_kept(self, incoming):
        assert resolve_request_id(incoming) == incoming

    @pytest.mark.parametrize("incoming", [None, "", "bad id with spaces", "a" * 200, "ü"])
    def test_invalid_ids_replaced(self, incoming):
        resolved = resolve_request_id(incoming)
        assert resolved != incoming
        UUID(resolved)
