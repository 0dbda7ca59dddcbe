"""
Request Pipeline Middleware Tests
=================================

Tests for middleware components including:
- RequestContextMiddleware
- SecurityHeadersMiddleware
- Error envelope rendering
"""

import pytest
from fastapi.testclient import TestClient


pytestmark = pytest.mark.middleware


class TestRequestContextMiddleware:
    """Tests for RequestContextMiddleware."""

    def test_request_id_header_added(self, client: TestClient):
        """Test that X-Request-ID header is added to responses."""
        # Act
        response = client.get("/")

        # Assert
        assert "X-Request-ID" in response.headers
        assert len(response.headers["X-Request-ID"]) > 0

    def test_client_request_id_is_propagated(self, client: TestClient):
        """Test that a client supplied X-Request-ID is echoed back."""
        # Act
        response = client.get("/", headers={"X-Request-ID": "trace-1234"})

        # Assert
        assert response.headers["X-Request-ID"] == "trace-1234"

    def test_process_time_header_added(self, client: TestClient):
        """Test that X-Process-Time header is added to responses."""
        response = client.get("/")
        assert "X-Process-Time" in response.headers

    def test_public_paths_accessible_without_auth(self, client: TestClient):
        assert client.get("/").status_code == 200
        assert client.get("/health").status_code == 200

    def test_health_reports_database(self, client: TestClient):
        body = client.get("/health").json()
        assert body["checks"]["database"] == "healthy"

    def test_request_id_present_on_error_responses(self, client: TestClient):
        response = client.get("/auth/me")

        assert response.status_code == 401
        assert "X-Request-ID" in response.headers


class TestSecurityHeadersMiddleware:
    """Tests for SecurityHeadersMiddleware."""

    def test_x_content_type_options_header(self, client: TestClient):
        response = client.get("/")
        assert response.headers.get("X-Content-Type-Options") == "nosniff"

    def test_x_frame_options_header(self, client: TestClient):
        response = client.get("/")
        assert response.headers.get("X-Frame-Options") == "DENY"

    def test_responses_are_not_cached(self, client: TestClient):
        """Token-bearing responses must not be stored by caches."""
        response = client.get("/")
        assert response.headers.get("Cache-Control") == "no-store"

    def test_csp_header(self, client: TestClient):
        response = client.get("/")
        assert "default-src 'none'" in response.headers.get("Content-Security-Policy", "")

    def test_no_hsts_outside_production(self, client: TestClient):
        response = client.get("/")
        assert "Strict-Transport-Security" not in response.headers


class TestErrorEnvelope:
    def test_unknown_route_is_404(self, client: TestClient):
        assert client.get("/does-not-exist").status_code == 404

    def test_authentication_error_envelope(self, client: TestClient):
        # Act
        response = client.get("/auth/me")

        # Assert
        body = response.json()
        assert set(body) == {"error", "message", "details"}
        assert response.headers.get("WWW-Authenticate") == "Bearer"

    def test_validation_error_is_400(self, client: TestClient):
        # Act
        response = client.post("/auth/login", json={"email": "not-an-email"})

        # Assert
        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "VALIDATION_ERROR"
        fields = {e["field"] for e in body["details"]["errors"]}
        assert "body.email" in fields
        assert "body.password" in fields
