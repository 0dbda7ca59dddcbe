"""
Request Guard Tests
===================

Tests for the dependency guards, exercised through a small app so each
guard is checked in isolation:
- require_auth / require_api_key
- require_permissions / require_any_permission / require_role
- require_organization
- rate_limit
"""

import uuid
from datetime import timedelta
from typing import Generator

import pytest
from fastapi import Depends, FastAPI, Request
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from sentinel_auth.core.config import settings
from sentinel_auth.core.dependencies import (
    rate_limit,
    require_any_permission,
    require_api_key,
    require_auth,
    require_organization,
    require_permissions,
    require_role,
)
from sentinel_auth.core.exceptions import SentinelAuthException
from sentinel_auth.db.session import get_db
from sentinel_auth.main import sentinel_exception_handler
from sentinel_auth.models import Organization, User
from sentinel_auth.services.api_key_service import ApiKeyService
from sentinel_auth.services.rate_limiter_service import RateLimiterService
from tests.conftest import bearer


pytestmark = pytest.mark.middleware


def _build_app() -> FastAPI:
    app = FastAPI()
    app.add_exception_handler(SentinelAuthException, sentinel_exception_handler)

    @app.get("/whoami", dependencies=[Depends(require_auth)])
    def whoami(request: Request):
        return {"user_id": str(request.state.user.user_id)}

    @app.get(
        "/all",
        dependencies=[Depends(require_auth), Depends(require_permissions("logs:read", "alerts:read"))],
    )
    def needs_all():
        return {"ok": True}

    @app.get(
        "/any",
        dependencies=[Depends(require_auth), Depends(require_any_permission("logs:export", "logs:read"))],
    )
    def needs_any():
        return {"ok": True}

    @app.get("/unguarded-permission", dependencies=[Depends(require_permissions("logs:read"))])
    def missing_auth():
        return {"ok": True}

    @app.get("/admin", dependencies=[Depends(require_auth), Depends(require_role("Admin"))])
    def admin_only():
        return {"ok": True}

    @app.get(
        "/orgs/{organization_id}",
        dependencies=[Depends(require_auth), Depends(require_organization)],
    )
    def org_scoped(organization_id: str):
        return {"organization_id": organization_id}

    @app.post("/orgs", dependencies=[Depends(require_auth), Depends(require_organization)])
    def org_from_body():
        return {"ok": True}

    @app.get("/machine", dependencies=[Depends(require_api_key)])
    def machine(request: Request):
        context = request.state.api_key
        return {
            "key_id": str(context.key_id),
            "permissions": context.permissions,
            "has_user": hasattr(request.state, "user"),
        }

    @app.get("/limited", dependencies=[Depends(rate_limit(2, 60_000, scope="test"))])
    def limited():
        return {"ok": True}

    return app


@pytest.fixture
def guard_client(db_session: Session) -> Generator[TestClient, None, None]:
    app = _build_app()

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client


class TestRequireAuth:
    def test_missing_header(self, guard_client: TestClient):
        # Act
        response = guard_client.get("/whoami")

        # Assert
        assert response.status_code == 401
        assert response.json()["error"] == "AUTHENTICATION_REQUIRED"

    def test_malformed_header(self, guard_client: TestClient):
        response = guard_client.get("/whoami", headers={"Authorization": "InvalidFormat"})
        assert response.status_code == 401

    def test_valid_token_sets_context(self, guard_client: TestClient, viewer_user: User, token_for):
        # Act
        response = guard_client.get("/whoami", headers=bearer(token_for(viewer_user)))

        # Assert
        assert response.status_code == 200
        assert response.json()["user_id"] == str(viewer_user.id)

    def test_expired_token(self, guard_client: TestClient, viewer_user: User, token_for):
        # Arrange
        token = token_for(viewer_user, expires_delta=timedelta(seconds=-1))

        # Act
        response = guard_client.get("/whoami", headers=bearer(token))

        # Assert
        assert response.status_code == 401
        assert response.json()["error"] == "TOKEN_EXPIRED"

    def test_forged_token(self, guard_client: TestClient):
        response = guard_client.get("/whoami", headers=bearer("invalid.token.here"))

        assert response.status_code == 401
        assert response.json()["error"] == "TOKEN_INVALID"


class TestPermissionGuards:
    def test_all_permissions_held(self, guard_client: TestClient, viewer_headers: dict):
        assert guard_client.get("/all", headers=viewer_headers).status_code == 200

    def test_missing_permission_reports_required_and_current(
        self, guard_client: TestClient, plain_user: User, token_for
    ):
        # Act
        response = guard_client.get("/all", headers=bearer(token_for(plain_user)))

        # Assert
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "INSUFFICIENT_PERMISSIONS"
        assert body["details"] == {"required": ["logs:read", "alerts:read"], "current": []}

    def test_any_permission(self, guard_client: TestClient, viewer_headers: dict, plain_user: User, token_for):
        assert guard_client.get("/any", headers=viewer_headers).status_code == 200
        assert guard_client.get("/any", headers=bearer(token_for(plain_user))).status_code == 403

    def test_permission_guard_without_auth(self, guard_client: TestClient):
        response = guard_client.get("/unguarded-permission")
        assert response.status_code == 401

    def test_role_guard(self, guard_client: TestClient, admin_headers: dict, viewer_headers: dict):
        assert guard_client.get("/admin", headers=admin_headers).status_code == 200

        response = guard_client.get("/admin", headers=viewer_headers)
        assert response.status_code == 403
        assert response.json()["details"]["required"] == ["Admin"]


class TestRequireOrganization:
    def test_own_organization(self, guard_client: TestClient, viewer_headers: dict, organization: Organization):
        response = guard_client.get(f"/orgs/{organization.id}", headers=viewer_headers)
        assert response.status_code == 200

    def test_other_organization(
        self, guard_client: TestClient, viewer_headers: dict, second_organization: Organization
    ):
        # Act
        response = guard_client.get(f"/orgs/{second_organization.id}", headers=viewer_headers)

        # Assert
        assert response.status_code == 403
        assert response.json()["error"] == "CROSS_TENANT_ACCESS_DENIED"

    def test_unparseable_organization_id(self, guard_client: TestClient, viewer_headers: dict):
        response = guard_client.get("/orgs/not-a-uuid", headers=viewer_headers)
        assert response.status_code == 403

    def test_organization_in_body(
        self, guard_client: TestClient, viewer_headers: dict, second_organization: Organization
    ):
        response = guard_client.post(
            "/orgs", json={"organizationId": str(second_organization.id)}, headers=viewer_headers
        )
        assert response.status_code == 403

    def test_no_target_passes_through(self, guard_client: TestClient, viewer_headers: dict):
        response = guard_client.post("/orgs", json={"name": "anything"}, headers=viewer_headers)
        assert response.status_code == 200


class TestRequireApiKey:
    def test_valid_key(
        self, guard_client: TestClient, db_session: Session, admin_user: User, organization: Organization
    ):
        # Arrange
        issued = ApiKeyService(db_session).generate_api_key("ci", admin_user.id, organization.id, ["logs:read"])

        # Act
        response = guard_client.get("/machine", headers={"X-API-Key": issued.api_key})

        # Assert
        assert response.status_code == 200
        assert response.json() == {
            "key_id": str(issued.key_id),
            "permissions": ["logs:read"],
            "has_user": False,
        }

    def test_missing_key(self, guard_client: TestClient):
        assert guard_client.get("/machine").status_code == 401

    def test_unknown_key(self, guard_client: TestClient):
        response = guard_client.get("/machine", headers={"X-API-Key": f"sk_{uuid.uuid4().hex[:8]}_{'a' * 32}"})

        assert response.status_code == 401
        assert response.json()["error"] == "INVALID_API_KEY"


class TestRateLimit:
    @pytest.fixture(autouse=True)
    def enable_rate_limiting(self, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)

    def test_headers_on_allowed_request(self, guard_client: TestClient):
        # Act
        response = guard_client.get("/limited")

        # Assert
        assert response.status_code == 200
        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Remaining"] == "1"
        assert "X-RateLimit-Reset" in response.headers

    def test_exhausted_window_returns_429(self, guard_client: TestClient):
        # Arrange
        guard_client.get("/limited")
        guard_client.get("/limited")

        # Act
        response = guard_client.get("/limited")

        # Assert
        assert response.status_code == 429
        assert response.json()["error"] == "RATE_LIMIT_EXCEEDED"
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Remaining"] == "0"

    def test_store_failure_fails_open(self, guard_client: TestClient, monkeypatch):
        # Arrange
        def broken_check(self, key, max_requests, window_ms):
            raise OperationalError("SELECT 1", {}, Exception("database is locked"))

        monkeypatch.setattr(RateLimiterService, "check_limit", broken_check)

        # Act
        response = guard_client.get("/limited")

        # Assert
        assert response.status_code == 200
        assert "X-RateLimit-Limit" not in response.headers

    def test_disabled_limiter_sets_no_headers(self, guard_client: TestClient, monkeypatch):
        monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)

        response = guard_client.get("/limited")

        assert "X-RateLimit-Limit" not in response.headers
