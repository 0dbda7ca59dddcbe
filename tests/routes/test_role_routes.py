"""
Role Management Route Tests
===========================

Tests for the /api/roles endpoints:
- Permission enforcement per endpoint
- Role CRUD and assignment through HTTP
- Tenant isolation of roles
"""

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.orm import Session

from sentinel_auth.models import Organization, Permission, User
from tests.conftest import bearer, role_by_name


pytestmark = pytest.mark.rbac


def _permission_id(db: Session, name: str) -> str:
    return str(db.scalar(select(Permission.id).where(Permission.name == name)))


class TestListing:
    def test_admin_lists_own_roles(self, client: TestClient, admin_headers: dict):
        # Act
        response = client.get("/api/roles", headers=admin_headers)

        # Assert
        assert response.status_code == 200
        roles = response.json()
        assert [r["name"] for r in roles] == ["Admin", "Operator", "Viewer"]
        assert all(r["is_system_role"] for r in roles)

    def test_roles_are_tenant_scoped(
        self, client: TestClient, admin_headers: dict, second_org_admin: User, token_for
    ):
        # Arrange
        own = client.get("/api/roles", headers=admin_headers).json()

        # Act
        other = client.get("/api/roles", headers=bearer(token_for(second_org_admin))).json()

        # Assert
        assert {r["id"] for r in own}.isdisjoint({r["id"] for r in other})

    def test_viewer_cannot_list_roles(self, client: TestClient, viewer_headers: dict):
        response = client.get("/api/roles", headers=viewer_headers)

        assert response.status_code == 403
        assert response.json()["details"]["required"] == ["roles:read"]

    def test_list_permissions(self, client: TestClient, admin_headers: dict):
        # Act
        response = client.get("/api/roles/permissions", headers=admin_headers)

        # Assert
        assert response.status_code == 200
        names = [p["name"] for p in response.json()]
        assert "roles:write" in names
        assert len(names) == len(set(names))

    def test_organization_roles_same_tenant(
        self, client: TestClient, admin_headers: dict, organization: Organization
    ):
        response = client.get(f"/api/organizations/{organization.id}/roles", headers=admin_headers)
        assert response.status_code == 200

    def test_organization_roles_other_tenant(
        self, client: TestClient, admin_headers: dict, second_organization: Organization
    ):
        response = client.get(f"/api/organizations/{second_organization.id}/roles", headers=admin_headers)

        assert response.status_code == 403
        assert response.json()["error"] == "CROSS_TENANT_ACCESS_DENIED"


class TestRoleCrud:
    def test_create_role(
        self, client: TestClient, db_session: Session, admin_headers: dict, organization: Organization
    ):
        # Act
        response = client.post(
            "/api/roles",
            json={
                "name": "Responder",
                "description": "On-call",
                "permissionIds": [_permission_id(db_session, "incidents:write")],
            },
            headers=admin_headers,
        )

        # Assert
        assert response.status_code == 201
        body = response.json()
        assert body["organization_id"] == str(organization.id)
        assert body["is_system_role"] is False
        assert [p["name"] for p in body["permissions"]] == ["incidents:write"]

    def test_create_duplicate_role(self, client: TestClient, admin_headers: dict):
        response = client.post("/api/roles", json={"name": "Viewer"}, headers=admin_headers)

        assert response.status_code == 409
        assert response.json()["error"] == "DUPLICATE_RESOURCE"

    def test_create_with_unknown_permission(self, client: TestClient, admin_headers: dict):
        response = client.post(
            "/api/roles",
            json={"name": "Responder", "permissionIds": [str(uuid.uuid4())]},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_update_role(self, client: TestClient, db_session: Session, admin_headers: dict):
        # Arrange
        role_id = client.post("/api/roles", json={"name": "Responder"}, headers=admin_headers).json()["id"]

        # Act
        response = client.put(
            f"/api/roles/{role_id}",
            json={"name": "Incident Responder", "permissionIds": [_permission_id(db_session, "incidents:read")]},
            headers=admin_headers,
        )

        # Assert
        assert response.status_code == 200
        assert response.json()["name"] == "Incident Responder"
        assert [p["name"] for p in response.json()["permissions"]] == ["incidents:read"]

    def test_update_role_of_other_tenant(
        self, client: TestClient, db_session: Session, admin_headers: dict, second_organization: Organization
    ):
        # Arrange
        foreign = role_by_name(db_session, second_organization, "Viewer")

        # Act
        response = client.put(f"/api/roles/{foreign.id}", json={"name": "Hijacked"}, headers=admin_headers)

        # Assert
        assert response.status_code == 404

    def test_delete_custom_role(self, client: TestClient, admin_headers: dict):
        # Arrange
        role_id = client.post("/api/roles", json={"name": "Temp"}, headers=admin_headers).json()["id"]

        # Act
        response = client.delete(f"/api/roles/{role_id}", headers=admin_headers)

        # Assert
        assert response.status_code == 200
        names = [r["name"] for r in client.get("/api/roles", headers=admin_headers).json()]
        assert "Temp" not in names

    def test_delete_system_role(
        self, client: TestClient, db_session: Session, admin_headers: dict, organization: Organization
    ):
        # Arrange
        viewer = role_by_name(db_session, organization, "Viewer")

        # Act
        response = client.delete(f"/api/roles/{viewer.id}", headers=admin_headers)

        # Assert
        assert response.status_code == 400
        assert response.json()["error"] == "SYSTEM_ROLE_PROTECTED"

    def test_delete_assigned_role(self, client: TestClient, admin_headers: dict, plain_user: User):
        # Arrange
        role_id = client.post("/api/roles", json={"name": "Temp"}, headers=admin_headers).json()["id"]
        client.post(f"/api/roles/{role_id}/users/{plain_user.id}", headers=admin_headers)

        # Act
        response = client.delete(f"/api/roles/{role_id}", headers=admin_headers)

        # Assert
        assert response.status_code == 400
        assert response.json()["error"] == "ROLE_HAS_ASSIGNED_USERS"
        assert response.json()["details"]["user_count"] == 1

    def test_operator_cannot_delete_roles(
        self, client: TestClient, make_user, organization: Organization, token_for, db_session: Session
    ):
        # Arrange
        operator = make_user("ops@acme.test", organization, roles=["Operator"])
        role = role_by_name(db_session, organization, "Viewer")

        # Act
        response = client.delete(f"/api/roles/{role.id}", headers=bearer(token_for(operator)))

        # Assert
        assert response.status_code == 403


class TestAssignment:
    def test_assign_and_remove(
        self,
        client: TestClient,
        db_session: Session,
        admin_headers: dict,
        organization: Organization,
        plain_user: User,
        token_for,
    ):
        # Arrange
        viewer = role_by_name(db_session, organization, "Viewer")

        # Act
        assigned = client.post(f"/api/roles/{viewer.id}/users/{plain_user.id}", headers=admin_headers)
        profile = client.get("/auth/me", headers=bearer(token_for(plain_user))).json()
        removed = client.delete(f"/api/roles/{viewer.id}/users/{plain_user.id}", headers=admin_headers)
        after = client.get("/auth/me", headers=bearer(token_for(plain_user))).json()

        # Assert
        assert assigned.status_code == 200
        assert profile["roles"] == ["Viewer"]
        assert removed.status_code == 200
        assert after["roles"] == []

    def test_assign_role_of_other_tenant(
        self,
        client: TestClient,
        db_session: Session,
        admin_headers: dict,
        second_organization: Organization,
        plain_user: User,
    ):
        # Arrange
        foreign = role_by_name(db_session, second_organization, "Admin")

        # Act
        response = client.post(f"/api/roles/{foreign.id}/users/{plain_user.id}", headers=admin_headers)

        # Assert
        assert response.status_code == 403

    def test_assign_to_user_of_other_tenant(
        self,
        client: TestClient,
        db_session: Session,
        admin_headers: dict,
        organization: Organization,
        second_org_admin: User,
    ):
        viewer = role_by_name(db_session, organization, "Viewer")

        response = client.post(f"/api/roles/{viewer.id}/users/{second_org_admin.id}", headers=admin_headers)

        assert response.status_code == 403

    def test_assign_unknown_user(
        self, client: TestClient, db_session: Session, admin_headers: dict, organization: Organization
    ):
        viewer = role_by_name(db_session, organization, "Viewer")

        response = client.post(f"/api/roles/{viewer.id}/users/{uuid.uuid4()}", headers=admin_headers)

        assert response.status_code == 404
