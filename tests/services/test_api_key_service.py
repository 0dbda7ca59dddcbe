"""
API Key Service Unit Tests
==========================
"""

import re
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import Update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from sentinel_auth.core.exceptions import (
    ApiKeyExpiredError,
    CrossTenantAccessDeniedError,
    InvalidApiKeyError,
    ResourceNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from sentinel_auth.core.security import hash_secret, utcnow
from sentinel_auth.models import ApiKey, Organization, User
from sentinel_auth.services.api_key_service import ApiKeyService
from sentinel_auth.services.rbac_service import RBACService
from tests.conftest import role_by_name


pytestmark = pytest.mark.unit


@pytest.fixture
def service(db_session: Session) -> ApiKeyService:
    return ApiKeyService(db_session)


class TestGenerate:
    def test_key_format(self, service: ApiKeyService, admin_user: User, organization: Organization):
        # Act
        issued = service.generate_api_key("ci", admin_user.id, organization.id, ["logs:read"])

        # Assert
        prefix = str(organization.id)[:8]
        assert re.fullmatch(rf"sk_{prefix}_[0-9a-f]{{32}}", issued.api_key)

    def test_only_hash_is_stored(
        self, db_session: Session, service: ApiKeyService, admin_user: User, organization: Organization
    ):
        # Act
        issued = service.generate_api_key("ci", admin_user.id, organization.id, ["logs:read"])

        # Assert
        record = db_session.get(ApiKey, issued.key_id)
        assert record.key_hash == hash_secret(issued.api_key)
        assert issued.api_key not in record.to_dict().values()

    def test_permissions_are_sorted_and_deduplicated(
        self, service: ApiKeyService, admin_user: User, organization: Organization
    ):
        issued = service.generate_api_key(
            "ci", admin_user.id, organization.id, ["logs:read", "alerts:read", "logs:read"]
        )

        assert issued.scoped_permissions == ["alerts:read", "logs:read"]

    def test_unknown_permission(self, service: ApiKeyService, admin_user: User, organization: Organization):
        # Act
        with pytest.raises(ValidationError) as exc_info:
            service.generate_api_key("ci", admin_user.id, organization.id, ["logs:read", "logs:delete"])

        # Assert
        assert exc_info.value.details["unknown_permissions"] == ["logs:delete"]

    def test_expiry_in_the_past(self, service: ApiKeyService, admin_user: User, organization: Organization):
        with pytest.raises(ValidationError):
            service.generate_api_key(
                "ci", admin_user.id, organization.id, [], expires_at=utcnow() - timedelta(minutes=1)
            )

    def test_expiry_without_offset_is_read_as_utc(
        self, service: ApiKeyService, admin_user: User, organization: Organization
    ):
        # Act
        issued = service.generate_api_key(
            "ci", admin_user.id, organization.id, ["logs:read"], expires_at=datetime(2099, 1, 1)
        )

        # Assert
        assert issued.expires_at == datetime(2099, 1, 1, tzinfo=timezone.utc)
        assert service.validate_api_key(issued.api_key).key_id == issued.key_id

    def test_past_expiry_without_offset(
        self, service: ApiKeyService, admin_user: User, organization: Organization
    ):
        with pytest.raises(ValidationError):
            service.generate_api_key("ci", admin_user.id, organization.id, [], expires_at=datetime(2000, 1, 1))

    def test_user_outside_organization(
        self, service: ApiKeyService, admin_user: User, second_organization: Organization
    ):
        with pytest.raises(CrossTenantAccessDeniedError):
            service.generate_api_key("ci", admin_user.id, second_organization.id, [])

    def test_unknown_user(self, service: ApiKeyService, organization: Organization):
        with pytest.raises(UserNotFoundError):
            service.generate_api_key("ci", uuid.uuid4(), organization.id, [])


class TestValidate:
    def test_valid_key_resolves_identity(
        self, service: ApiKeyService, admin_user: User, organization: Organization
    ):
        # Arrange
        issued = service.generate_api_key("ci", admin_user.id, organization.id, ["logs:read"])

        # Act
        identity = service.validate_api_key(issued.api_key)

        # Assert
        assert identity.user_id == admin_user.id
        assert identity.organization_id == organization.id
        assert identity.key_id == issued.key_id
        assert identity.permissions == ["logs:read"]

    def test_validation_records_last_use(
        self, db_session: Session, service: ApiKeyService, admin_user: User, organization: Organization
    ):
        # Arrange
        issued = service.generate_api_key("ci", admin_user.id, organization.id, [])

        # Act
        service.validate_api_key(issued.api_key)

        # Assert
        db_session.expire_all()
        assert db_session.get(ApiKey, issued.key_id).last_used_at is not None

    def test_last_use_failure_does_not_fail_validation(
        self,
        db_session: Session,
        service: ApiKeyService,
        admin_user: User,
        organization: Organization,
        monkeypatch,
    ):
        # Arrange
        issued = service.generate_api_key("ci", admin_user.id, organization.id, ["logs:read"])
        execute = db_session.execute

        def execute_with_failing_update(statement, *args, **kwargs):
            if isinstance(statement, Update):
                raise OperationalError("UPDATE api_keys", {}, Exception("database is locked"))
            return execute(statement, *args, **kwargs)

        monkeypatch.setattr(db_session, "execute", execute_with_failing_update)

        # Act
        identity = service.validate_api_key(issued.api_key)

        # Assert
        assert identity.key_id == issued.key_id
        assert identity.user_id == admin_user.id
        assert identity.permissions == ["logs:read"]
        monkeypatch.undo()
        db_session.expire_all()
        assert db_session.get(ApiKey, issued.key_id).last_used_at is None

    def test_unknown_key(self, service: ApiKeyService):
        with pytest.raises(InvalidApiKeyError):
            service.validate_api_key("sk_00000000_" + "0" * 32)

    def test_expired_key(
        self, db_session: Session, service: ApiKeyService, admin_user: User, organization: Organization
    ):
        # Arrange
        issued = service.generate_api_key(
            "ci", admin_user.id, organization.id, [], expires_at=utcnow() + timedelta(minutes=5)
        )
        record = db_session.get(ApiKey, issued.key_id)
        record.expires_at = utcnow() - timedelta(seconds=1)
        db_session.commit()

        # Act / Assert
        with pytest.raises(ApiKeyExpiredError):
            service.validate_api_key(issued.api_key)

    def test_revoked_key(self, service: ApiKeyService, admin_user: User, organization: Organization):
        # Arrange
        issued = service.generate_api_key("ci", admin_user.id, organization.id, [])
        service.revoke_api_key(issued.key_id)

        # Act / Assert
        with pytest.raises(InvalidApiKeyError):
            service.validate_api_key(issued.api_key)

    def test_permissions_are_a_snapshot(
        self,
        db_session: Session,
        service: ApiKeyService,
        viewer_user: User,
        organization: Organization,
    ):
        # Arrange
        issued = service.generate_api_key("ci", viewer_user.id, organization.id, ["logs:read"])
        RBACService(db_session).remove_role(viewer_user.id, role_by_name(db_session, organization, "Viewer").id)

        # Act
        identity = service.validate_api_key(issued.api_key)

        # Assert
        assert identity.permissions == ["logs:read"]


class TestRevokeAndList:
    def test_revoke_someone_elses_key(
        self, service: ApiKeyService, admin_user: User, viewer_user: User, organization: Organization
    ):
        # Arrange
        issued = service.generate_api_key("ci", admin_user.id, organization.id, [])

        # Act / Assert
        with pytest.raises(ResourceNotFoundError):
            service.revoke_api_key(issued.key_id, user_id=viewer_user.id)
        assert service.validate_api_key(issued.api_key).key_id == issued.key_id

    def test_revoke_unknown_key(self, service: ApiKeyService):
        with pytest.raises(ResourceNotFoundError):
            service.revoke_api_key(uuid.uuid4())

    def test_list_returns_only_own_keys(
        self, service: ApiKeyService, admin_user: User, viewer_user: User, organization: Organization
    ):
        # Arrange
        service.generate_api_key("first", admin_user.id, organization.id, [])
        service.generate_api_key("second", admin_user.id, organization.id, [])
        service.generate_api_key("other", viewer_user.id, organization.id, [])

        # Act
        keys = service.get_user_api_keys(admin_user.id)

        # Assert
        assert {k.name for k in keys} == {"first", "second"}
        assert all("key_hash" not in k.to_dict() for k in keys)
