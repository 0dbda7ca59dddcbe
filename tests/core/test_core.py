"""
Core Module Unit Tests
======================

Tests for configuration loading, the exception envelope, secret
helpers and log context propagation.
"""

from datetime import timedelta

import pytest

from sentinel_auth.core import config
from sentinel_auth.core.config import AuthConfig, ConfigurationError, Settings
from sentinel_auth.core.exceptions import (
    AccountLockedError,
    InsufficientPermissionsError,
    InvalidCredentialsError,
    RateLimitExceededError,
    RoleNotFoundError,
)
from sentinel_auth.core.logging import (
    LogContext,
    add_context_variables,
    organization_id_context,
    request_id_context,
)
from sentinel_auth.core.security import generate_secret, hash_secret, utcnow


pytestmark = pytest.mark.unit


class TestSettings:
    def test_missing_jwt_secret_refuses_to_start(self, monkeypatch):
        # Arrange
        monkeypatch.delenv("JWT_SECRET", raising=False)
        monkeypatch.setattr(config, "_settings", None)

        # Act / Assert
        with pytest.raises(ConfigurationError) as exc_info:
            config.get_settings()
        assert "JWT_SECRET" in str(exc_info.value)

    def test_short_jwt_secret_is_rejected(self, monkeypatch):
        monkeypatch.setenv("JWT_SECRET", "too-short")
        monkeypatch.setattr(config, "_settings", None)

        with pytest.raises(ConfigurationError):
            config.get_settings()

    def test_auth_config_from_settings(self, monkeypatch):
        # Arrange
        monkeypatch.setenv("ACCESS_TOKEN_EXPIRE_MINUTES", "5")
        monkeypatch.setenv("MAX_LOGIN_ATTEMPTS", "3")

        # Act
        auth_config = AuthConfig.from_settings(Settings())

        # Assert
        assert auth_config.access_token_ttl == timedelta(minutes=5)
        assert auth_config.max_failed_attempts == 3
        assert auth_config.refresh_token_ttl == timedelta(days=7)
        assert auth_config.jwt_algorithm == "HS256"

    def test_cors_origins_list(self, monkeypatch):
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test,")

        assert Settings().cors_origins_list == ["http://a.test", "http://b.test"]

    def test_sqlite_detection(self):
        assert Settings().is_sqlite is True


class TestExceptions:
    def test_envelope_shape(self):
        # Act
        body = RoleNotFoundError("r-1").to_dict()

        # Assert
        assert body == {
            "error": "ROLE_NOT_FOUND",
            "message": "Role not found",
            "details": {"resource": "Role", "identifier": "r-1"},
        }

    def test_invalid_credentials_without_attempts(self):
        exc = InvalidCredentialsError()

        assert exc.status_code == 401
        assert exc.details == {}

    def test_account_locked_carries_unlock_time(self):
        unlock_at = utcnow() + timedelta(minutes=15)

        exc = AccountLockedError(unlock_at=unlock_at)

        assert exc.details["unlock_at"] == unlock_at.isoformat()

    def test_insufficient_permissions_sorts_current(self):
        exc = InsufficientPermissionsError(required=["b", "a"], current=["z", "y"])

        assert exc.status_code == 403
        assert exc.details == {"required": ["b", "a"], "current": ["y", "z"]}

    def test_rate_limit_sets_retry_after(self):
        exc = RateLimitExceededError(retry_after=42)

        assert exc.status_code == 429
        assert exc.headers["Retry-After"] == "42"


class TestSecrets:
    def test_generate_secret_is_hex(self):
        secret = generate_secret()

        assert len(secret) == 64
        int(secret, 16)
        assert generate_secret() != secret

    def test_hash_secret_is_stable_sha256(self):
        assert hash_secret("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


class TestLogContext:
    def test_context_is_added_and_restored(self):
        # Act
        with LogContext(request_id="req-1", organization_id="org-1"):
            inside = add_context_variables(None, "info", {})

        # Assert
        assert inside == {"request_id": "req-1", "organization_id": "org-1"}
        assert request_id_context.get() is None
        assert organization_id_context.get() is None

    def test_explicit_values_win(self):
        with LogContext(request_id="req-1"):
            event = add_context_variables(None, "info", {"request_id": "explicit"})

        assert event["request_id"] == "explicit"
