"""
API Key Service
===============

Long-lived bearer secrets for machine clients.

Key format:
    sk_<first 8 chars of the organization id>_<32 hex chars>

Only the SHA-256 digest is stored and the plaintext is returned exactly
once. A key's permissions are a snapshot taken at issuance: later role
or catalog changes do not alter what an existing key may do. Revoke the
key (or let it expire) to change that.
"""

import secrets
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sentinel_auth.core.exceptions import (
    ApiKeyExpiredError,
    CrossTenantAccessDeniedError,
    InvalidApiKeyError,
    ResourceNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from sentinel_auth.core.logging import get_logger
from sentinel_auth.core.security import as_utc, hash_secret, utcnow
from sentinel_auth.models.api_key import ApiKey
from sentinel_auth.models.rbac import Permission
from sentinel_auth.models.user import User

logger = get_logger(__name__)

API_KEY_PREFIX = "sk"


@dataclass
class GeneratedApiKey:
    """Result of issuing a key. ``api_key`` is the only copy of the plaintext."""

    api_key: str
    key_id: uuid.UUID
    name: str
    scoped_permissions: list[str]
    expires_at: Optional[datetime]
    created_at: datetime


@dataclass(frozen=True)
class ApiKeyIdentity:
    """Caller identity resolved from a valid API key."""

    user_id: uuid.UUID
    organization_id: uuid.UUID
    key_id: uuid.UUID
    permissions: list[str] = field(default_factory=list)


def format_api_key(organization_id: uuid.UUID) -> str:
    return f"{API_KEY_PREFIX}_{str(organization_id)[:8]}_{secrets.token_hex(16)}"


class ApiKeyService:
    """
    Usage:
        service = ApiKeyService(db)
        issued = service.generate_api_key("ci", user.id, org.id, ["logs:read"])
        identity = service.validate_api_key(issued.api_key)
    """

    def __init__(self, db: Session):
        self.db = db

    def generate_api_key(
        self,
        name: str,
        user_id: uuid.UUID,
        organization_id: uuid.UUID,
        scoped_permissions: Iterable[str],
        expires_at: Optional[datetime] = None,
    ) -> GeneratedApiKey:
        """
        Issue a key for a user of an organization.

        Raises:
            UserNotFoundError: If the user does not exist
            CrossTenantAccessDeniedError: If the user is outside the organization
            ValidationError: Unknown permission names or an expiry in the past
        """
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        if user.organization_id != organization_id:
            raise CrossTenantAccessDeniedError()

        permissions = sorted(set(scoped_permissions))
        if permissions:
            known = set(self.db.scalars(select(Permission.name).where(Permission.name.in_(permissions))))
            unknown = [p for p in permissions if p not in known]
            if unknown:
                raise ValidationError(
                    message="Unknown permissions",
                    details={"unknown_permissions": unknown},
                )

        if expires_at is not None:
            expires_at = as_utc(expires_at)
            if expires_at <= utcnow():
                raise ValidationError(message="expires_at must be in the future")

        plaintext = format_api_key(organization_id)
        api_key = ApiKey(
            name=name,
            key_hash=hash_secret(plaintext),
            user_id=user_id,
            organization_id=organization_id,
            scoped_permissions=permissions,
            expires_at=expires_at,
        )
        try:
            self.db.add(api_key)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "API key created",
            key_id=str(api_key.id),
            user_id=str(user_id),
            organization_id=str(organization_id),
        )
        return GeneratedApiKey(
            api_key=plaintext,
            key_id=api_key.id,
            name=api_key.name,
            scoped_permissions=permissions,
            expires_at=api_key.expires_at,
            created_at=api_key.created_at,
        )

    def validate_api_key(self, api_key: str) -> ApiKeyIdentity:
        """
        Resolve a presented key to its identity.

        Raises:
            InvalidApiKeyError: Unknown or revoked key
            ApiKeyExpiredError: Key past its expiry
        """
        record = self.db.scalar(
            select(ApiKey)
            .where(ApiKey.key_hash == hash_secret(api_key))
            .execution_options(populate_existing=True)
        )
        if record is None:
            raise InvalidApiKeyError()

        now = utcnow()
        if record.is_expired(now):
            raise ApiKeyExpiredError(expired_at=record.expires_at)

        identity = ApiKeyIdentity(
            user_id=record.user_id,
            organization_id=record.organization_id,
            key_id=record.id,
            permissions=list(record.scoped_permissions or []),
        )
        self._touch_last_used(record.id, now)
        return identity

    def _touch_last_used(self, key_id: uuid.UUID, now: datetime) -> None:
        """Best-effort bookkeeping; a failure here must not fail the request."""
        try:
            self.db.execute(
                update(ApiKey).where(ApiKey.id == key_id).values(last_used_at=now),
                execution_options={"synchronize_session": False},
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(
                "Failed to update API key last_used_at",
                key_id=str(key_id),
                error=str(e),
            )

    def revoke_api_key(self, key_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> None:
        """
        Hard-delete a key. With ``user_id`` only the owner's key matches.

        Raises:
            ResourceNotFoundError: If no key was deleted
        """
        stmt = delete(ApiKey).where(ApiKey.id == key_id)
        if user_id is not None:
            stmt = stmt.where(ApiKey.user_id == user_id)

        try:
            deleted = self.db.execute(
                stmt.returning(ApiKey.id),
                execution_options={"synchronize_session": False},
            ).scalar_one_or_none()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if deleted is None:
            raise ResourceNotFoundError("API key", key_id)
        logger.info("API key revoked", key_id=str(key_id))

    def get_user_api_keys(self, user_id: uuid.UUID) -> list[ApiKey]:
        """Metadata of the user's keys, newest first."""
        stmt = select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.created_at.desc())
        return list(self.db.scalars(stmt))
