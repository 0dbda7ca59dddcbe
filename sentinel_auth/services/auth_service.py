"""
Authentication Service Module
=============================

Credential and session manager handling:
- Login with account lockout
- Access token issuance (roles and permissions embedded)
- Opaque refresh tokens with single-use rotation
- Logout of every session or of one owned session
- Password reset flow
- User registration inside an organization

Security Features:
- Argon2id password hashing, transparently upgraded on login
- Failed-login counter and lock set by one atomic UPDATE ... RETURNING
- Refresh tokens stored as SHA-256 digests and deleted on redemption
- Reset tokens consumed by one atomic UPDATE ... RETURNING
- Login errors never reveal whether the email or the password was wrong
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import case, delete, exists, insert, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sentinel_auth.core.config import AuthConfig, get_auth_config
from sentinel_auth.core.exceptions import (
    AccountLockedError,
    CrossTenantAccessDeniedError,
    DuplicateResourceError,
    InvalidCredentialsError,
    OrganizationNotFoundError,
    ResourceNotFoundError,
    RoleNotFoundError,
    SessionOwnershipError,
    TokenInvalidError,
    UserNotFoundError,
    ValidationError,
)
from sentinel_auth.core.logging import get_logger, security_logger
from sentinel_auth.core.security import generate_secret, hash_secret, utcnow
from sentinel_auth.db.types import UTCDateTime
from sentinel_auth.models.organization import Organization
from sentinel_auth.models.rbac import Role, UserRole
from sentinel_auth.models.tokens import PasswordResetToken, RefreshToken
from sentinel_auth.models.user import User
from sentinel_auth.services.password_hasher import PasswordHasher, password_hasher
from sentinel_auth.services.rbac_service import RBACService
from sentinel_auth.services.token_service import AccessTokenClaims, AccessTokenService

# Initialize logger
logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 8


# ==========================
# Result Types
# ==========================

@dataclass
class UserProfile:
    """Public view of a user: no hash, counters or lock state."""

    id: uuid.UUID
    email: str
    organization_id: uuid.UUID
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    roles: list[str] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "email": self.email,
            "organization_id": str(self.organization_id),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "roles": list(self.roles),
            "permissions": list(self.permissions),
        }


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class LoginResult:
    access_token: str
    refresh_token: str
    user: UserProfile


@dataclass
class PasswordResetRequest:
    """
    Outcome of a reset request.

    ``reset_token`` is None when the email is unknown; callers must not
    let that difference reach the response.
    """

    reset_token: Optional[str] = None
    expires_at: Optional[datetime] = None


# ==========================
# Auth Service Class
# ==========================

class AuthService:
    """
    Authentication service handling all credential and session operations.

    Usage:
        auth_service = AuthService(db)
        result = auth_service.login(email, password, {"userAgent": "cli"})
    """

    def __init__(
        self,
        db: Session,
        config: Optional[AuthConfig] = None,
        hasher: Optional[PasswordHasher] = None,
    ):
        """
        Initialize auth service.

        Args:
            db: SQLAlchemy session
            config: Credential policy; defaults to the process AuthConfig
            hasher: Password hasher; defaults to the process hasher
        """
        self.db = db
        self.config = config or get_auth_config()
        self.hasher = hasher or password_hasher
        self.tokens = AccessTokenService(self.config)
        self.rbac = RBACService(db)

    # --------------------------
    # Login & Lockout
    # --------------------------

    def login(
        self,
        email: str,
        password: str,
        device_info: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> LoginResult:
        """
        Authenticate a user with email and password.

        Args:
            email: User's email (case-insensitive)
            password: User's password
            device_info: Client description stored with the session
            ip_address: Client IP for logging

        Returns:
            LoginResult with access token, refresh token and user profile

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
            AccountLockedError: Account locked now, or locked by this attempt
        """
        now = utcnow()
        ip_address = ip_address or "unknown"
        normalized = email.strip().lower()

        user = self.db.scalar(
            select(User)
            .where(User.email == normalized)
            .execution_options(populate_existing=True)
        )
        if user is None:
            security_logger.log_login_failure(email=normalized, ip_address=ip_address, reason="unknown_email")
            raise InvalidCredentialsError()

        if user.is_locked(now):
            security_logger.log_login_failure(email=normalized, ip_address=ip_address, reason="account_locked")
            raise AccountLockedError(unlock_at=user.locked_until)

        if not self.hasher.verify(password, user.password_hash):
            attempts, locked_until = self._record_failed_attempt(user.id, now)
            security_logger.log_login_failure(email=normalized, ip_address=ip_address, reason="invalid_password")

            if attempts >= self.config.max_failed_attempts:
                security_logger.log_account_locked(
                    user_id=str(user.id),
                    organization_id=str(user.organization_id),
                    locked_until=locked_until.isoformat(),
                )
                raise AccountLockedError(unlock_at=locked_until)

            raise InvalidCredentialsError(
                attempts_remaining=self.config.max_failed_attempts - attempts
            )

        try:
            values: Dict[str, Any] = {
                "failed_login_attempts": 0,
                "locked_until": None,
                "updated_at": now,
            }
            if self.hasher.needs_rehash(user.password_hash):
                values["password_hash"] = self.hasher.hash(password)
                logger.info("Password hash upgraded", user_id=str(user.id))

            self.db.execute(
                update(User).where(User.id == user.id).values(**values),
                execution_options={"synchronize_session": False},
            )

            roles, permissions = self.rbac.get_user_roles_and_permissions(user.id)
            access_token = self.generate_access_token(user, roles, permissions)
            refresh_token = self.generate_refresh_token(user.id, device_info)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(user)
        security_logger.log_login_success(
            user_id=str(user.id),
            organization_id=str(user.organization_id),
            ip_address=ip_address,
        )

        return LoginResult(
            access_token=access_token,
            refresh_token=refresh_token,
            user=self._profile(user, roles, permissions),
        )

    def _record_failed_attempt(self, user_id: uuid.UUID, now: datetime) -> tuple[int, Optional[datetime]]:
        """
        Increment the failure counter and lock at the threshold in one statement.

        Returns:
            (failed_login_attempts, locked_until) after the update
        """
        next_attempts = User.failed_login_attempts + 1
        lock_until = literal(now + self.config.lockout_duration, UTCDateTime())

        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                failed_login_attempts=next_attempts,
                locked_until=case(
                    (next_attempts >= self.config.max_failed_attempts, lock_until),
                    else_=User.locked_until,
                ),
                updated_at=now,
            )
            .returning(User.failed_login_attempts, User.locked_until)
        )

        try:
            row = self.db.execute(stmt, execution_options={"synchronize_session": False}).one()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return row.failed_login_attempts, row.locked_until

    # --------------------------
    # Token Issuance & Validation
    # --------------------------

    def generate_access_token(
        self,
        user: User,
        roles: Iterable[str],
        permissions: Iterable[str],
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Short-lived signed token; never persisted."""
        return self.tokens.generate(
            user_id=user.id,
            email=user.email,
            organization_id=user.organization_id,
            roles=roles,
            permissions=permissions,
            expires_delta=expires_delta,
        )

    def generate_refresh_token(
        self,
        user_id: uuid.UUID,
        device_info: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Issue a 256-bit refresh secret and store its digest.

        Flushes only; joins the caller's transaction.

        Returns:
            The plaintext secret (never stored)
        """
        secret = generate_secret(32)
        self.db.add(
            RefreshToken(
                token_hash=hash_secret(secret),
                user_id=user_id,
                device_info=device_info or {},
                expires_at=utcnow() + self.config.refresh_token_ttl,
            )
        )
        self.db.flush()
        return secret

    def validate_access_token(self, token: str) -> AccessTokenClaims:
        """
        Raises:
            TokenExpiredError: If the token has expired
            TokenInvalidError: If the token is invalid
        """
        return self.tokens.validate(token)

    def refresh_token(self, refresh_token: str) -> TokenPair:
        """
        Redeem a refresh secret for a fresh access + refresh pair.

        The matching row is deleted by the same statement that finds it,
        so a secret can be redeemed at most once even under concurrency.
        Roles and permissions are re-resolved; device_info carries over.

        Raises:
            TokenInvalidError: Unknown, expired or already redeemed secret
        """
        now = utcnow()
        try:
            row = self.db.execute(
                delete(RefreshToken)
                .where(
                    RefreshToken.token_hash == hash_secret(refresh_token),
                    RefreshToken.expires_at > now,
                )
                .returning(RefreshToken.user_id, RefreshToken.device_info),
                execution_options={"synchronize_session": False},
            ).one_or_none()

            if row is None:
                raise TokenInvalidError(reason="Refresh token is invalid or expired")

            user = self.db.get(User, row.user_id)
            if user is None:
                raise TokenInvalidError(reason="User not found")

            roles, permissions = self.rbac.get_user_roles_and_permissions(user.id)
            access_token = self.generate_access_token(user, roles, permissions)
            new_refresh_token = self.generate_refresh_token(user.id, row.device_info)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        security_logger.log_token_refresh(user_id=str(user.id))
        return TokenPair(access_token=access_token, refresh_token=new_refresh_token)

    # --------------------------
    # Sessions
    # --------------------------

    def logout(self, user_id: uuid.UUID) -> int:
        """
        Revoke every session of the user.

        Returns:
            Number of sessions revoked
        """
        try:
            result = self.db.execute(
                delete(RefreshToken).where(RefreshToken.user_id == user_id),
                execution_options={"synchronize_session": False},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        security_logger.log_logout(user_id=str(user_id), sessions_revoked=result.rowcount)
        return result.rowcount

    def logout_session(self, session_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """
        Revoke one session after verifying the caller owns it.

        Raises:
            ResourceNotFoundError: If the session does not exist
            SessionOwnershipError: If the session belongs to another user
        """
        owner_id = self.db.scalar(select(RefreshToken.user_id).where(RefreshToken.id == session_id))
        if owner_id is None:
            raise ResourceNotFoundError("Session", session_id)
        if owner_id != user_id:
            raise SessionOwnershipError()

        try:
            self.db.execute(
                delete(RefreshToken).where(
                    RefreshToken.id == session_id,
                    RefreshToken.user_id == user_id,
                ),
                execution_options={"synchronize_session": False},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Session revoked", user_id=str(user_id), session_id=str(session_id))

    def list_sessions(self, user_id: uuid.UUID) -> list[RefreshToken]:
        """Unexpired sessions of the user, newest first."""
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.expires_at > utcnow())
            .order_by(RefreshToken.created_at.desc())
        )
        return list(self.db.scalars(stmt))

    # --------------------------
    # Password Reset
    # --------------------------

    def request_password_reset(self, email: str) -> PasswordResetRequest:
        """
        Issue a one-hour, single-use reset secret if the email is known.

        Unknown emails return an empty result instead of an error. The
        known-email path does an extra insert, so response timing can
        still differ between the two cases.
        """
        normalized = email.strip().lower()
        user_id = self.db.scalar(select(User.id).where(User.email == normalized))
        if user_id is None:
            logger.info("Password reset requested for unknown email")
            return PasswordResetRequest()

        secret = generate_secret(32)
        expires_at = utcnow() + self.config.password_reset_ttl
        try:
            self.db.add(
                PasswordResetToken(
                    user_id=user_id,
                    token_hash=hash_secret(secret),
                    expires_at=expires_at,
                    used=False,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Password reset token issued", user_id=str(user_id))
        return PasswordResetRequest(reset_token=secret, expires_at=expires_at)

    def reset_password(self, reset_token: str, new_password: str) -> uuid.UUID:
        """
        Consume a reset secret, set the new password and revoke all sessions.

        All three writes commit together.

        Returns:
            The user id whose password changed

        Raises:
            ValidationError: If the new password is too short
            TokenInvalidError: Unknown, expired or already used secret
        """
        _check_password_length(new_password)
        new_hash = self.hasher.hash(new_password)
        now = utcnow()

        try:
            user_id = self.db.execute(
                update(PasswordResetToken)
                .where(
                    PasswordResetToken.token_hash == hash_secret(reset_token),
                    PasswordResetToken.expires_at > now,
                    PasswordResetToken.used.is_(False),
                )
                .values(used=True)
                .returning(PasswordResetToken.user_id),
                execution_options={"synchronize_session": False},
            ).scalar_one_or_none()

            if user_id is None:
                raise TokenInvalidError(reason="Reset token is invalid, expired or already used")

            self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(password_hash=new_hash, updated_at=now),
                execution_options={"synchronize_session": False},
            )
            revoked = self.db.execute(
                delete(RefreshToken).where(RefreshToken.user_id == user_id),
                execution_options={"synchronize_session": False},
            ).rowcount
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Password reset completed", user_id=str(user_id), sessions_revoked=revoked)
        return user_id

    # --------------------------
    # Users
    # --------------------------

    def register_user(
        self,
        email: str,
        password: str,
        organization_id: uuid.UUID,
        role_ids: Iterable[uuid.UUID] = (),
    ) -> User:
        """
        Create a user in an organization, optionally with roles.

        Raises:
            ValidationError: If the password is too short
            OrganizationNotFoundError: If the organization does not exist
            DuplicateResourceError: If the email is already registered
            RoleNotFoundError / CrossTenantAccessDeniedError: For bad role ids
        """
        _check_password_length(password)
        normalized = email.strip().lower()

        try:
            if self.db.get(Organization, organization_id) is None:
                raise OrganizationNotFoundError(organization_id)
            if self.db.scalar(select(exists().where(User.email == normalized))):
                raise DuplicateResourceError("User", "email", normalized)

            user = User(
                email=normalized,
                password_hash=self.hasher.hash(password),
                organization_id=organization_id,
                failed_login_attempts=0,
            )
            self.db.add(user)
            self.db.flush()

            for role_id in dict.fromkeys(role_ids):
                role = self.db.get(Role, role_id)
                if role is None:
                    raise RoleNotFoundError(role_id)
                if role.organization_id != organization_id:
                    raise CrossTenantAccessDeniedError()
                self.db.execute(
                    insert(UserRole).values(user_id=user.id, role_id=role_id, assigned_at=utcnow())
                )
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateResourceError("User", "email", normalized) from e
        except Exception:
            self.db.rollback()
            raise

        logger.info("User registered", user_id=str(user.id), organization_id=str(organization_id))
        return user

    def get_user_profile(self, user_id: uuid.UUID) -> UserProfile:
        """
        Raises:
            UserNotFoundError: If the user does not exist
        """
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        roles, permissions = self.rbac.get_user_roles_and_permissions(user.id)
        return self._profile(user, roles, permissions)

    @staticmethod
    def _profile(user: User, roles: list[str], permissions: list[str]) -> UserProfile:
        return UserProfile(
            id=user.id,
            email=user.email,
            organization_id=user.organization_id,
            created_at=user.created_at,
            updated_at=user.updated_at,
            roles=roles,
            permissions=permissions,
        )


def _check_password_length(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            message=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
            details={"min_length": MIN_PASSWORD_LENGTH},
        )
