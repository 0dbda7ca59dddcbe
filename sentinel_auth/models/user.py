"""
User Model
==========

Security Features:
- Strict tenant isolation (organization_id required and immutable)
- Account lock after configurable consecutive failed attempts
- Password stored only as an Argon2id hash

Database Indexes:
- Primary key: id (UUID)
- Unique index: email
- Index: organization_id (for tenant isolation queries)
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from sqlalchemy.sql import func

from sentinel_auth.core.exceptions import ValidationError
from sentinel_auth.core.security import utcnow
from sentinel_auth.db.base import Base
from sentinel_auth.db.types import UTCDateTime

if TYPE_CHECKING:
    from sentinel_auth.models.organization import Organization
    from sentinel_auth.models.rbac import Role


class User(Base):
    """
    User entity representing authenticated system users.

    Multi-Tenant Enforcement:
        Every user belongs to exactly one organization for its whole
        lifetime; reassigning organization_id is rejected.

    Security Controls:
        - failed_login_attempts: consecutive failures since the last success
        - locked_until: set only by the lockout policy; authoritative while
          in the future

    Attributes:
        id: UUID primary key
        organization_id: Foreign key to organization
        email: Unique email address (stored lower-case)
        password_hash: Argon2id hash
        failed_login_attempts: Failed login counter
        locked_until: Lockout expiry, NULL when not locked
        created_at: Account creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "users"

    # ==========================
    # Primary Key
    # ==========================
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # ==========================
    # Tenant Isolation
    # ==========================
    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    organization: Mapped["Organization"] = relationship(
        "Organization",
        back_populates="users",
    )

    # ==========================
    # Authentication
    # ==========================
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    # Lockout Protection
    failed_login_attempts: Mapped[int] = mapped_column(
        Integer,
        default=0,
        server_default="0",
        nullable=False,
    )

    locked_until: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
        nullable=True,
    )

    # ==========================
    # Timestamps
    # ==========================
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    # ==========================
    # Relationships
    # ==========================
    roles: Mapped[List["Role"]] = relationship(
        "Role",
        secondary="user_roles",
        viewonly=True,
        order_by="Role.name",
    )

    # ==========================
    # Validators
    # ==========================

    @validates("email")
    def _normalize_email(self, key: str, value: str) -> str:
        return value.strip().lower()

    @validates("organization_id")
    def _freeze_organization(self, key: str, value: uuid.UUID) -> uuid.UUID:
        current = self.__dict__.get("organization_id")
        if current is not None and value != current:
            raise ValidationError(
                message="A user's organization cannot be changed",
                details={"user_id": str(self.id)},
            )
        return value

    # ==========================
    # Methods
    # ==========================

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"

    def is_locked(self, now: datetime) -> bool:
        """True while the lockout window is still in the future."""
        return self.locked_until is not None and self.locked_until > now

    def to_dict(self) -> dict:
        """
        Convert user to dictionary (excludes credential and lockout data).

        Returns:
            Dictionary with user data
        """
        return {
            "id": str(self.id),
            "email": self.email,
            "organization_id": str(self.organization_id),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
