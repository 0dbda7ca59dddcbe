"""
Organization Model
==================

Represents a tenant in the multi-tenant architecture.

Each organization:
- Owns users, roles and API keys
- Acts as the security boundary for every authorization check
- Is created together with its three system roles

Database Indexes:
- Primary key: id (UUID)
- Unique index: name
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING, List

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from sentinel_auth.core.security import utcnow
from sentinel_auth.db.base import Base
from sentinel_auth.db.types import UTCDateTime

if TYPE_CHECKING:
    from sentinel_auth.models.rbac import Role
    from sentinel_auth.models.user import User


class Organization(Base):
    """
    Organization Entity (Tenant Root).

    Attributes:
        id: UUID primary key
        name: Unique organization name
        created_at: Creation timestamp
        updated_at: Last update timestamp
        users: Users belonging to the organization
        roles: System and custom roles of the organization
    """

    __tablename__ = "organizations"

    # ==========================
    # Primary Key
    # ==========================
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # ==========================
    # Organization Info
    # ==========================
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
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
    users: Mapped[List["User"]] = relationship(
        "User",
        back_populates="organization",
        passive_deletes=True,
    )

    roles: Mapped[List["Role"]] = relationship(
        "Role",
        back_populates="organization",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name})>"

    def to_dict(self) -> dict:
        return {
            "id": str(self.id),
            "name": self.name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
