"""
API Key Model
=============

Long-lived bearer secrets of the form ``sk_<org prefix>_<32 hex>``.

Only the SHA-256 digest is stored. ``scoped_permissions`` is a snapshot
of permission names taken at issuance; later RBAC changes do not touch
it. Revocation (row delete) and expiry are the only ways to invalidate
a key.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from sentinel_auth.core.security import utcnow
from sentinel_auth.db.base import Base
from sentinel_auth.db.types import PortableJSON, UTCDateTime


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    key_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    organization_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    scoped_permissions: Mapped[list[str]] = mapped_column(PortableJSON, nullable=False, default=list)

    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    last_used_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ApiKey(id={self.id}, name={self.name})>"

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at < now

    def to_dict(self) -> dict:
        """Metadata only; the hash never leaves the store."""
        return {
            "id": str(self.id),
            "name": self.name,
            "organization_id": str(self.organization_id),
            "scoped_permissions": list(self.scoped_permissions or []),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
