"""
Rate Limit Window Model
=======================

One row per limiter key (user id or client address, prefixed by scope).
The primary key on ``key`` is what makes the fresh-window upsert safe
under concurrent first requests.
"""

from datetime import datetime

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from sentinel_auth.db.base import Base
from sentinel_auth.db.types import UTCDateTime


class RateLimitRecord(Base):
    __tablename__ = "rate_limits"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    requests: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    window_start: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<RateLimitRecord(key={self.key}, requests={self.requests})>"
