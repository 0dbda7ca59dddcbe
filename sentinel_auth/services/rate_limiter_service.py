"""
Rate Limiter Service
====================

Fixed-window request counter keyed by an arbitrary string (usually a
user id, otherwise the client address).

Windows reset wholesale, so a burst straddling a boundary can reach
twice the limit. That is an accepted trade-off of the fixed window.

Concurrency:
- A fresh window is written with an upsert on the ``key`` primary key,
  so concurrent first requests never lose the row.
- Increments are a single UPDATE ... RETURNING guarded by
  ``requests < max``, so concurrent requests cannot push a window past
  its limit.
- Two requests racing on a window reset may both start a window at 1;
  over-admitting by one request is tolerated.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from sentinel_auth.core.logging import get_logger
from sentinel_auth.core.security import utcnow
from sentinel_auth.db.upsert import dialect_insert
from sentinel_auth.models.rate_limit import RateLimitRecord

logger = get_logger(__name__)

STALE_WINDOW_AGE = timedelta(hours=24)


@dataclass(frozen=True)
class RateLimitStatus:
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime

    def retry_after_seconds(self, now: Optional[datetime] = None) -> int:
        """Whole seconds until the window resets, at least 1."""
        now = now or utcnow()
        return max(1, math.ceil((self.reset_at - now).total_seconds()))


@dataclass(frozen=True)
class WindowSnapshot:
    key: str
    requests: int
    window_start: datetime
    reset_at: datetime
    active: bool


class RateLimiterService:
    """
    Usage:
        limiter = RateLimiterService(db)
        status = limiter.check_limit("login:10.0.0.1", 5, 60_000)
        if not status.allowed:
            ...
    """

    def __init__(self, db: Session):
        self.db = db

    def check_limit(self, key: str, max_requests: int, window_ms: int) -> RateLimitStatus:
        """
        Count one request against ``key`` and say whether it is allowed.

        Store errors propagate; callers that must fail open catch them.
        """
        now = utcnow()
        window = timedelta(milliseconds=window_ms)

        try:
            status = self._check(key, max_requests, window, now)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return status

    def _check(self, key: str, max_requests: int, window: timedelta, now: datetime) -> RateLimitStatus:
        row = self.db.execute(
            select(RateLimitRecord.requests, RateLimitRecord.window_start).where(
                RateLimitRecord.key == key
            )
        ).one_or_none()

        if row is None or row.window_start + window < now:
            self._start_window(key, now)
            return RateLimitStatus(
                allowed=True,
                limit=max_requests,
                remaining=max(0, max_requests - 1),
                reset_at=now + window,
            )

        reset_at = row.window_start + window
        if row.requests >= max_requests:
            return RateLimitStatus(allowed=False, limit=max_requests, remaining=0, reset_at=reset_at)

        count = self._increment(key, max_requests)

        if count is None:
            current = self.db.execute(
                select(RateLimitRecord.window_start).where(RateLimitRecord.key == key)
            ).scalar_one_or_none()
            if current is not None and current + window >= now:
                # Window filled up by concurrent requests since the read
                return RateLimitStatus(
                    allowed=False,
                    limit=max_requests,
                    remaining=0,
                    reset_at=current + window,
                )
            # Row removed (reset or cleanup) or expired since the read
            self._start_window(key, now)
            return RateLimitStatus(
                allowed=True,
                limit=max_requests,
                remaining=max(0, max_requests - 1),
                reset_at=now + window,
            )

        return RateLimitStatus(
            allowed=True,
            limit=max_requests,
            remaining=max(0, max_requests - count),
            reset_at=reset_at,
        )

    def _increment(self, key: str, max_requests: int) -> Optional[int]:
        """Count one request if the window still has room; None when it has not."""
        return self.db.execute(
            update(RateLimitRecord)
            .where(RateLimitRecord.key == key, RateLimitRecord.requests < max_requests)
            .values(requests=RateLimitRecord.requests + 1)
            .returning(RateLimitRecord.requests),
            execution_options={"synchronize_session": False},
        ).scalar_one_or_none()

    def _start_window(self, key: str, now: datetime) -> None:
        stmt = dialect_insert(self.db, RateLimitRecord.__table__).values(
            key=key,
            requests=1,
            window_start=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["key"],
            set_={"requests": 1, "window_start": stmt.excluded.window_start},
        )
        self.db.execute(stmt)

    def reset_limits(self, key: str) -> None:
        """Forget the window for ``key``."""
        try:
            self.db.execute(
                delete(RateLimitRecord).where(RateLimitRecord.key == key),
                execution_options={"synchronize_session": False},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def get_limit_status(self, key: str, window_ms: int) -> Optional[WindowSnapshot]:
        """Current window for ``key`` without counting a request."""
        row = self.db.execute(
            select(RateLimitRecord.requests, RateLimitRecord.window_start).where(
                RateLimitRecord.key == key
            )
        ).one_or_none()
        if row is None:
            return None

        reset_at = row.window_start + timedelta(milliseconds=window_ms)
        return WindowSnapshot(
            key=key,
            requests=row.requests,
            window_start=row.window_start,
            reset_at=reset_at,
            active=reset_at >= utcnow(),
        )

    def cleanup(self, max_age: timedelta = STALE_WINDOW_AGE) -> int:
        """
        Delete windows that started more than ``max_age`` ago.

        Returns:
            Number of rows removed
        """
        cutoff = utcnow() - max_age
        try:
            result = self.db.execute(
                delete(RateLimitRecord).where(RateLimitRecord.window_start < cutoff),
                execution_options={"synchronize_session": False},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Rate limit windows cleaned up", removed=result.rowcount)
        return result.rowcount
