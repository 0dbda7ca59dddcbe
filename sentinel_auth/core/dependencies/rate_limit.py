"""
Rate Limit Dependency Module
============================

Per-route fixed-window limiting backed by RateLimiterService.

The limiter keys on the authenticated user id when require_auth ran
earlier in the chain, else on the client address. Store failures fail
open: the request proceeds and the error is logged.

Usage:
    @router.post("/login", dependencies=[Depends(rate_limit(5, 60_000, scope="login"))])
"""

from typing import Callable, Optional

from fastapi import Depends, Request, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sentinel_auth.core.config import settings
from sentinel_auth.core.dependencies.auth import client_ip
from sentinel_auth.core.exceptions import RateLimitExceededError
from sentinel_auth.core.logging import get_logger, security_logger
from sentinel_auth.db.session import get_db
from sentinel_auth.services.rate_limiter_service import RateLimiterService

logger = get_logger(__name__)


def rate_limit_key(request: Request, scope: Optional[str] = None) -> str:
    user = getattr(request.state, "user", None)
    identity = str(user.user_id) if user is not None else client_ip(request)
    return f"{scope}:{identity}" if scope else identity


def rate_limit(max_requests: int, window_ms: int, scope: Optional[str] = None) -> Callable:
    """
    Build a rate limiting dependency.

    Args:
        max_requests: Requests allowed per window
        window_ms: Window length in milliseconds
        scope: Optional key prefix so separate routes keep separate counters

    Returns:
        Dependency setting X-RateLimit-* headers and raising 429 when exhausted
    """

    def rate_limiter(
        request: Request,
        response: Response,
        db: Session = Depends(get_db),
    ) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return

        key = rate_limit_key(request, scope)
        try:
            status = RateLimiterService(db).check_limit(key, max_requests, window_ms)
        except SQLAlchemyError as e:
            logger.error(
                "Rate limiter storage failure, allowing request",
                key=key,
                path=request.url.path,
                error=str(e),
            )
            return

        headers = {
            "X-RateLimit-Limit": str(status.limit),
            "X-RateLimit-Remaining": str(status.remaining),
            "X-RateLimit-Reset": status.reset_at.isoformat(),
        }

        if not status.allowed:
            security_logger.log_rate_limit_exceeded(key=key, endpoint=request.url.path)
            exc = RateLimitExceededError(
                retry_after=status.retry_after_seconds(),
                reset_at=status.reset_at,
            )
            exc.headers.update(headers)
            raise exc

        response.headers.update(headers)

    return rate_limiter
