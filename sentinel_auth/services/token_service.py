"""
Access Token Service
====================

Stateless HMAC-signed JWT access tokens.

Claims:
    userId, email, organizationId, roles, permissions, iat, exp

Access tokens are never persisted; validation is signature + expiry
only. Expired and otherwise-invalid tokens raise distinct errors so
clients know whether to attempt a refresh.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from jose import jwt
from jose.exceptions import ExpiredSignatureError, JWTError

from sentinel_auth.core.config import AuthConfig
from sentinel_auth.core.exceptions import TokenExpiredError, TokenInvalidError
from sentinel_auth.core.logging import get_logger
from sentinel_auth.core.security import utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class AccessTokenClaims:
    """Decoded, validated access token payload."""

    user_id: uuid.UUID
    email: str
    organization_id: uuid.UUID
    roles: list[str] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)
    issued_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class AccessTokenService:
    """
    Issue and validate access tokens.

    Usage:
        tokens = AccessTokenService(get_auth_config())
        token = tokens.generate(user, ["Admin"], ["roles:read"])
        claims = tokens.validate(token)
    """

    def __init__(self, config: AuthConfig):
        self.config = config

    def generate(
        self,
        user_id: uuid.UUID,
        email: str,
        organization_id: uuid.UUID,
        roles: Iterable[str],
        permissions: Iterable[str],
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """
        Create a signed access token.

        Args:
            user_id: User's UUID
            email: User's email
            organization_id: User's organization UUID
            roles: Role names
            permissions: Permission names (union over roles)
            expires_delta: Custom lifetime, defaults to the configured TTL

        Returns:
            Encoded JWT
        """
        if expires_delta is None:
            expires_delta = self.config.access_token_ttl

        now = utcnow()
        payload = {
            "userId": str(user_id),
            "email": email,
            "organizationId": str(organization_id),
            "roles": sorted(set(roles)),
            "permissions": sorted(set(permissions)),
            "iat": now,
            "exp": now + expires_delta,
        }

        return jwt.encode(payload, self.config.jwt_secret, algorithm=self.config.jwt_algorithm)

    def validate(self, token: str) -> AccessTokenClaims:
        """
        Decode and validate an access token.

        Raises:
            TokenExpiredError: If the token has expired
            TokenInvalidError: If the signature or payload is invalid
        """
        try:
            payload = jwt.decode(
                token,
                self.config.jwt_secret,
                algorithms=[self.config.jwt_algorithm],
            )
        except ExpiredSignatureError:
            raise TokenExpiredError(token_type="access")
        except JWTError as e:
            logger.debug("Token decode error", error=str(e))
            raise TokenInvalidError(reason=str(e))

        try:
            user_id = uuid.UUID(payload["userId"])
            organization_id = uuid.UUID(payload["organizationId"])
            email = payload["email"]
        except (KeyError, TypeError, ValueError):
            raise TokenInvalidError(reason="Invalid token payload")

        return AccessTokenClaims(
            user_id=user_id,
            email=email,
            organization_id=organization_id,
            roles=list(payload.get("roles") or []),
            permissions=list(payload.get("permissions") or []),
            issued_at=_from_timestamp(payload.get("iat")),
            expires_at=_from_timestamp(payload.get("exp")),
        )


def _from_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)
