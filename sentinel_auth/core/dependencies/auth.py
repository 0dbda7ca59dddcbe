"""
Authentication Dependencies Module
==================================

Request-time identity guards.

- require_auth: validates ``Authorization: Bearer <token>`` and attaches
  an AuthContext to ``request.state.user``
- require_api_key: validates ``X-API-Key`` and attaches an ApiKeyContext
  to ``request.state.api_key`` (never to ``request.state.user``)

Guards are listed in a route's ``dependencies=[...]`` and run left to
right; a raised error short-circuits the request.

Usage:
    @router.get("/me", dependencies=[Depends(require_auth)])
    def me(user: AuthContext = Depends(require_auth)):
        return {"user_id": str(user.user_id)}
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from sentinel_auth.core.config import get_auth_config
from sentinel_auth.core.exceptions import (
    ApiKeyExpiredError,
    AuthenticationError,
    InvalidApiKeyError,
    TokenExpiredError,
    TokenInvalidError,
)
from sentinel_auth.core.logging import get_logger, organization_id_context, security_logger
from sentinel_auth.db.session import get_db
from sentinel_auth.services.api_key_service import ApiKeyService
from sentinel_auth.services.token_service import AccessTokenService

# Initialize logger
logger = get_logger(__name__)


# =====================================
# Security Schemes
# =====================================

bearer_scheme = HTTPBearer(auto_error=False, description="Access token from /auth/login")
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False, description="Issued API key")


# =====================================
# Request Contexts
# =====================================

@dataclass(frozen=True)
class AuthContext:
    """Identity derived from a validated access token."""

    user_id: uuid.UUID
    email: str
    organization_id: uuid.UUID
    roles: list[str] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ApiKeyContext:
    """Identity derived from a validated API key."""

    user_id: uuid.UUID
    organization_id: uuid.UUID
    key_id: uuid.UUID
    permissions: list[str] = field(default_factory=list)


def get_access_token_service() -> AccessTokenService:
    return AccessTokenService(get_auth_config())


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


# =====================================
# Bearer Token Guard
# =====================================

async def require_auth(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: AccessTokenService = Depends(get_access_token_service),
) -> AuthContext:
    """
    Validate the bearer access token and attach the caller's identity.

    Raises:
        AuthenticationError: Missing or malformed Authorization header
        TokenExpiredError: Token expired (client should refresh)
        TokenInvalidError: Token forged, malformed or missing claims
    """
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing or malformed Authorization header")

    try:
        claims = tokens.validate(credentials.credentials)
    except (TokenExpiredError, TokenInvalidError) as e:
        security_logger.log_token_invalid(reason=e.error_code, ip_address=client_ip(request))
        raise

    context = AuthContext(
        user_id=claims.user_id,
        email=claims.email,
        organization_id=claims.organization_id,
        roles=claims.roles,
        permissions=claims.permissions,
    )
    request.state.user = context
    organization_id_context.set(str(context.organization_id))
    return context


def get_auth_context(request: Request) -> AuthContext:
    """
    Return the context attached by an earlier require_auth.

    Raises:
        AuthenticationError: If require_auth has not run for this request
    """
    context = getattr(request.state, "user", None)
    if context is None:
        raise AuthenticationError()
    return context


# =====================================
# API Key Guard
# =====================================

def require_api_key(
    request: Request,
    api_key: Optional[str] = Depends(api_key_header),
    db: Session = Depends(get_db),
) -> ApiKeyContext:
    """
    Validate the X-API-Key header and attach the key's identity.

    Raises:
        AuthenticationError: Header missing
        InvalidApiKeyError: Unknown or revoked key
        ApiKeyExpiredError: Key expired
    """
    if not api_key:
        raise AuthenticationError("API key required")

    try:
        identity = ApiKeyService(db).validate_api_key(api_key)
    except (InvalidApiKeyError, ApiKeyExpiredError) as e:
        security_logger.log_token_invalid(reason=e.error_code, ip_address=client_ip(request))
        raise

    context = ApiKeyContext(
        user_id=identity.user_id,
        organization_id=identity.organization_id,
        key_id=identity.key_id,
        permissions=identity.permissions,
    )
    request.state.api_key = context
    return context
