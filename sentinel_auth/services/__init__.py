"""
Service layer: the credential, RBAC, API key and rate limiting engine.
"""

from .api_key_service import ApiKeyService
from .audit_service import AuditService, audit_service
from .auth_service import AuthService
from .organization_service import OrganizationService
from .password_hasher import PasswordHasher, password_hasher
from .rate_limiter_service import RateLimiterService
from .rbac_service import RBACService
from .token_service import AccessTokenService

__all__ = [
    "AccessTokenService",
    "ApiKeyService",
    "AuditService",
    "AuthService",
    "OrganizationService",
    "PasswordHasher",
    "RBACService",
    "RateLimiterService",
    "audit_service",
    "password_hasher",
]
