"""
Request-time guards composed into FastAPI routes.
"""

from .auth import (
    ApiKeyContext,
    AuthContext,
    get_auth_context,
    require_api_key,
    require_auth,
)
from .rate_limit import rate_limit
from .rbac import (
    require_any_permission,
    require_organization,
    require_permissions,
    require_role,
)

__all__ = [
    "ApiKeyContext",
    "AuthContext",
    "get_auth_context",
    "rate_limit",
    "require_any_permission",
    "require_api_key",
    "require_auth",
    "require_organization",
    "require_permissions",
    "require_role",
]
