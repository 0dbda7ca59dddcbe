"""
Model Package Initialization
============================

Ensures every ORM model is registered on Base.metadata when the package
is imported (Alembic and the test suite rely on this).

Usage:
    from sentinel_auth.models import User, Role, Permission
"""

from .organization import Organization
from .user import User
from .rbac import Permission, Role, RolePermission, UserRole
from .tokens import PasswordResetToken, RefreshToken
from .api_key import ApiKey
from .rate_limit import RateLimitRecord

__all__ = [
    "Organization",
    "User",
    "Permission",
    "Role",
    "RolePermission",
    "UserRole",
    "RefreshToken",
    "PasswordResetToken",
    "ApiKey",
    "RateLimitRecord",
]
