"""
Role-Based Access Control (RBAC) Dependencies Module
=====================================================

Authorization guards evaluated against the context attached by
require_auth. Each factory returns a dependency; list them after
require_auth in a route's ``dependencies``.

Features:
- All-of and any-of permission checks
- Role name checks
- Tenancy check of a path/body organization id against the caller
- Security logging for denied access

Usage:
    @router.get(
        "/roles",
        dependencies=[Depends(require_auth), Depends(require_permissions("roles:read"))],
    )
"""

import json
import uuid
from typing import Any, Callable, Optional

from fastapi import Request

from sentinel_auth.core.dependencies.auth import get_auth_context
from sentinel_auth.core.exceptions import (
    AuthenticationError,
    CrossTenantAccessDeniedError,
    InsufficientPermissionsError,
)
from sentinel_auth.core.logging import get_logger, security_logger
from sentinel_auth.services.rbac_service import has_all, has_any

# Initialize logger
logger = get_logger(__name__)


# =====================================
# Permission Requirement Dependencies
# =====================================

def require_permissions(*permissions: str) -> Callable:
    """
    Require every listed permission.

    Returns:
        Dependency raising 401 without prior auth, 403 on a failed check
    """
    required = list(permissions)

    async def permission_checker(request: Request) -> None:
        context = get_auth_context(request)
        if not has_all(context.permissions, required):
            security_logger.log_unauthorized_access(
                user_id=str(context.user_id),
                resource=request.url.path,
                action=request.method,
                required=required,
            )
            raise InsufficientPermissionsError(required=required, current=context.permissions)

    return permission_checker


def require_any_permission(*permissions: str) -> Callable:
    """Require at least one of the listed permissions."""
    required = list(permissions)

    async def any_permission_checker(request: Request) -> None:
        context = get_auth_context(request)
        if not has_any(context.permissions, required):
            security_logger.log_unauthorized_access(
                user_id=str(context.user_id),
                resource=request.url.path,
                action=request.method,
                required=required,
            )
            raise InsufficientPermissionsError(required=required, current=context.permissions)

    return any_permission_checker


def require_role(role_name: str) -> Callable:
    """
    Require a role by name.

    Usage:
        @router.delete("/danger", dependencies=[Depends(require_auth), Depends(require_role("Admin"))])
    """

    async def role_checker(request: Request) -> None:
        context = get_auth_context(request)
        if role_name not in context.roles:
            security_logger.log_unauthorized_access(
                user_id=str(context.user_id),
                resource=request.url.path,
                action=request.method,
                required=[role_name],
            )
            raise InsufficientPermissionsError(
                required=[role_name],
                current=context.roles,
                message="Insufficient role",
            )

    return role_checker


# =====================================
# Tenancy
# =====================================

async def _target_organization_id(request: Request) -> Optional[Any]:
    """Organization id from the path, else from a JSON body."""
    target = request.path_params.get("organization_id")
    if target is not None:
        return target

    if "application/json" not in request.headers.get("content-type", ""):
        return None
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(body, dict):
        return None
    return body.get("organization_id") or body.get("organizationId")


async def require_organization(request: Request) -> None:
    """
    Compare a target organization id against the caller's organization.

    Pass-through when the request names no organization. The caller is
    the bearer-token identity, else the API-key identity.

    Raises:
        AuthenticationError: A target is present but no caller identity is
        CrossTenantAccessDeniedError: Target and caller organizations differ
    """
    target = await _target_organization_id(request)
    if target is None:
        return

    caller = getattr(request.state, "user", None) or getattr(request.state, "api_key", None)
    if caller is None:
        raise AuthenticationError()

    try:
        matches = uuid.UUID(str(target)) == caller.organization_id
    except ValueError:
        matches = False

    if not matches:
        security_logger.log_tenant_isolation_violation(
            user_id=str(caller.user_id),
            user_organization=str(caller.organization_id),
            target_organization=str(target),
            resource=request.url.path,
        )
        raise CrossTenantAccessDeniedError()
