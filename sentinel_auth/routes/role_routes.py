"""
Role Routes Module
==================

Role management endpoints scoped to the caller's organization.

Features:
- Role CRUD (system roles cannot be deleted)
- Permission catalog listing
- Role assignment and removal

Security:
- Every endpoint requires a bearer token plus a roles:* permission
- Organization-addressed endpoints are tenancy checked
- All mutations are audit logged
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from sentinel_auth.core.dependencies import (
    AuthContext,
    require_auth,
    require_organization,
    require_permissions,
)
from sentinel_auth.core.dependencies.auth import client_ip
from sentinel_auth.core.logging import get_logger
from sentinel_auth.db.session import get_db
from sentinel_auth.schemas import (
    ErrorResponse,
    MessageResponse,
    PermissionResponse,
    RoleCreateRequest,
    RoleResponse,
    RoleUpdateRequest,
)
from sentinel_auth.services.audit_service import AuditAction, audit_service
from sentinel_auth.services.rbac_service import RBACService

# Initialize logger
logger = get_logger(__name__)


# =====================================
# Router Setup
# =====================================

router = APIRouter(
    prefix="/api",
    tags=["Roles"],
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Insufficient permissions"},
    },
)


# =====================================
# Role Listing
# =====================================

@router.get(
    "/roles",
    response_model=list[RoleResponse],
    summary="List Roles",
    description="Roles of the caller's organization, system roles first.",
    dependencies=[Depends(require_auth), Depends(require_permissions("roles:read"))],
)
def list_roles(
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> list:
    return RBACService(db).get_roles(current_user.organization_id)


@router.get(
    "/roles/permissions",
    response_model=list[PermissionResponse],
    summary="List Permission Catalog",
    dependencies=[Depends(require_auth), Depends(require_permissions("roles:read"))],
)
def list_permissions(db: Session = Depends(get_db)) -> list:
    return RBACService(db).get_available_permissions()


@router.get(
    "/organizations/{organization_id}/roles",
    response_model=list[RoleResponse],
    summary="List Organization Roles",
    dependencies=[
        Depends(require_auth),
        Depends(require_organization),
        Depends(require_permissions("roles:read")),
    ],
)
def list_organization_roles(
    organization_id: UUID,
    db: Session = Depends(get_db),
) -> list:
    return RBACService(db).get_roles(organization_id)


# =====================================
# Role Mutation
# =====================================

@router.post(
    "/roles",
    response_model=RoleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Role",
    dependencies=[Depends(require_auth), Depends(require_permissions("roles:write"))],
    responses={
        400: {"model": ErrorResponse, "description": "Unknown permission id"},
        409: {"model": ErrorResponse, "description": "Role name already exists"},
    },
)
def create_role(
    request: Request,
    body: RoleCreateRequest,
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    role = RBACService(db).create_role(
        name=body.name,
        description=body.description,
        organization_id=current_user.organization_id,
        permission_ids=body.permission_ids,
    )

    audit_service.log_event(
        user_id=current_user.user_id,
        action=AuditAction.ROLE_CREATED,
        resource_type="role",
        resource_id=role.id,
        details={"name": role.name, "permission_count": len(role.permissions)},
        ip_address=client_ip(request),
    )
    return role


@router.put(
    "/roles/{role_id}",
    response_model=RoleResponse,
    summary="Update Role",
    description="Omitted fields are unchanged; permissionIds replaces the whole set.",
    dependencies=[Depends(require_auth), Depends(require_permissions("roles:write"))],
    responses={
        404: {"model": ErrorResponse, "description": "Role not found"},
        409: {"model": ErrorResponse, "description": "Role name already exists"},
    },
)
def update_role(
    role_id: UUID,
    request: Request,
    body: RoleUpdateRequest,
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    role = RBACService(db).update_role(
        role_id,
        name=body.name,
        description=body.description,
        permission_ids=body.permission_ids,
        organization_id=current_user.organization_id,
    )

    audit_service.log_event(
        user_id=current_user.user_id,
        action=AuditAction.ROLE_UPDATED,
        resource_type="role",
        resource_id=role.id,
        details=body.model_dump(mode="json", exclude_none=True),
        ip_address=client_ip(request),
    )
    return role


@router.delete(
    "/roles/{role_id}",
    response_model=MessageResponse,
    summary="Delete Role",
    dependencies=[Depends(require_auth), Depends(require_permissions("roles:delete"))],
    responses={
        400: {"model": ErrorResponse, "description": "System role, or role still assigned"},
        404: {"model": ErrorResponse, "description": "Role not found"},
    },
)
def delete_role(
    role_id: UUID,
    request: Request,
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> dict:
    RBACService(db).delete_role(role_id, organization_id=current_user.organization_id)

    audit_service.log_event(
        user_id=current_user.user_id,
        action=AuditAction.ROLE_DELETED,
        resource_type="role",
        resource_id=role_id,
        ip_address=client_ip(request),
    )
    return {"message": "Role deleted"}


# =====================================
# Role Assignment
# =====================================

@router.post(
    "/roles/{role_id}/users/{user_id}",
    response_model=MessageResponse,
    summary="Assign Role",
    dependencies=[Depends(require_auth), Depends(require_permissions("roles:write"))],
    responses={
        404: {"model": ErrorResponse, "description": "User or role not found"},
    },
)
def assign_role(
    role_id: UUID,
    user_id: UUID,
    request: Request,
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> dict:
    RBACService(db).assign_role(user_id, role_id, organization_id=current_user.organization_id)

    audit_service.log_event(
        user_id=current_user.user_id,
        action=AuditAction.ROLE_ASSIGNED,
        resource_type="user_role",
        resource_id=user_id,
        details={"role_id": str(role_id)},
        ip_address=client_ip(request),
    )
    return {"message": "Role assigned"}


@router.delete(
    "/roles/{role_id}/users/{user_id}",
    response_model=MessageResponse,
    summary="Remove Role",
    dependencies=[Depends(require_auth), Depends(require_permissions("roles:write"))],
)
def remove_role(
    role_id: UUID,
    user_id: UUID,
    request: Request,
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> dict:
    RBACService(db).remove_role(user_id, role_id, organization_id=current_user.organization_id)

    audit_service.log_event(
        user_id=current_user.user_id,
        action=AuditAction.ROLE_REMOVED,
        resource_type="user_role",
        resource_id=user_id,
        details={"role_id": str(role_id)},
        ip_address=client_ip(request),
    )
    return {"message": "Role removed"}
