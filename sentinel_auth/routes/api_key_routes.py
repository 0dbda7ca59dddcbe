"""
API Key Routes Module
=====================

Issue, list and revoke API keys for the authenticated user, and
introspect a presented key.

Security:
- A key can only carry permissions the issuing user currently holds
- The plaintext key is returned once, at creation
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from sentinel_auth.core.dependencies import (
    ApiKeyContext,
    AuthContext,
    require_api_key,
    require_auth,
    require_permissions,
)
from sentinel_auth.core.dependencies.auth import client_ip
from sentinel_auth.core.exceptions import InsufficientPermissionsError
from sentinel_auth.core.logging import get_logger, security_logger
from sentinel_auth.db.session import get_db
from sentinel_auth.schemas import (
    ApiKeyCreatedResponse,
    ApiKeyCreateRequest,
    ApiKeyIntrospectionResponse,
    ApiKeyResponse,
    ErrorResponse,
    MessageResponse,
)
from sentinel_auth.services.api_key_service import ApiKeyService
from sentinel_auth.services.audit_service import AuditAction, audit_service

# Initialize logger
logger = get_logger(__name__)


# =====================================
# Router Setup
# =====================================

router = APIRouter(
    prefix="/api/api-keys",
    tags=["API Keys"],
    responses={
        401: {"model": ErrorResponse, "description": "Not authenticated"},
        403: {"model": ErrorResponse, "description": "Insufficient permissions"},
    },
)


@router.post(
    "",
    response_model=ApiKeyCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create API Key",
    description="""
    Issue an API key carrying a snapshot of the requested permissions.

    The key is shown once; store it securely.
    """,
    dependencies=[Depends(require_auth), Depends(require_permissions("api_keys:write"))],
    responses={
        400: {"model": ErrorResponse, "description": "Unknown permission or past expiry"},
    },
)
def create_api_key(
    request: Request,
    body: ApiKeyCreateRequest,
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> dict:
    beyond_caller = sorted(set(body.permissions) - set(current_user.permissions))
    if beyond_caller:
        security_logger.log_unauthorized_access(
            user_id=str(current_user.user_id),
            resource=request.url.path,
            action="grant_api_key_scope",
            required=beyond_caller,
        )
        raise InsufficientPermissionsError(
            required=beyond_caller,
            current=current_user.permissions,
            message="Cannot grant permissions you do not hold",
        )

    issued = ApiKeyService(db).generate_api_key(
        name=body.name,
        user_id=current_user.user_id,
        organization_id=current_user.organization_id,
        scoped_permissions=body.permissions,
        expires_at=body.expires_at,
    )

    audit_service.log_event(
        user_id=current_user.user_id,
        action=AuditAction.API_KEY_CREATED,
        resource_type="api_key",
        resource_id=issued.key_id,
        details={"name": issued.name, "permissions": issued.scoped_permissions},
        ip_address=client_ip(request),
    )

    return {
        "api_key": issued.api_key,
        "key_id": issued.key_id,
        "name": issued.name,
        "scoped_permissions": issued.scoped_permissions,
        "expires_at": issued.expires_at,
        "created_at": issued.created_at,
    }


@router.get(
    "",
    response_model=list[ApiKeyResponse],
    summary="List API Keys",
    description="Metadata of the caller's keys, newest first.",
    dependencies=[Depends(require_auth), Depends(require_permissions("api_keys:read"))],
)
def list_api_keys(
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> list:
    return ApiKeyService(db).get_user_api_keys(current_user.user_id)


@router.get(
    "/introspect",
    response_model=ApiKeyIntrospectionResponse,
    summary="Introspect API Key",
    description="Identity and permissions of the key presented in X-API-Key.",
)
def introspect_api_key(
    api_key: ApiKeyContext = Depends(require_api_key),
) -> dict:
    return {
        "key_id": api_key.key_id,
        "user_id": api_key.user_id,
        "organization_id": api_key.organization_id,
        "permissions": api_key.permissions,
    }


@router.delete(
    "/{key_id}",
    response_model=MessageResponse,
    summary="Revoke API Key",
    dependencies=[Depends(require_auth), Depends(require_permissions("api_keys:delete"))],
    responses={
        404: {"model": ErrorResponse, "description": "API key not found"},
    },
)
def revoke_api_key(
    key_id: UUID,
    request: Request,
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> dict:
    ApiKeyService(db).revoke_api_key(key_id, user_id=current_user.user_id)

    audit_service.log_event(
        user_id=current_user.user_id,
        action=AuditAction.API_KEY_REVOKED,
        resource_type="api_key",
        resource_id=key_id,
        ip_address=client_ip(request),
    )
    return {"message": "API key revoked"}
