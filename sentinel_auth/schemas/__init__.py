"""
Schemas Package
===============

Request and response models for the REST surface.
"""

from .auth import (
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    LogoutSessionRequest,
    MessageResponse,
    PasswordResetBody,
    PasswordResetRequestBody,
    PasswordResetRequestResponse,
    RefreshTokenRequest,
    SessionListResponse,
    SessionResponse,
    TokenResponse,
    UserResponse,
)
from .rbac import (
    ApiKeyCreatedResponse,
    ApiKeyCreateRequest,
    ApiKeyIntrospectionResponse,
    ApiKeyResponse,
    PermissionResponse,
    RoleCreateRequest,
    RoleResponse,
    RoleUpdateRequest,
)

__all__ = [
    "ApiKeyCreatedResponse",
    "ApiKeyCreateRequest",
    "ApiKeyIntrospectionResponse",
    "ApiKeyResponse",
    "ErrorResponse",
    "LoginRequest",
    "LoginResponse",
    "LogoutResponse",
    "LogoutSessionRequest",
    "MessageResponse",
    "PasswordResetBody",
    "PasswordResetRequestBody",
    "PasswordResetRequestResponse",
    "PermissionResponse",
    "RefreshTokenRequest",
    "RoleCreateRequest",
    "RoleResponse",
    "RoleUpdateRequest",
    "SessionListResponse",
    "SessionResponse",
    "TokenResponse",
    "UserResponse",
]
