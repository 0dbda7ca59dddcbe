"""
Centralized Exception Handling Module
=====================================

Typed errors surfaced by every public service operation.

Each exception carries the HTTP status it maps to, a stable machine
readable error code, optional details and optional response headers.
The handlers registered in main.py render them as:

    {"error": <code>, "message": <text>, "details": {...}}

Usage:
    raise InvalidCredentialsError(attempts_remaining=3)
    raise InsufficientPermissionsError(required=["roles:write"], current=[...])
"""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from fastapi import status


class SentinelAuthException(Exception):
    """
    Base exception class for the auth service.

    All custom exceptions should inherit from this class.
    """

    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.headers = headers
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# ==========================
# Authentication Exceptions
# ==========================

class AuthenticationError(SentinelAuthException):
    """Raised when authentication fails."""

    error_code = "AUTHENTICATION_REQUIRED"

    def __init__(
        self,
        message: str = "Authentication required",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details,
            headers={"WWW-Authenticate": "Bearer"},
        )


class InvalidCredentialsError(AuthenticationError):
    """Raised when login credentials are invalid. Never says which field was wrong."""

    error_code = "INVALID_CREDENTIALS"

    def __init__(self, attempts_remaining: Optional[int] = None):
        message = "Invalid credentials"
        details = {}
        if attempts_remaining is not None:
            message = f"Invalid credentials. {attempts_remaining} attempts remaining"
            details["attempts_remaining"] = attempts_remaining
        super().__init__(message=message, details=details)


class AccountLockedError(AuthenticationError):
    """Raised when the account is locked by the lockout policy."""

    error_code = "ACCOUNT_LOCKED"

    def __init__(self, unlock_at: datetime):
        self.unlock_at = unlock_at
        super().__init__(
            message=f"Account locked until {unlock_at.isoformat()}",
            details={"unlock_at": unlock_at.isoformat()},
        )


class TokenExpiredError(AuthenticationError):
    """Raised when an access token has expired. Clients should try a refresh."""

    error_code = "TOKEN_EXPIRED"

    def __init__(self, token_type: str = "access"):
        super().__init__(
            message=f"{token_type.capitalize()} token has expired",
            details={"token_type": token_type},
        )


class TokenInvalidError(AuthenticationError):
    """Raised when a token is malformed, forged, consumed or unknown."""

    error_code = "TOKEN_INVALID"

    def __init__(self, reason: str = "Invalid token"):
        super().__init__(
            message="Invalid token",
            details={"reason": reason},
        )


class InvalidApiKeyError(AuthenticationError):
    """Raised when an API key is unknown or revoked."""

    error_code = "INVALID_API_KEY"

    def __init__(self):
        super().__init__(message="Invalid API key")


class ApiKeyExpiredError(AuthenticationError):
    """Raised when an API key is past its expiry."""

    error_code = "API_KEY_EXPIRED"

    def __init__(self, expired_at: Optional[datetime] = None):
        details = {}
        if expired_at is not None:
            details["expired_at"] = expired_at.isoformat()
        super().__init__(message="API key has expired", details=details)


# ==========================
# Authorization Exceptions
# ==========================

class AuthorizationError(SentinelAuthException):
    """Raised when the caller is authenticated but not allowed."""

    error_code = "FORBIDDEN"

    def __init__(
        self,
        message: str = "Access denied",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_403_FORBIDDEN,
            details=details,
        )


class InsufficientPermissionsError(AuthorizationError):
    """Raised when a permission or role check fails."""

    error_code = "INSUFFICIENT_PERMISSIONS"

    def __init__(
        self,
        required: Iterable[str],
        current: Iterable[str],
        message: str = "Insufficient permissions",
    ):
        super().__init__(
            message=message,
            details={"required": list(required), "current": sorted(current)},
        )


class CrossTenantAccessDeniedError(AuthorizationError):
    """Raised when a caller touches another organization's resources."""

    error_code = "CROSS_TENANT_ACCESS_DENIED"

    def __init__(self):
        super().__init__(
            message="Access denied: resource belongs to a different organization"
        )


class SessionOwnershipError(AuthorizationError):
    """Raised when a user tries to revoke someone else's session."""

    error_code = "SESSION_OWNERSHIP"

    def __init__(self):
        super().__init__(message="Cannot revoke another user's session")


# ==========================
# Resource Exceptions
# ==========================

class NotFoundError(SentinelAuthException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource", identifier: Optional[Any] = None):
        details = {"resource": resource}
        if identifier is not None:
            details["identifier"] = str(identifier)
        super().__init__(
            message=f"{resource} not found",
            status_code=status.HTTP_404_NOT_FOUND,
            details=details,
        )


class ResourceNotFoundError(NotFoundError):
    error_code = "RESOURCE_NOT_FOUND"


class UserNotFoundError(NotFoundError):
    error_code = "USER_NOT_FOUND"

    def __init__(self, identifier: Optional[Any] = None):
        super().__init__(resource="User", identifier=identifier)


class RoleNotFoundError(NotFoundError):
    error_code = "ROLE_NOT_FOUND"

    def __init__(self, identifier: Optional[Any] = None):
        super().__init__(resource="Role", identifier=identifier)


class OrganizationNotFoundError(NotFoundError):
    error_code = "ORGANIZATION_NOT_FOUND"

    def __init__(self, identifier: Optional[Any] = None):
        super().__init__(resource="Organization", identifier=identifier)


class DuplicateResourceError(SentinelAuthException):
    """Raised when a unique resource already exists (e.g. email already registered)."""

    error_code = "DUPLICATE_RESOURCE"

    def __init__(self, resource: str, field: str, value: Optional[Any] = None):
        details = {"resource": resource, "field": field}
        if value is not None:
            details["value"] = str(value)
        super().__init__(
            message=f"{resource} with this {field} already exists",
            status_code=status.HTTP_409_CONFLICT,
            details=details,
        )


# ==========================
# Validation Exceptions
# ==========================

class ValidationError(SentinelAuthException):
    """Raised when input validation fails."""

    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation error",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details,
        )


class SystemRoleProtectedError(ValidationError):
    """Raised when deleting a system role."""

    error_code = "SYSTEM_ROLE_PROTECTED"

    def __init__(self, role_id: Optional[Any] = None):
        super().__init__(
            message="System roles cannot be deleted",
            details={"role_id": str(role_id)} if role_id is not None else None,
        )


class RoleHasAssignedUsersError(ValidationError):
    """Raised when deleting a role that is still assigned to users."""

    error_code = "ROLE_HAS_ASSIGNED_USERS"

    def __init__(self, role_id: Optional[Any] = None, user_count: Optional[int] = None):
        details: Dict[str, Any] = {}
        if role_id is not None:
            details["role_id"] = str(role_id)
        if user_count is not None:
            details["user_count"] = user_count
        super().__init__(
            message="Cannot delete role with assigned users",
            details=details,
        )


# ==========================
# Rate Limiting Exceptions
# ==========================

class RateLimitExceededError(SentinelAuthException):
    """Raised when a rate limit window is exhausted."""

    error_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, retry_after: int, reset_at: Optional[datetime] = None):
        details: Dict[str, Any] = {"retry_after_seconds": retry_after}
        if reset_at is not None:
            details["reset_at"] = reset_at.isoformat()
        super().__init__(
            message="Too many requests. Please try again later.",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details=details,
            headers={"Retry-After": str(retry_after)},
        )
