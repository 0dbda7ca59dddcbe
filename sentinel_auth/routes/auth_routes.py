"""
Authentication Routes Module
============================

Handles:
- User login with account lockout protection
- Token refresh (single-use refresh token rotation)
- Logout of every session, or of a single session
- Session listing and current user profile
- Password reset request and confirmation

Security Features:
- Login and reset requests are rate limited
- All attempts are logged and audited
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from sentinel_auth.core.config import get_auth_config, settings
from sentinel_auth.core.dependencies import AuthContext, rate_limit, require_auth
from sentinel_auth.core.dependencies.auth import client_ip
from sentinel_auth.core.exceptions import AccountLockedError, InvalidCredentialsError
from sentinel_auth.core.logging import get_logger
from sentinel_auth.db.session import get_db
from sentinel_auth.schemas import (
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
    TokenResponse,
    UserResponse,
)
from sentinel_auth.services.audit_service import AuditAction, audit_service
from sentinel_auth.services.auth_service import AuthService

# Initialize logger
logger = get_logger(__name__)

LOGIN_WINDOW_MS = 60 * 1000
PASSWORD_RESET_WINDOW_MS = 60 * 60 * 1000


# =====================================
# Router Setup
# =====================================

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        401: {"model": ErrorResponse, "description": "Authentication failed"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)


def _expires_in() -> int:
    return int(get_auth_config().access_token_ttl.total_seconds())


# =====================================
# Login Endpoint
# =====================================

@router.post(
    "/login",
    response_model=LoginResponse,
    summary="User Login",
    description="""
    Authenticate user with email and password.

    Security features:
    - Account locks after repeated failed attempts
    - Rate limited per client address
    - All attempts are logged
    """,
    dependencies=[Depends(rate_limit(settings.LOGIN_RATE_LIMIT, LOGIN_WINDOW_MS, scope="login"))],
    responses={
        429: {"model": ErrorResponse, "description": "Too many requests"},
    },
)
def login(
    request: Request,
    login_data: LoginRequest,
    db: Session = Depends(get_db),
) -> dict:
    ip_address = client_ip(request)
    auth_service = AuthService(db)

    try:
        result = auth_service.login(
            email=login_data.email,
            password=login_data.password,
            device_info=login_data.device_info,
            ip_address=ip_address,
        )
    except (InvalidCredentialsError, AccountLockedError) as e:
        audit_service.log_event(
            user_id=None,
            action=AuditAction.LOGIN_FAILED,
            resource_type="user",
            details={"email": login_data.email.lower(), "reason": e.error_code},
            ip_address=ip_address,
        )
        raise

    audit_service.log_event(
        user_id=result.user.id,
        action=AuditAction.LOGIN_SUCCESS,
        resource_type="user",
        resource_id=result.user.id,
        ip_address=ip_address,
    )

    return {
        "access_token": result.access_token,
        "refresh_token": result.refresh_token,
        "token_type": "bearer",
        "expires_in": _expires_in(),
        "user": result.user.to_dict(),
    }


# =====================================
# Refresh Token Endpoint
# =====================================

@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh Access Token",
    description="""
    Exchange a refresh token for a new token pair.

    The presented refresh token is consumed; replaying it fails.
    """,
)
def refresh_token(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db),
) -> dict:
    tokens = AuthService(db).refresh_token(refresh_data.refresh_token)
    return {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_type": "bearer",
        "expires_in": _expires_in(),
    }


# =====================================
# Logout Endpoints
# =====================================

@router.post(
    "/logout",
    response_model=LogoutResponse,
    summary="User Logout",
    description="Revoke every session of the current user.",
)
def logout(
    request: Request,
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> dict:
    revoked = AuthService(db).logout(current_user.user_id)

    audit_service.log_event(
        user_id=current_user.user_id,
        action=AuditAction.LOGOUT,
        resource_type="user",
        resource_id=current_user.user_id,
        details={"sessions_revoked": revoked},
        ip_address=client_ip(request),
    )
    return {"message": "Logged out successfully", "sessions_revoked": revoked}


@router.post(
    "/logout-session",
    response_model=MessageResponse,
    summary="Revoke One Session",
    responses={
        403: {"model": ErrorResponse, "description": "Session belongs to another user"},
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
def logout_session(
    request: Request,
    body: LogoutSessionRequest,
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> dict:
    AuthService(db).logout_session(body.session_id, current_user.user_id)

    audit_service.log_event(
        user_id=current_user.user_id,
        action=AuditAction.SESSION_REVOKED,
        resource_type="session",
        resource_id=body.session_id,
        ip_address=client_ip(request),
    )
    return {"message": "Session revoked"}


# =====================================
# Session & Profile Endpoints
# =====================================

@router.get(
    "/sessions",
    response_model=SessionListResponse,
    summary="List Active Sessions",
)
def list_sessions(
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> dict:
    sessions = AuthService(db).list_sessions(current_user.user_id)
    return {"sessions": [s.to_dict() for s in sessions]}


@router.get(
    "/me",
    response_model=UserResponse,
    summary="Get Current User",
    description="Profile of the authenticated user with current roles and permissions.",
)
def get_me(
    current_user: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
) -> dict:
    return AuthService(db).get_user_profile(current_user.user_id).to_dict()


# =====================================
# Password Reset Endpoints
# =====================================

@router.post(
    "/password-reset-request",
    response_model=PasswordResetRequestResponse,
    response_model_exclude_none=True,
    summary="Request Password Reset",
    description="""
    Issue a single-use reset token if the email is registered.

    The response is the same whether or not the email exists.
    """,
    dependencies=[
        Depends(rate_limit(settings.PASSWORD_RESET_RATE_LIMIT, PASSWORD_RESET_WINDOW_MS, scope="password-reset"))
    ],
    responses={
        429: {"model": ErrorResponse, "description": "Too many requests"},
    },
)
def password_reset_request(
    request: Request,
    body: PasswordResetRequestBody,
    db: Session = Depends(get_db),
) -> dict:
    outcome = AuthService(db).request_password_reset(body.email)

    audit_service.log_event(
        user_id=None,
        action=AuditAction.PASSWORD_RESET_REQUESTED,
        resource_type="user",
        details={"email": body.email.lower(), "issued": outcome.reset_token is not None},
        ip_address=client_ip(request),
    )

    response = {"message": "If the email exists, a password reset link has been sent"}
    if settings.EXPOSE_RESET_TOKEN and outcome.reset_token is not None:
        response["reset_token"] = outcome.reset_token
    return response


@router.post(
    "/password-reset",
    response_model=MessageResponse,
    summary="Reset Password",
    description="Consume a reset token, set the new password and revoke every session.",
    responses={
        400: {"model": ErrorResponse, "description": "Password too short"},
    },
)
def password_reset(
    request: Request,
    body: PasswordResetBody,
    db: Session = Depends(get_db),
) -> dict:
    user_id = AuthService(db).reset_password(body.token, body.new_password)

    audit_service.log_event(
        user_id=user_id,
        action=AuditAction.PASSWORD_RESET,
        resource_type="user",
        resource_id=user_id,
        ip_address=client_ip(request),
    )
    return {"message": "Password has been reset"}
