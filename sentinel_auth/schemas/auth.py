"""
Authentication Schemas Module
=============================

Pydantic models for authentication request/response validation.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


# ==========================
# Common
# ==========================

class ErrorResponse(BaseModel):
    """Error body produced by every exception handler."""

    error: str = Field(..., description="Machine readable error code", examples=["INVALID_CREDENTIALS"])
    message: str = Field(..., description="Human readable message")
    details: Dict[str, Any] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    message: str


# ==========================
# Login Schemas
# ==========================

class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr = Field(
        ...,
        description="User email address",
        examples=["user@example.com"]
    )
    password: str = Field(
        ...,
        min_length=1,
        description="User password",
        examples=["SecureP@ss123"]
    )
    device_info: Dict[str, Any] = Field(
        default_factory=dict,
        alias="deviceInfo",
        description="Client description stored with the session",
    )

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "email": "user@example.com",
                "password": "SecureP@ss123",
                "deviceInfo": {"userAgent": "ops-cli/1.4"},
            }
        }
    )


class UserResponse(BaseModel):
    """Public user view: never includes hash, counters or lock state."""

    id: uuid.UUID
    email: str
    organization_id: uuid.UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    roles: List[str] = Field(default_factory=list)
    permissions: List[str] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    """Token response schema for refresh."""

    access_token: str = Field(..., description="Signed access token")
    refresh_token: str = Field(..., description="Opaque single-use refresh token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token lifetime in seconds")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "access_token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                "refresh_token": "9f2c...e1",
                "token_type": "bearer",
                "expires_in": 900
            }
        }
    )


class LoginResponse(TokenResponse):
    user: UserResponse


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, alias="refreshToken", description="Refresh token")

    model_config = ConfigDict(populate_by_name=True)


# ==========================
# Session Schemas
# ==========================

class LogoutResponse(BaseModel):
    message: str = "Logged out successfully"
    sessions_revoked: int = 0


class LogoutSessionRequest(BaseModel):
    session_id: uuid.UUID = Field(..., alias="sessionId", description="Session (refresh token) id")

    model_config = ConfigDict(populate_by_name=True)


class SessionResponse(BaseModel):
    id: uuid.UUID
    device_info: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SessionListResponse(BaseModel):
    sessions: List[SessionResponse]


# ==========================
# Password Reset Schemas
# ==========================

class PasswordResetRequestBody(BaseModel):
    email: EmailStr


class PasswordResetRequestResponse(BaseModel):
    """
    Identical for known and unknown emails. ``reset_token`` is only
    populated when EXPOSE_RESET_TOKEN is enabled (development only).
    """

    message: str = "If the email exists, a password reset link has been sent"
    reset_token: Optional[str] = None


class PasswordResetBody(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, alias="newPassword")

    model_config = ConfigDict(populate_by_name=True)
