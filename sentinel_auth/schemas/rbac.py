"""
RBAC and API Key Schemas Module
===============================

Pydantic models for role, permission and API key endpoints.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sentinel_auth.core.security import as_utc


# ==========================
# Permission & Role Schemas
# ==========================

class PermissionResponse(BaseModel):
    id: uuid.UUID
    name: str
    resource: str
    action: str
    description: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class RoleResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    organization_id: uuid.UUID
    is_system_role: bool
    permissions: List[PermissionResponse] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RoleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    permission_ids: List[uuid.UUID] = Field(default_factory=list, alias="permissionIds")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "name": "Responder",
                "description": "On-call incident responders",
                "permissionIds": ["6f1c1d6e-4a0b-4f5e-9d62-2d1f7d0e3c11"],
            }
        },
    )


class RoleUpdateRequest(BaseModel):
    """Omitted fields are left unchanged; ``permission_ids`` replaces the whole set."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    permission_ids: Optional[List[uuid.UUID]] = Field(default=None, alias="permissionIds")

    model_config = ConfigDict(populate_by_name=True)


# ==========================
# API Key Schemas
# ==========================

class ApiKeyCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    permissions: List[str] = Field(default_factory=list, description="Permission names to snapshot")
    expires_at: Optional[datetime] = Field(default=None, alias="expiresAt")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("expires_at")
    @classmethod
    def expires_at_as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Timestamps without an offset are read as UTC."""
        return as_utc(v) if v is not None else None


class ApiKeyResponse(BaseModel):
    """Key metadata; never the hash."""

    id: uuid.UUID
    name: str
    organization_id: uuid.UUID
    scoped_permissions: List[str] = Field(default_factory=list)
    expires_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ApiKeyCreatedResponse(BaseModel):
    """Returned once at creation; ``api_key`` cannot be retrieved again."""

    api_key: str
    key_id: uuid.UUID
    name: str
    scoped_permissions: List[str]
    expires_at: Optional[datetime] = None
    created_at: datetime


class ApiKeyIntrospectionResponse(BaseModel):
    key_id: uuid.UUID
    user_id: uuid.UUID
    organization_id: uuid.UUID
    permissions: List[str]
