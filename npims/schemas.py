"""
Pydantic schemas for request / response serialization.

Kept in a single file for now — split per-domain when it grows.
Schemas are deliberately decoupled from SQLAlchemy models so the
API surface can evolve independently of the DB layer.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from npims.rbac.permissions import validate_permission
from npims.rbac.types import ROLE_NAME_PATTERN


def _validate_permission_list(value: list[str] | None) -> list[str] | None:
    if value is None:
        return None
    # de-duplicate while keeping the administrator's ordering
    return list(dict.fromkeys(validate_permission(p) for p in value))


# ── Auth ─────────────────────────────────────────────────────────────
class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user_id: str
    role: str | None = None


# ── Roles ────────────────────────────────────────────────────────────
class RoleCreate(BaseModel):
    name: str = Field(min_length=1, max_length=64, pattern=ROLE_NAME_PATTERN)
    display_name: str = ""
    description: str | None = None
    permissions: list[str] = []

    @field_validator("permissions")
    @classmethod
    def check_permissions(cls, value):
        return _validate_permission_list(value)


class RoleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=64, pattern=ROLE_NAME_PATTERN)
    display_name: str | None = None
    description: str | None = None
    permissions: list[str] | None = None

    @field_validator("permissions")
    @classmethod
    def check_permissions(cls, value):
        return _validate_permission_list(value)


class RoleOut(BaseModel):
    id: uuid.UUID
    name: str
    display_name: str
    description: str | None = None
    permissions: list[str]


# ── User ─────────────────────────────────────────────────────────────
class UserOut(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    role: str | None = None
    station: str | None = None
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("status", mode="before")
    @classmethod
    def status_value(cls, value):
        return getattr(value, "value", value)


class AssignRoleRequest(BaseModel):
    role: str


class CurrentUserOut(BaseModel):
    id: uuid.UUID
    email: str
    full_name: str
    role: str | None = None
    permissions: list[str]
    is_super_role: bool


# ── Catalog / navigation ─────────────────────────────────────────────
class ModulePermissionsOut(BaseModel):
    module: str
    permissions: list[str]


class NavigationItemOut(BaseModel):
    key: str
    label: str
    path: str
    children: list["NavigationItemOut"] = []


# ── Generic ──────────────────────────────────────────────────────────
class MessageResponse(BaseModel):
    detail: str
