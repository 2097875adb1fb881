"""
Structured records shared by the registry, the evaluator and the cache.

Roles are validated here, at the boundary: a malformed record coming out
of a store is rejected instead of being silently defaulted.
"""

import uuid
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, field_validator

from npims.rbac.permissions import WILDCARD, validate_permission

ROLE_NAME_PATTERN = r"^[A-Za-z0-9_\-]+$"


class RoleRecord(BaseModel):
    """Immutable snapshot of a role and its permission set."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: uuid.UUID
    name: str = Field(min_length=1, max_length=64, pattern=ROLE_NAME_PATTERN)
    display_name: str = ""
    description: str | None = None
    permissions: frozenset[str] = frozenset()

    @field_validator("permissions", mode="before")
    @classmethod
    def _validate_permissions(cls, value):
        if value is None:
            raise ValueError("permissions must be a list of permission strings")
        return frozenset(validate_permission(p) for p in value)

    @property
    def is_wildcard(self) -> bool:
        return WILDCARD in self.permissions


@dataclass(frozen=True)
class CurrentUser:
    """What the permission engine needs to know about the session's user."""

    id: uuid.UUID
    role: str | None
    is_authenticated: bool = True
