"""
Admin controller — role management, user role assignment, permission
catalog.

Every route uses `Depends(require_permission(...))` for enforcement.
Controllers are THIN — they delegate to the registry / services and
return schemas.  Engine errors (RoleInUse, ProtectedRole, ...) are
turned into HTTP answers by the app-level exception handler.
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from npims.core.database import get_db
from npims.rbac.catalog import permission_catalog
from npims.rbac.dependencies import get_role_registry, require_access, require_permission
from npims.rbac.registry import RoleRegistry
from npims.rbac.types import RoleRecord
from npims.schemas import (
    AssignRoleRequest,
    MessageResponse,
    ModulePermissionsOut,
    RoleCreate,
    RoleOut,
    RoleUpdate,
    UserOut,
)
from npims.services import user_service

router = APIRouter(prefix="/api/admin", tags=["Admin"])


def _role_out(role: RoleRecord) -> RoleOut:
    return RoleOut(
        id=role.id,
        name=role.name,
        display_name=role.display_name,
        description=role.description,
        permissions=sorted(role.permissions),
    )


# ── Roles ────────────────────────────────────────────────────────────
@router.get("/roles", response_model=list[RoleOut])
async def list_roles(
    _=Depends(require_permission("admin:roles")),
    registry: RoleRegistry = Depends(get_role_registry),
):
    return [_role_out(role) for role in await registry.list_roles()]


@router.get("/roles/{role_id}", response_model=RoleOut)
async def get_role(
    role_id: uuid.UUID,
    _=Depends(require_permission("admin:roles")),
    registry: RoleRegistry = Depends(get_role_registry),
):
    return _role_out(await registry.get_role(role_id))


@router.post("/roles", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
async def create_role(
    body: RoleCreate,
    _=Depends(require_permission("admin:roles")),
    registry: RoleRegistry = Depends(get_role_registry),
):
    return _role_out(await registry.create_role(body))


@router.patch("/roles/{role_id}", response_model=RoleOut)
async def update_role(
    role_id: uuid.UUID,
    body: RoleUpdate,
    _=Depends(require_permission("admin:roles")),
    registry: RoleRegistry = Depends(get_role_registry),
):
    return _role_out(await registry.update_role(role_id, body))


@router.delete("/roles/{role_id}", response_model=MessageResponse)
async def delete_role(
    role_id: uuid.UUID,
    _=Depends(require_permission("admin:roles")),
    registry: RoleRegistry = Depends(get_role_registry),
):
    """Rejected for the protected role and for roles still assigned to users."""
    await registry.delete_role(role_id)
    return MessageResponse(detail="Role deleted successfully")


@router.get("/permissions", response_model=list[ModulePermissionsOut])
async def list_permissions(_=Depends(require_access("admin", "roles"))):
    """Grantable permissions, grouped by module, for the role editor."""
    return [
        ModulePermissionsOut(module=module, permissions=codes)
        for module, codes in permission_catalog().items()
    ]


# ── Users ────────────────────────────────────────────────────────────
@router.get("/users", response_model=list[UserOut])
async def list_users(
    _=Depends(require_permission("admin:users")),
    db: AsyncSession = Depends(get_db),
    role: str | None = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    users = await user_service.list_users(db, skip, limit, role=role)
    return [UserOut.model_validate(u) for u in users]


@router.patch("/users/{user_id}/role", response_model=UserOut)
async def assign_role(
    user_id: uuid.UUID,
    body: AssignRoleRequest,
    _=Depends(require_permission("admin:users")),
    db: AsyncSession = Depends(get_db),
    registry: RoleRegistry = Depends(get_role_registry),
):
    user = await user_service.assign_role(user_id, body.role, db, registry)
    return UserOut.model_validate(user)


@router.post("/users/{user_id}/disable", response_model=MessageResponse)
async def disable_user(
    user_id: uuid.UUID,
    _=Depends(require_permission("admin:users")),
    db: AsyncSession = Depends(get_db),
):
    await user_service.disable_user(user_id, db)
    return MessageResponse(detail="User disabled successfully")
