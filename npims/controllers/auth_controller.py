"""
Auth controller — login and the caller's own permission view.

Login is PUBLIC (no permission dependency).  The `/me` routes only
need a valid token: they report what the caller may do, they do not
gate anything themselves.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from npims.core.database import get_db
from npims.models.user import User
from npims.rbac.catalog import NavigationItem, visible_navigation
from npims.rbac.dependencies import get_current_user, get_permission_service
from npims.rbac.permissions import is_super_role_name
from npims.rbac.service import PermissionService
from npims.schemas import CurrentUserOut, LoginRequest, NavigationItemOut, TokenResponse
from npims.services import auth_service

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Authenticate with email + password → receive a JWT."""
    return await auth_service.authenticate_user(body.email, body.password, db)


@router.get("/me", response_model=CurrentUserOut)
async def me(
    user: User = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
):
    """The caller and its resolved permission set (empty if its role is dangling)."""
    return CurrentUserOut(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        permissions=sorted(service.permissions),
        is_super_role=is_super_role_name(user.role),
    )


def _navigation_out(item: NavigationItem) -> NavigationItemOut:
    return NavigationItemOut(
        key=item.key,
        label=item.label,
        path=item.path,
        children=[_navigation_out(child) for child in item.children],
    )


@router.get("/me/navigation", response_model=list[NavigationItemOut])
async def my_navigation(service: PermissionService = Depends(get_permission_service)):
    return [_navigation_out(item) for item in visible_navigation(service)]
