"""
Route guards — FastAPI dependencies over the permission engine.

Every request gets its own PermissionService bound to the caller's
session and to the process-wide RoleRegistry (stored on `app.state`).
The caller's role is read from the database, not from the token, so a
role change applies on the very next request.

Guards:
    Depends(require_permission("cases:read"))            # can_do, all codes
    Depends(require_access("cases", "update"))           # can
    Depends(require_role("national_commissioner"))       # has_role

A denied check answers 403 with NO details about which permissions
exist (prevents enumeration attacks).
"""

import logging
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from npims.core.database import get_db
from npims.core.security import get_current_user_token
from npims.models.user import User
from npims.rbac.permissions import validate_permission
from npims.rbac.registry import RoleRegistry
from npims.rbac.service import PermissionService
from npims.services.auth_service import load_active_user, session_for_user

logger = logging.getLogger("rbac")


def get_role_registry(request: Request) -> RoleRegistry:
    return request.app.state.role_registry


async def get_current_user(
    token_payload: dict[str, Any] = Depends(get_current_user_token),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Authenticated user, no permission check."""
    return await load_active_user(token_payload["sub"], db)


async def get_permission_service(
    user: User = Depends(get_current_user),
    registry: RoleRegistry = Depends(get_role_registry),
) -> AsyncGenerator[PermissionService, None]:
    service = PermissionService(registry, session_for_user(user))
    # failures resolve to an empty (deny-all) cache
    await service.ensure_loaded()
    try:
        yield service
    finally:
        service.close()


def _forbidden() -> HTTPException:
    # Intentionally vague: do NOT reveal which codes are missing
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")


class require_permission:
    """
    Dependency factory.

    Can be used as:
        Depends(require_permission("cases:read"))
        Depends(require_permission("resources:read", "resources:approve"))
    """

    def __init__(self, *permission_codes: str):
        # a typo in a route declaration should fail at import, not deny forever
        self.required_codes = [validate_permission(code) for code in permission_codes]

    async def __call__(
        self,
        user: User = Depends(get_current_user),
        service: PermissionService = Depends(get_permission_service),
    ) -> User:
        missing = [code for code in self.required_codes if not service.can_do(code)]
        if missing:
            logger.warning(
                "Permission denied for user %s (role %s) — required: %s",
                user.id,
                user.role,
                self.required_codes,
            )
            raise _forbidden()
        return user


class require_access:
    """Module-style guard; `require_access("cases")` means `cases:read`."""

    def __init__(self, module: str, submodule: str | None = None, action: str | None = None):
        self.module = module
        self.submodule = submodule
        self.action = action

    async def __call__(
        self,
        user: User = Depends(get_current_user),
        service: PermissionService = Depends(get_permission_service),
    ) -> User:
        if not service.can(self.module, self.submodule, self.action):
            logger.warning(
                "Access denied for user %s (role %s) — module=%s submodule=%s action=%s",
                user.id,
                user.role,
                self.module,
                self.submodule,
                self.action,
            )
            raise _forbidden()
        return user


class require_role:
    def __init__(self, *role_names: str):
        self.role_names = role_names

    async def __call__(
        self,
        user: User = Depends(get_current_user),
        service: PermissionService = Depends(get_permission_service),
    ) -> User:
        if not service.has_role(self.role_names):
            logger.warning("Role check failed for user %s (role %s)", user.id, user.role)
            raise _forbidden()
        return user
