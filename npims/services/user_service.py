"""
User service — query helpers & administrative user actions.

Role assignment goes through the RoleRegistry so a user can only ever
point at a role name that exists.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from npims.core.exceptions import RoleNotFound, UserNotFound
from npims.models.user import User, UserStatus
from npims.rbac.registry import RoleRegistry

logger = logging.getLogger(__name__)


async def get_user_by_id(user_id: uuid.UUID, db: AsyncSession) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFound(f"User {user_id} not found")
    return user


async def list_users(
    db: AsyncSession,
    skip: int = 0,
    limit: int = 50,
    role: str | None = None,
) -> list[User]:
    stmt = select(User).order_by(User.created_at.desc())
    if role is not None:
        stmt = stmt.where(User.role == role)
    stmt = stmt.offset(skip).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def assign_role(
    user_id: uuid.UUID,
    role_name: str,
    db: AsyncSession,
    registry: RoleRegistry,
) -> User:
    """Admin action — point a user at another role (by name)."""
    if await registry.find_role(role_name) is None:
        raise RoleNotFound(f"Role '{role_name}' not found")

    user = await get_user_by_id(user_id, db)
    previous = user.role
    user.role = role_name
    await db.flush()
    logger.info("User %s role changed: %s -> %s", user.id, previous, role_name)
    return user


async def disable_user(target_user_id: uuid.UUID, db: AsyncSession) -> User:
    """Admin action — disable a user account; its tokens stop working."""
    user = await get_user_by_id(target_user_id, db)
    user.status = UserStatus.DISABLED
    await db.flush()
    return user
