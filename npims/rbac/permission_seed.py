"""
Default role seeding script.

Run this once against a live database to populate the default roles.
It is IDEMPOTENT — safe to re-run; existing roles are left untouched so
administrator edits survive a redeploy.

Governance rules encoded here:
    • Only the national commissioner holds the universal wildcard.
    • Officers get self-scoped personnel / report permissions only.
    • Administrative staff never touch cases or intelligence.

Usage:
    python -m npims.rbac.permission_seed
"""

import asyncio
import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from npims.core.config import settings
from npims.models.base import Base
from npims.models.role import Role

logger = logging.getLogger(__name__)

# ────────────────────────────────────────────────────────────────────
# 1.  DEFAULT ROLES
# ────────────────────────────────────────────────────────────────────
DEFAULT_ROLES: list[dict] = [
    {
        "name": "national_commissioner",
        "display_name": "National Police Commissioner",
        "description": "Highest authority in the national police force",
        "permissions": ["*"],
    },
    {
        "name": "provincial_commissioner",
        "display_name": "Provincial Commissioner",
        "description": "Head of police in a province",
        "permissions": [
            "personnel:read",
            "personnel:create",
            "personnel:update",
            "cases:read",
            "cases:create",
            "cases:update",
            "cases:delete",
            "resources:read",
            "resources:create",
            "resources:update",
            "resources:approve",
            "intelligence:read",
            "intelligence:create",
            "reports:read",
            "reports:create",
            "admin:read",
        ],
    },
    {
        "name": "station_commander",
        "display_name": "Station Commander",
        "description": "Head of a police station",
        "permissions": [
            "personnel:read",
            "cases:read",
            "cases:create",
            "cases:update",
            "resources:read",
            "resources:request",
            "intelligence:read",
            "intelligence:create",
            "reports:read",
            "reports:create",
        ],
    },
    {
        "name": "officer",
        "display_name": "Police Officer",
        "description": "Regular police officer",
        "permissions": [
            "personnel:read:self",
            "cases:read",
            "cases:create",
            "resources:read",
            "resources:request",
            "intelligence:read",
            "reports:read",
            "reports:create:self",
        ],
    },
    {
        "name": "admin_staff",
        "display_name": "Administrative Staff",
        "description": "Non-officer administrative personnel",
        "permissions": [
            "personnel:read",
            "resources:read",
            "resources:create",
            "resources:update",
            "reports:read",
            "reports:create",
        ],
    },
]


# ────────────────────────────────────────────────────────────────────
# 2.  SEED FUNCTION (idempotent)
# ────────────────────────────────────────────────────────────────────
async def seed(session: AsyncSession) -> int:
    """Create missing default roles.  Returns how many were added."""
    existing = set((await session.execute(select(Role.name))).scalars().all())

    added = 0
    for role_data in DEFAULT_ROLES:
        if role_data["name"] in existing:
            continue
        session.add(Role(id=uuid.uuid4(), **role_data))
        added += 1

    await session.commit()
    logger.info("Role seed complete: %d added, %d already present", added, len(existing))
    return added


# ────────────────────────────────────────────────────────────────────
# 3.  CLI entrypoint:  python -m npims.rbac.permission_seed
# ────────────────────────────────────────────────────────────────────
async def main() -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async_session = async_sessionmaker(engine, expire_on_commit=False)
    async with async_session() as session:
        added = await seed(session)
    await engine.dispose()
    print(f"✔  Default roles seeded ({added} added).")


if __name__ == "__main__":
    asyncio.run(main())
