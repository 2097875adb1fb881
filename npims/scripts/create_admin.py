"""
One-time bootstrap script — creates the first console user holding the
distinguished super-role.

Usage:
    python -m npims.scripts.create_admin

After this user exists, every other account and role assignment is
managed from the admin console.
"""

import asyncio
import getpass
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from npims.core.config import settings
from npims.core.database import SessionFactory, engine
from npims.core.security import hash_password
from npims.models.role import Role
from npims.models.user import User, UserStatus


async def create_super_user(
    session: AsyncSession,
    email: str,
    full_name: str,
    password: str,
    station: str | None = None,
) -> User:
    """Create the user; raises ValueError when preconditions fail."""
    existing = (
        await session.execute(select(User).where(User.email == email))
    ).scalar_one_or_none()
    if existing:
        raise ValueError(f"User with email '{email}' already exists.")

    super_role = (
        await session.execute(select(Role).where(Role.name == settings.SUPER_ROLE_NAME))
    ).scalar_one_or_none()
    if super_role is None:
        raise ValueError(
            f"Role '{settings.SUPER_ROLE_NAME}' not found. Start the app once first so "
            "default roles get seeded, then re-run this script."
        )

    user = User(
        id=uuid.uuid4(),
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        role=super_role.name,
        station=station,
        status=UserStatus.ACTIVE,
    )
    session.add(user)
    await session.commit()
    return user


async def main() -> None:
    print("\n🔧  NPIMS Console — First Administrator Setup\n")
    email = input("  Email:     ").strip()
    full_name = input("  Full name: ").strip()
    station = input("  Station:   ").strip() or None
    password = getpass.getpass("  Password:  ")
    confirm = getpass.getpass("  Confirm:   ")

    if password != confirm:
        print("\n❌  Passwords do not match.")
        return
    if not email or not full_name or not password:
        print("\n❌  Email, full name and password are required.")
        return

    try:
        async with SessionFactory() as session:
            user = await create_super_user(session, email, full_name, password, station)
    except ValueError as exc:
        print(f"\n❌  {exc}")
        return
    finally:
        await engine.dispose()

    print("\n✅  User created successfully!")
    print(f"    ID:    {user.id}")
    print(f"    Email: {user.email}")
    print(f"    Role:  {user.role}")
    print("\n   You can now log in via POST /api/auth/login\n")


if __name__ == "__main__":
    asyncio.run(main())
