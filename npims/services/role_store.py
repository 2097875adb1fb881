"""
Role stores — the data-access collaborators behind the RoleRegistry.

- `SqlRoleStore`: roles and users in the database, one short-lived
  session per operation (the registry outlives any request).
- `InMemoryRoleStore`: the mock backend.  Roles and user → role
  assignments live in dicts; an optional delay simulates network
  latency so loading states can be exercised.

Both return validated `RoleRecord` snapshots, never ORM objects.
"""

import asyncio
import uuid
from collections.abc import Iterable, Mapping

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from npims.core.exceptions import RoleNotFound
from npims.models.role import Role
from npims.models.user import User
from npims.rbac.types import RoleRecord
from npims.schemas import RoleCreate, RoleUpdate


def _to_record(role: Role) -> RoleRecord:
    return RoleRecord.model_validate(role)


class SqlRoleStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def fetch_roles(self) -> list[RoleRecord]:
        async with self.session_factory() as session:
            result = await session.execute(select(Role).order_by(Role.name))
            return [_to_record(role) for role in result.scalars().all()]

    async def create_role(self, data: RoleCreate) -> RoleRecord:
        async with self.session_factory() as session:
            role = Role(
                id=uuid.uuid4(),
                name=data.name,
                display_name=data.display_name,
                description=data.description,
                permissions=list(data.permissions),
            )
            session.add(role)
            await session.flush()
            record = _to_record(role)
            await session.commit()
            return record

    async def update_role(self, role_id: uuid.UUID, data: RoleUpdate) -> RoleRecord:
        async with self.session_factory() as session:
            role = await session.get(Role, role_id)
            if role is None:
                raise RoleNotFound(f"Role {role_id} not found")
            old_name = role.name
            for field, value in data.model_dump(exclude_unset=True).items():
                if value is not None:
                    setattr(role, field, value)
            if role.name != old_name:
                # users reference roles by name; keep them attached
                await session.execute(
                    update(User).where(User.role == old_name).values(role=role.name)
                )
            await session.flush()
            record = _to_record(role)
            await session.commit()
            return record

    async def delete_role(self, role_id: uuid.UUID) -> None:
        async with self.session_factory() as session:
            role = await session.get(Role, role_id)
            if role is None:
                raise RoleNotFound(f"Role {role_id} not found")
            await session.delete(role)
            await session.commit()

    async def count_users_with_role(self, role_name: str) -> int:
        async with self.session_factory() as session:
            stmt = select(func.count()).select_from(User).where(User.role == role_name)
            return (await session.execute(stmt)).scalar_one()


class InMemoryRoleStore:
    def __init__(
        self,
        roles: Iterable[RoleRecord | Mapping] = (),
        user_roles: Mapping[uuid.UUID, str | None] | None = None,
        *,
        delay: float = 0.0,
    ):
        self._roles: dict[uuid.UUID, RoleRecord] = {}
        for role in roles:
            record = role if isinstance(role, RoleRecord) else RoleRecord.model_validate(role)
            self._roles[record.id] = record
        self.user_roles: dict[uuid.UUID, str | None] = dict(user_roles or {})
        self.delay = delay
        self.fetch_count = 0

    async def _latency(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)

    async def fetch_roles(self) -> list[RoleRecord]:
        await self._latency()
        self.fetch_count += 1
        return list(self._roles.values())

    async def create_role(self, data: RoleCreate) -> RoleRecord:
        await self._latency()
        record = RoleRecord(id=uuid.uuid4(), **data.model_dump())
        self._roles[record.id] = record
        return record

    async def update_role(self, role_id: uuid.UUID, data: RoleUpdate) -> RoleRecord:
        await self._latency()
        current = self._roles.get(role_id)
        if current is None:
            raise RoleNotFound(f"Role {role_id} not found")
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        record = RoleRecord.model_validate({**current.model_dump(), **changes})
        self._roles[role_id] = record
        if record.name != current.name:
            for user_id, name in self.user_roles.items():
                if name == current.name:
                    self.user_roles[user_id] = record.name
        return record

    async def delete_role(self, role_id: uuid.UUID) -> None:
        await self._latency()
        if self._roles.pop(role_id, None) is None:
            raise RoleNotFound(f"Role {role_id} not found")

    async def count_users_with_role(self, role_name: str) -> int:
        await self._latency()
        return sum(1 for name in self.user_roles.values() if name == role_name)
