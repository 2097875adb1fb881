"""
Role registry — the authoritative role → permission-set mapping.

The registry is a process-wide, read-mostly singleton sitting in front
of a role store (mock or SQL backend).  The first read fetches every
role from the store and memoizes the result; readers that arrive while
that fetch is in flight await the same task, so the store is hit at
most once.  A failed fetch is not memoized and the next read retries.

Mutations go through the store first and only then update the memo, so
a rejected mutation leaves the registry exactly as it was.
"""

import asyncio
import enum
import logging
import uuid
from collections.abc import Callable
from typing import Protocol

from npims.core.config import settings
from npims.core.exceptions import (
    InvalidRoleData,
    ProtectedRole,
    RoleAlreadyExists,
    RoleInUse,
    RoleNotFound,
)
from npims.rbac.types import RoleRecord
from npims.schemas import RoleCreate, RoleUpdate

logger = logging.getLogger(__name__)


class RoleStore(Protocol):
    """Data-access collaborator backing the registry."""

    async def fetch_roles(self) -> list[RoleRecord]: ...

    async def create_role(self, data: RoleCreate) -> RoleRecord: ...

    async def update_role(self, role_id: uuid.UUID, data: RoleUpdate) -> RoleRecord: ...

    async def delete_role(self, role_id: uuid.UUID) -> None: ...

    async def count_users_with_role(self, role_name: str) -> int: ...


class RoleChange(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


RoleListener = Callable[[RoleChange, RoleRecord], None]


class RoleRegistry:
    def __init__(self, store: RoleStore, *, protected_role_name: str | None = None):
        self.store = store
        self.protected_role_name = protected_role_name or settings.SUPER_ROLE_NAME
        self._roles: dict[str, RoleRecord] | None = None
        self._inflight: asyncio.Task | None = None
        self._generation = 0
        self._listeners: list[RoleListener] = []

    # ── Loading ──────────────────────────────────────────────────────
    @property
    def is_loaded(self) -> bool:
        return self._roles is not None

    async def _fetch(self) -> dict[str, RoleRecord]:
        generation = self._generation
        roles = await self.store.fetch_roles()
        index: dict[str, RoleRecord] = {}
        for role in roles:
            if role.name in index:
                raise InvalidRoleData(f"Duplicate role name '{role.name}' in role store")
            index[role.name] = role
        if generation != self._generation:
            # invalidated while in flight; a newer fetch owns the memo
            return index
        self._roles = index
        logger.info("Role registry loaded (%d roles)", len(index))
        return index

    async def _ensure_loaded(self) -> dict[str, RoleRecord]:
        if self._roles is not None:
            return self._roles
        if self._inflight is None:
            self._inflight = asyncio.get_running_loop().create_task(self._fetch())
        task = self._inflight
        try:
            # shield: one cancelled reader must not cancel the shared fetch
            return await asyncio.shield(task)
        finally:
            if task.done() and self._inflight is task:
                self._inflight = None

    def invalidate(self) -> None:
        """Drop the memo; the next read fetches from the store again."""
        self._generation += 1
        self._roles = None
        self._inflight = None

    async def refresh(self) -> list[RoleRecord]:
        self.invalidate()
        return await self.list_roles()

    # ── Reads ────────────────────────────────────────────────────────
    async def list_roles(self) -> list[RoleRecord]:
        return list((await self._ensure_loaded()).values())

    async def find_role(self, name: str | None) -> RoleRecord | None:
        if not name:
            return None
        return (await self._ensure_loaded()).get(name)

    async def get_role(self, role_id: uuid.UUID) -> RoleRecord:
        for role in (await self._ensure_loaded()).values():
            if role.id == role_id:
                return role
        raise RoleNotFound(f"Role {role_id} not found")

    def is_protected(self, role: RoleRecord) -> bool:
        return role.name == self.protected_role_name

    # ── Mutations (administrator only) ───────────────────────────────
    async def create_role(self, data: RoleCreate) -> RoleRecord:
        roles = await self._ensure_loaded()
        if data.name in roles:
            raise RoleAlreadyExists(f"Role '{data.name}' already exists")

        role = await self.store.create_role(data)
        self._replace(None, role)
        logger.info("Role created: %s", role.name)
        self._notify(RoleChange.CREATED, role)
        return role

    async def update_role(self, role_id: uuid.UUID, data: RoleUpdate) -> RoleRecord:
        current = await self.get_role(role_id)
        roles = await self._ensure_loaded()

        if data.name is not None and data.name != current.name:
            if self.is_protected(current):
                raise ProtectedRole(f"Role '{current.name}' cannot be renamed")
            if data.name in roles:
                raise RoleAlreadyExists(f"Role '{data.name}' already exists")

        role = await self.store.update_role(role_id, data)
        self._replace(current.name, role)
        logger.info("Role updated: %s", role.name)
        # listeners key on the name they cached, i.e. the old one
        self._notify(RoleChange.UPDATED, current)
        return role

    async def delete_role(self, role_id: uuid.UUID) -> None:
        role = await self.get_role(role_id)
        if self.is_protected(role):
            raise ProtectedRole(f"Role '{role.name}' is protected and cannot be deleted")

        in_use = await self.store.count_users_with_role(role.name)
        if in_use:
            raise RoleInUse(
                f"Cannot delete role '{role.name}': assigned to {in_use} user(s)"
            )

        await self.store.delete_role(role_id)
        self._replace(role.name, None)
        logger.info("Role deleted: %s", role.name)
        self._notify(RoleChange.DELETED, role)

    def _replace(self, old_name: str | None, role: RoleRecord | None) -> None:
        # build a new index and swap it in, so readers see old or new, never half
        if self._roles is None:
            return
        roles = dict(self._roles)
        if old_name is not None:
            roles.pop(old_name, None)
        if role is not None:
            roles[role.name] = role
        self._roles = roles

    # ── Change notification ──────────────────────────────────────────
    def subscribe(self, listener: RoleListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: RoleChange, role: RoleRecord) -> None:
        for listener in list(self._listeners):
            try:
                listener(change, role)
            except Exception:
                # the store already committed; a listener cannot undo it
                logger.exception("Role listener failed on %s %s", change.value, role.name)
