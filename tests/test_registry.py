import asyncio
import uuid

import pytest

from npims.core.exceptions import (
    InvalidRoleData,
    ProtectedRole,
    RoleAlreadyExists,
    RoleInUse,
    RoleNotFound,
)
from npims.rbac.registry import RoleChange, RoleRegistry
from npims.rbac.types import RoleRecord
from npims.schemas import RoleCreate, RoleUpdate
from npims.services.role_store import InMemoryRoleStore


class FlakyStore(InMemoryRoleStore):
    """Fails the first `failures` fetches."""

    def __init__(self, *args, failures: int = 1, **kwargs):
        super().__init__(*args, **kwargs)
        self.failures = failures

    async def fetch_roles(self):
        if self.failures:
            self.failures -= 1
            raise ConnectionError("role store unreachable")
        return await super().fetch_roles()


# ── Loading ──────────────────────────────────────────────────────────
async def test_lists_all_default_roles(registry):
    names = {role.name for role in await registry.list_roles()}
    assert names == {
        "national_commissioner",
        "provincial_commissioner",
        "station_commander",
        "officer",
        "admin_staff",
    }
    assert registry.is_loaded


async def test_concurrent_readers_share_one_fetch(role_records):
    store = InMemoryRoleStore(role_records.values(), delay=0.05)
    registry = RoleRegistry(store)

    results = await asyncio.gather(
        registry.list_roles(),
        registry.find_role("officer"),
        registry.find_role("station_commander"),
        registry.list_roles(),
    )

    assert store.fetch_count == 1
    assert len(results[0]) == 5
    assert results[1].name == "officer"

    await registry.list_roles()
    assert store.fetch_count == 1


async def test_failed_fetch_is_retried(role_records):
    store = FlakyStore(role_records.values())
    registry = RoleRegistry(store)

    with pytest.raises(ConnectionError):
        await registry.list_roles()
    assert not registry.is_loaded

    assert len(await registry.list_roles()) == 5
    assert store.fetch_count == 1


async def test_refresh_refetches(registry, store):
    await registry.list_roles()
    await registry.refresh()
    assert store.fetch_count == 2


async def test_duplicate_names_in_store_are_rejected():
    dup = {"name": "officer", "permissions": ["cases:read"]}
    store = InMemoryRoleStore([{"id": uuid.uuid4(), **dup}, {"id": uuid.uuid4(), **dup}])
    with pytest.raises(InvalidRoleData):
        await RoleRegistry(store).list_roles()


# ── Reads ────────────────────────────────────────────────────────────
async def test_find_role_is_exact(registry):
    assert (await registry.find_role("officer")).name == "officer"
    assert await registry.find_role("Officer") is None
    assert await registry.find_role("ghost") is None
    assert await registry.find_role(None) is None


async def test_get_role_by_id(registry, role_records):
    officer = role_records["officer"]
    assert await registry.get_role(officer.id) == officer
    with pytest.raises(RoleNotFound):
        await registry.get_role(uuid.uuid4())


# ── Create / update ──────────────────────────────────────────────────
async def test_create_role(registry):
    role = await registry.create_role(
        RoleCreate(name="analyst", display_name="Analyst", permissions=["analytics:*"])
    )
    assert role.permissions == frozenset({"analytics:*"})
    assert await registry.find_role("analyst") == role


async def test_create_duplicate_is_rejected(registry):
    with pytest.raises(RoleAlreadyExists):
        await registry.create_role(RoleCreate(name="officer"))


async def test_update_permissions(registry, role_records):
    officer = role_records["officer"]
    updated = await registry.update_role(
        officer.id, RoleUpdate(permissions=["cases:read", "cases:update"])
    )
    assert updated.permissions == frozenset({"cases:read", "cases:update"})
    assert updated.display_name == officer.display_name
    assert (await registry.find_role("officer")).permissions == updated.permissions


async def test_update_unknown_role(registry):
    with pytest.raises(RoleNotFound):
        await registry.update_role(uuid.uuid4(), RoleUpdate(display_name="x"))


async def test_rename_moves_index_and_users(registry, store, role_records, user_ids):
    officer = role_records["officer"]
    await registry.update_role(officer.id, RoleUpdate(name="constable"))

    assert await registry.find_role("officer") is None
    assert (await registry.find_role("constable")).id == officer.id
    assert store.user_roles[user_ids["officer"]] == "constable"


async def test_rename_to_existing_name_is_rejected(registry, role_records):
    with pytest.raises(RoleAlreadyExists):
        await registry.update_role(role_records["officer"].id, RoleUpdate(name="admin_staff"))


async def test_protected_role_cannot_be_renamed(registry, role_records):
    nc = role_records["national_commissioner"]
    with pytest.raises(ProtectedRole):
        await registry.update_role(nc.id, RoleUpdate(name="chief"))

    # other edits are still allowed
    updated = await registry.update_role(nc.id, RoleUpdate(display_name="Commissioner General"))
    assert updated.display_name == "Commissioner General"


# ── Delete ───────────────────────────────────────────────────────────
async def test_delete_role_in_use_is_rejected(registry, role_records):
    commander = role_records["station_commander"]
    with pytest.raises(RoleInUse):
        await registry.delete_role(commander.id)
    assert await registry.find_role("station_commander") == commander


async def test_protected_role_cannot_be_deleted_even_when_unassigned(role_records):
    registry = RoleRegistry(InMemoryRoleStore(role_records.values()))
    with pytest.raises(ProtectedRole):
        await registry.delete_role(role_records["national_commissioner"].id)
    assert await registry.find_role("national_commissioner") is not None


async def test_delete_unassigned_role(registry, store, role_records, user_ids):
    del store.user_roles[user_ids["admin_staff"]]

    await registry.delete_role(role_records["admin_staff"].id)

    assert await registry.find_role("admin_staff") is None
    assert len(await registry.list_roles()) == 4


async def test_protected_role_name_is_configurable(role_records):
    registry = RoleRegistry(
        InMemoryRoleStore(role_records.values()),
        protected_role_name="officer",
    )
    with pytest.raises(ProtectedRole):
        await registry.delete_role(role_records["officer"].id)


# ── Notifications ────────────────────────────────────────────────────
async def test_listeners_see_changes(registry, role_records):
    seen: list[tuple[RoleChange, str]] = []
    unsubscribe = registry.subscribe(lambda change, role: seen.append((change, role.name)))

    await registry.create_role(RoleCreate(name="analyst"))
    await registry.update_role(role_records["officer"].id, RoleUpdate(name="constable"))
    analyst = await registry.find_role("analyst")
    await registry.delete_role(analyst.id)

    assert seen == [
        (RoleChange.CREATED, "analyst"),
        (RoleChange.UPDATED, "officer"),
        (RoleChange.DELETED, "analyst"),
    ]

    unsubscribe()
    await registry.create_role(RoleCreate(name="clerk"))
    assert len(seen) == 3


async def test_rejected_mutation_does_not_notify(registry, role_records):
    seen: list[RoleRecord] = []
    registry.subscribe(lambda change, role: seen.append(role))
    with pytest.raises(RoleInUse):
        await registry.delete_role(role_records["officer"].id)
    assert seen == []


class SnapshotStore(InMemoryRoleStore):
    """Reads its roles at call time, then takes `delay` to answer."""

    async def fetch_roles(self):
        roles = list(self._roles.values())
        self.fetch_count += 1
        await asyncio.sleep(self.delay)
        return roles


async def test_refresh_ignores_fetch_started_before_it(role_records):
    store = SnapshotStore(role_records.values(), delay=0.05)
    registry = RoleRegistry(store)

    stale = asyncio.create_task(registry.list_roles())
    await asyncio.sleep(0.01)
    store.delay = 0
    await store.create_role(RoleCreate(name="analyst"))

    fresh = await registry.refresh()
    assert "analyst" in {role.name for role in fresh}

    assert len(await stale) == 5
    assert await registry.find_role("analyst") is not None
    assert store.fetch_count == 2


async def test_failing_listener_does_not_fail_the_mutation(registry, role_records):
    seen: list[str] = []

    def broken(change, role):
        raise RuntimeError("listener bug")

    registry.subscribe(broken)
    registry.subscribe(lambda change, role: seen.append(role.name))

    updated = await registry.update_role(
        role_records["officer"].id, RoleUpdate(display_name="Constable")
    )

    assert updated.display_name == "Constable"
    assert (await registry.find_role("officer")).display_name == "Constable"
    assert seen == ["officer"]
