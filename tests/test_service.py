import asyncio
import uuid

import pytest

from npims.core.exceptions import RoleNotFound, UserNotFound
from npims.rbac.cache import CacheState
from npims.rbac.registry import RoleRegistry
from npims.rbac.service import PermissionService
from npims.rbac.types import CurrentUser, RoleRecord
from npims.schemas import RoleUpdate
from npims.services.auth_service import AuthSession
from npims.services.role_store import InMemoryRoleStore


# ── Loading ──────────────────────────────────────────────────────────
async def test_denies_before_load(service, login):
    login("national_commissioner")
    assert not service.is_loaded()
    assert not service.can_do("cases:read")


async def test_load_returns_role_permissions(service, login, role_records):
    user = login("station_commander")

    perms = await service.load_user_permissions(user.id)

    assert perms == sorted(role_records["station_commander"].permissions)
    assert service.is_loaded()
    assert service.cache.state is CacheState.LOADED
    assert service.permissions == role_records["station_commander"].permissions


async def test_load_is_idempotent(service, login):
    user = login("officer")
    first = await service.load_user_permissions(user.id)
    second = await service.load_user_permissions(user.id)
    assert first == second
    assert service.is_loaded()


async def test_load_without_user(service):
    with pytest.raises(UserNotFound):
        await service.load_user_permissions(uuid.uuid4())
    assert service.cache.state is CacheState.FAILED
    assert not service.can_do("cases:read")


async def test_load_for_another_user(service, login):
    login("officer")
    with pytest.raises(UserNotFound):
        await service.load_user_permissions(uuid.uuid4())


async def test_load_with_dangling_role(service, auth):
    user = CurrentUser(id=uuid.uuid4(), role="ghost")
    auth.login(user)

    with pytest.raises(RoleNotFound):
        await service.load_user_permissions(user.id)

    assert service.cache.state is CacheState.FAILED
    assert isinstance(service.cache.last_error, RoleNotFound)
    assert not service.can("cases")


async def test_load_without_role(service, login, user_ids):
    login("unassigned")
    with pytest.raises(RoleNotFound):
        await service.load_user_permissions(user_ids["unassigned"])


async def test_ensure_loaded_swallows_engine_errors(service, auth):
    assert not await service.ensure_loaded()

    auth.login(CurrentUser(id=uuid.uuid4(), role="ghost"))
    assert not await service.ensure_loaded()

    auth.login(CurrentUser(id=uuid.uuid4(), role="officer"))
    assert await service.ensure_loaded()
    assert service.can_do("cases:create")


async def test_concurrent_loads_settle(role_records, user_ids):
    store = InMemoryRoleStore(role_records.values(), delay=0.02)
    auth = AuthSession(CurrentUser(id=user_ids["officer"], role="officer"))
    service = PermissionService(RoleRegistry(store), auth)

    first, second = await asyncio.gather(
        service.load_user_permissions(user_ids["officer"]),
        service.load_user_permissions(user_ids["officer"]),
    )

    assert first == second
    assert store.fetch_count == 1
    assert service.is_loaded()
    assert not service.is_loading()


async def test_is_loading_while_in_flight(role_records, user_ids):
    store = InMemoryRoleStore(role_records.values(), delay=0.02)
    auth = AuthSession(CurrentUser(id=user_ids["officer"], role="officer"))
    service = PermissionService(RoleRegistry(store), auth)

    task = asyncio.create_task(service.load_user_permissions(user_ids["officer"]))
    await asyncio.sleep(0)
    assert service.is_loading()

    await task
    assert not service.is_loading()


async def test_logout_discards_in_flight_load(role_records, user_ids):
    store = InMemoryRoleStore(role_records.values(), delay=0.02)
    auth = AuthSession(CurrentUser(id=user_ids["officer"], role="officer"))
    service = PermissionService(RoleRegistry(store), auth)

    task = asyncio.create_task(service.load_user_permissions(user_ids["officer"]))
    await asyncio.sleep(0)
    auth.logout()
    await task

    assert not service.is_loaded()
    assert not service.can_do("cases:read")


# ── Queries ──────────────────────────────────────────────────────────
async def test_station_commander_checks(service, login):
    user = login("station_commander")
    await service.load_user_permissions(user.id)

    assert service.can("cases", None, "update")
    assert not service.can("cases", None, "delete")
    assert not service.can("admin", None, "users")
    assert service.can("cases") == service.can("cases", None, "read")


async def test_provincial_commissioner_resources(service, login):
    user = login("provincial_commissioner")
    await service.load_user_permissions(user.id)

    assert service.can_do("resources:approve")
    assert not service.can_do("resources:request")


async def test_officer_self_scoped_permissions(service, login):
    user = login("officer")
    await service.load_user_permissions(user.id)

    assert service.can("personnel", "read", "self")
    assert not service.can("personnel")


async def test_super_role_identity_bypass(role_records, user_ids):
    # stored permission list is empty, the name alone authorizes checks
    roles = [r for r in role_records.values() if r.name != "national_commissioner"]
    roles.append(RoleRecord(id=uuid.uuid4(), name="national_commissioner", permissions=[]))
    auth = AuthSession(CurrentUser(id=user_ids["national_commissioner"], role="national_commissioner"))
    service = PermissionService(RoleRegistry(InMemoryRoleStore(roles)), auth)

    await service.load_user_permissions(user_ids["national_commissioner"])

    assert service.can("admin", None, "roles")
    assert service.can("intelligence", None, "delete")
    # raw string checks consult the cached set only
    assert not service.can_do("admin:roles")


async def test_malformed_query_denies(service, login):
    user = login("national_commissioner")
    await service.load_user_permissions(user.id)
    assert not service.can_do("cases::read")
    assert not service.can_do("a:b:c:d")


async def test_has_role(service, login):
    assert not service.has_role("officer")
    login("officer")
    assert service.has_role("officer")
    assert not service.has_role("station_commander")
    assert service.has_role(["station_commander", "officer"])
    assert not service.has_role(("admin_staff",))


# ── Invalidation ─────────────────────────────────────────────────────
async def test_logout_clears_cache(service, login, auth):
    user = login("officer")
    await service.load_user_permissions(user.id)

    auth.logout()

    assert not service.is_loaded()
    assert not service.can_do("cases:read")
    assert not service.has_role("officer")


async def test_login_as_another_user_clears_cache(service, login):
    officer = login("officer")
    await service.load_user_permissions(officer.id)

    commander = login("station_commander")
    assert not service.is_loaded()

    await service.load_user_permissions(commander.id)
    assert service.can("cases", None, "update")


async def test_role_change_reloads_new_permissions(service, login, auth):
    user = login("officer")
    await service.load_user_permissions(user.id)
    assert not service.can("cases", None, "update")

    auth.change_role("station_commander")
    assert not service.is_loaded()

    assert await service.ensure_loaded()
    assert service.can("cases", None, "update")


async def test_editing_cached_role_clears_cache(service, login, registry, role_records):
    user = login("officer")
    await service.load_user_permissions(user.id)

    await registry.update_role(
        role_records["officer"].id, RoleUpdate(permissions=["cases:read", "cases:delete"])
    )
    assert not service.is_loaded()

    await service.ensure_loaded()
    assert service.can_do("cases:delete")


async def test_editing_other_role_keeps_cache(service, login, registry, role_records):
    user = login("officer")
    await service.load_user_permissions(user.id)

    await registry.update_role(role_records["admin_staff"].id, RoleUpdate(display_name="Staff"))
    assert service.is_loaded()


async def test_invalidate(service, login):
    user = login("officer")
    await service.load_user_permissions(user.id)
    service.invalidate()
    assert not service.is_loaded()


async def test_close_detaches_listeners(service, login, auth):
    user = login("officer")
    await service.load_user_permissions(user.id)
    service.close()

    auth.logout()
    assert service.is_loaded()


async def test_cancelled_load_settles_the_cache(role_records, user_ids):
    store = InMemoryRoleStore(role_records.values(), delay=0.05)
    auth = AuthSession(CurrentUser(id=user_ids["officer"], role="officer"))
    service = PermissionService(RoleRegistry(store), auth)

    task = asyncio.create_task(service.load_user_permissions(user_ids["officer"]))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert not service.is_loading()
    assert not service.is_loaded()
    assert service.cache.state is CacheState.FAILED
    assert not service.can_do("cases:read")

    # the next load goes through normally
    await service.load_user_permissions(user_ids["officer"])
    assert service.can_do("cases:read")
    assert not service.is_loading()


async def test_submodule_position_check(service, login):
    user = login("station_commander")
    await service.load_user_permissions(user.id)

    assert service.can("cases", "update")
    assert not service.can("cases", "delete")
    assert not service.can("admin", "users")
