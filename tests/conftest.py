"""
Shared fixtures.

The database URL must point at a throwaway SQLite file BEFORE anything
under `npims` is imported: settings and the engine are built at import.
"""

import os
import tempfile
import uuid

_TEST_DB_DIR = tempfile.mkdtemp(prefix="npims-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DB_DIR}/npims.db"
os.environ["SUPER_ROLE_NAME"] = "national_commissioner"

import pytest  # noqa: E402

from npims.rbac.permission_seed import DEFAULT_ROLES  # noqa: E402
from npims.rbac.registry import RoleRegistry  # noqa: E402
from npims.rbac.service import PermissionService  # noqa: E402
from npims.rbac.types import CurrentUser, RoleRecord  # noqa: E402
from npims.services.auth_service import AuthSession  # noqa: E402
from npims.services.role_store import InMemoryRoleStore  # noqa: E402


@pytest.fixture
def role_records() -> dict[str, RoleRecord]:
    return {
        data["name"]: RoleRecord(id=uuid.uuid4(), **data)
        for data in DEFAULT_ROLES
    }


@pytest.fixture
def user_ids() -> dict[str, uuid.UUID]:
    """One user per default role, plus one without a role."""
    ids = {name: uuid.uuid4() for name in (d["name"] for d in DEFAULT_ROLES)}
    ids["unassigned"] = uuid.uuid4()
    return ids


@pytest.fixture
def store(role_records, user_ids) -> InMemoryRoleStore:
    user_roles = {
        user_id: (None if name == "unassigned" else name)
        for name, user_id in user_ids.items()
    }
    return InMemoryRoleStore(role_records.values(), user_roles)


@pytest.fixture
def registry(store) -> RoleRegistry:
    return RoleRegistry(store)


@pytest.fixture
def auth() -> AuthSession:
    return AuthSession()


@pytest.fixture
def service(registry, auth):
    svc = PermissionService(registry, auth)
    yield svc
    svc.close()


@pytest.fixture
def login(auth, user_ids):
    """Log the session in as the user holding `role_name`."""

    def _login(role_name: str) -> CurrentUser:
        role = None if role_name == "unassigned" else role_name
        user = CurrentUser(id=user_ids[role_name], role=role)
        auth.login(user)
        return user

    return _login
