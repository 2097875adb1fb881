"""
Single-slot cache of the active user's resolved permission set.

State machine:

    UNLOADED -> LOADING -> LOADED
    UNLOADED -> LOADING -> FAILED     (cache stays empty, next load may retry)
    LOADED   -> UNLOADED              (logout / role change)

Each successful load replaces the set wholesale with a single reference
swap, so readers never observe a half-updated set.  `clear()` bumps a
generation counter; a load that started before the clear carries the
old generation and its result is discarded.
"""

import enum
import uuid
from collections.abc import Iterable

from npims.rbac.permissions import has_permission


class CacheState(str, enum.Enum):
    UNLOADED = "UNLOADED"
    LOADING = "LOADING"
    LOADED = "LOADED"
    FAILED = "FAILED"


class UserPermissionCache:
    def __init__(self) -> None:
        self._permissions: frozenset[str] | None = None
        self._user_id: uuid.UUID | None = None
        self._role_name: str | None = None
        self._state = CacheState.UNLOADED
        self._generation = 0
        self._pending = 0
        self.last_error: BaseException | None = None

    # ── Introspection ────────────────────────────────────────────────
    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._permissions is not None

    @property
    def is_loading(self) -> bool:
        return self._pending > 0

    @property
    def permissions(self) -> frozenset[str]:
        return self._permissions or frozenset()

    @property
    def user_id(self) -> uuid.UUID | None:
        return self._user_id

    @property
    def role_name(self) -> str | None:
        return self._role_name

    # ── Lifecycle ────────────────────────────────────────────────────
    def begin_load(self) -> int:
        """Mark a load in flight; returns the token to complete it with."""
        self._pending += 1
        self._state = CacheState.LOADING
        return self._generation

    def complete(
        self,
        token: int,
        user_id: uuid.UUID,
        role_name: str,
        permissions: Iterable[str],
    ) -> bool:
        """Store a load result.  Returns False if the result was stale."""
        if token != self._generation:
            return False
        self._pending -= 1
        self._permissions = frozenset(permissions)
        self._user_id = user_id
        self._role_name = role_name
        self._state = CacheState.LOADED
        self.last_error = None
        return True

    def fail(self, token: int, error: BaseException) -> None:
        if token != self._generation:
            return
        self._pending -= 1
        self._permissions = None
        self._user_id = None
        self._role_name = None
        self._state = CacheState.FAILED
        self.last_error = error

    def clear(self) -> None:
        self._generation += 1
        self._pending = 0
        self._permissions = None
        self._user_id = None
        self._role_name = None
        self._state = CacheState.UNLOADED
        self.last_error = None

    # ── Query ────────────────────────────────────────────────────────
    def has_permission(self, candidate: str) -> bool:
        """Deny (never raise) while nothing is cached."""
        return has_permission(self._permissions, candidate)
