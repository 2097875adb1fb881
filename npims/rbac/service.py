"""
Permission service — the query surface consumed by route guards and UI.

One instance per client session, built once and handed to every
consumer.  It ties together:

- the process-wide RoleRegistry (role name → permission set),
- a UserPermissionCache (the active user's resolved set),
- the session's auth context (who is logged in, with which role).

Checks are synchronous and never raise: anything that goes wrong on the
evaluation path resolves to a deny.  Only `load_user_permissions`
raises, so callers that care can tell "no user" from "dangling role".
"""

import logging
import uuid
from collections.abc import Callable, Iterable
from typing import Protocol

from npims.core.exceptions import PermissionEngineError, RoleNotFound, UserNotFound
from npims.rbac import permissions as evaluator
from npims.rbac.cache import UserPermissionCache
from npims.rbac.registry import RoleChange, RoleRegistry
from npims.rbac.types import CurrentUser, RoleRecord
from npims.services.auth_service import AuthEvent

logger = logging.getLogger("rbac")


class AuthContext(Protocol):
    def get_current_user(self) -> CurrentUser | None: ...


class PermissionService:
    def __init__(
        self,
        registry: RoleRegistry,
        auth: AuthContext,
        *,
        cache: UserPermissionCache | None = None,
    ):
        self.registry = registry
        self.auth = auth
        self.cache = cache or UserPermissionCache()

        self._unsubscribers: list[Callable[[], None]] = [
            registry.subscribe(self._on_role_change),
        ]
        subscribe = getattr(auth, "subscribe", None)
        if subscribe is not None:
            self._unsubscribers.append(subscribe(self._on_auth_event))

    # ── Loading ──────────────────────────────────────────────────────
    async def load_user_permissions(self, user_id: uuid.UUID) -> list[str]:
        """
        Resolve the user's role through the registry and cache its
        permission set, replacing whatever was cached before.
        """
        token = self.cache.begin_load()
        try:
            user = self.auth.get_current_user()
            if user is None or not user.is_authenticated:
                raise UserNotFound("No authenticated user")
            if user.id != user_id:
                raise UserNotFound(f"User {user_id} is not the session user")
            if not user.role:
                raise RoleNotFound(f"User {user.id} has no role assigned")

            role = await self.registry.find_role(user.role)
            if role is None:
                raise RoleNotFound(f"Role '{user.role}' not found")
        except RoleNotFound as exc:
            logger.warning("Permission load failed for user %s: %s", user_id, exc.message)
            self.cache.fail(token, exc)
            raise
        except BaseException as exc:
            # cancellation too: every begun load must settle its token
            self.cache.fail(token, exc)
            raise

        permissions = sorted(role.permissions)
        self.cache.complete(token, user.id, role.name, permissions)
        return permissions

    async def ensure_loaded(self) -> bool:
        """Load for the session user if needed.  Returns whether loaded."""
        if self.cache.is_loaded:
            return True
        user = self.auth.get_current_user()
        if user is None or not user.is_authenticated:
            return False
        try:
            await self.load_user_permissions(user.id)
        except PermissionEngineError as exc:
            logger.debug("Treating user %s as unauthorized: %s", user.id, exc.message)
            return False
        return True

    def invalidate(self) -> None:
        self.cache.clear()

    # ── Queries ──────────────────────────────────────────────────────
    def has_permission(self, candidate: str) -> bool:
        return self.cache.has_permission(candidate)

    def check_permission(
        self,
        module: str,
        submodule: str | None = None,
        action: str | None = None,
    ) -> bool:
        user = self.auth.get_current_user()
        if user is not None and user.is_authenticated and evaluator.is_super_role_name(user.role):
            return True
        try:
            candidate = evaluator.build_permission(module, submodule, action)
        except PermissionEngineError as exc:
            logger.warning("Denying malformed permission check: %s", exc.message)
            return False
        return self.has_permission(candidate)

    def can(self, module: str, submodule: str | None = None, action: str | None = None) -> bool:
        return self.check_permission(module, submodule, action)

    def can_do(self, permission: str) -> bool:
        return self.has_permission(permission)

    def has_role(self, role_name: str | Iterable[str]) -> bool:
        """Identity check against the session user's role name."""
        user = self.auth.get_current_user()
        if user is None or not user.role:
            return False
        if isinstance(role_name, str):
            return user.role == role_name
        return user.role in set(role_name)

    def is_loading(self) -> bool:
        return self.cache.is_loading

    def is_loaded(self) -> bool:
        return self.cache.is_loaded

    @property
    def permissions(self) -> frozenset[str]:
        return self.cache.permissions

    # ── Event handling ───────────────────────────────────────────────
    def _on_auth_event(self, event: AuthEvent, user: CurrentUser | None) -> None:
        # a fresh login, a logout and a role change all make the set stale
        logger.debug("Auth event %s: clearing permission cache", event.value)
        self.cache.clear()

    def _on_role_change(self, change: RoleChange, role: RoleRecord) -> None:
        if self.cache.role_name == role.name:
            logger.debug("Role %s %s: clearing permission cache", role.name, change.value)
            self.cache.clear()

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
