"""
Authentication service.

Handles:
- Login with email + password (bcrypt) → JWT access token
- Loading the authenticated user behind a token
- `AuthSession`: the per-session auth context the permission engine
  reads (`get_current_user`) and listens to (login / logout / role
  change events)

All business logic lives here — controllers call service functions
and return the result.
"""

import enum
import logging
import uuid
from collections.abc import Callable

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from npims.core.security import create_access_token, verify_password
from npims.models.user import User, UserStatus
from npims.rbac.types import CurrentUser

logger = logging.getLogger(__name__)


# ── Session auth context ─────────────────────────────────────────────

class AuthEvent(str, enum.Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    ROLE_CHANGED = "role_changed"


AuthListener = Callable[[AuthEvent, CurrentUser | None], None]


class AuthSession:
    """Who is logged in for one session, plus change notifications."""

    def __init__(self, user: CurrentUser | None = None):
        self._user = user
        self._listeners: list[AuthListener] = []

    def get_current_user(self) -> CurrentUser | None:
        return self._user

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None and self._user.is_authenticated

    def login(self, user: CurrentUser) -> None:
        self._user = user
        self._emit(AuthEvent.LOGIN)

    def logout(self) -> None:
        self._user = None
        self._emit(AuthEvent.LOGOUT)

    def change_role(self, role_name: str | None) -> None:
        if self._user is None:
            return
        if role_name == self._user.role:
            return
        self._user = CurrentUser(
            id=self._user.id,
            role=role_name,
            is_authenticated=self._user.is_authenticated,
        )
        self._emit(AuthEvent.ROLE_CHANGED)

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, event: AuthEvent) -> None:
        for listener in list(self._listeners):
            listener(event, self._user)


def session_for_user(user: User) -> AuthSession:
    return AuthSession(CurrentUser(id=user.id, role=user.role))


# ── Login ────────────────────────────────────────────────────────────

async def authenticate_user(email: str, password: str, db: AsyncSession) -> dict:
    """Validate credentials and return an access token."""
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(password, user.password_hash or ""):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if user.status == UserStatus.DISABLED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is disabled",
        )

    access_token = create_access_token({"sub": str(user.id), "role": user.role})
    logger.info("User %s logged in", user.id)
    return {
        "access_token": access_token,
        "token_type": "bearer",
        "user_id": str(user.id),
        "role": user.role,
    }


async def load_active_user(user_id: str, db: AsyncSession) -> User:
    """Load the user behind a token; disabled users never pass."""
    try:
        key = uuid.UUID(user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user = await db.get(User, key)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if user.status == UserStatus.DISABLED:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account disabled")
    return user
