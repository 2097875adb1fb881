"""
User model.

Design decisions:
- `role` holds the role NAME, not its id.  The name is the stable key
  the permission engine and the super-role bypass rely on; it is
  nullable until an administrator assigns one.
- Status is an ENUM (ACTIVE → DISABLED).
"""

import enum

from sqlalchemy import Enum, String
from sqlalchemy.orm import Mapped, mapped_column

from npims.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DISABLED = "DISABLED"


class User(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(256), unique=True, index=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(512), nullable=True)
    full_name: Mapped[str] = mapped_column(String(256), nullable=False)
    role: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    station: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, name="user_status"),
        default=UserStatus.ACTIVE,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"
