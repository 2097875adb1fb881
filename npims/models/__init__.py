"""
Models package — import every model so SQLAlchemy's Base.metadata
knows about all tables (critical for `create_all` / Alembic).
"""

from npims.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from npims.models.role import Role
from npims.models.user import User, UserStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Role",
    "User",
    "UserStatus",
]
