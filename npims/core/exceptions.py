"""
Permission-engine error taxonomy.

Every error carries a human-readable message and the HTTP status the
admin API answers with.  Evaluation paths never let these escape: they
resolve to a deny.  Only administrative mutations surface them to the
caller.
"""

from fastapi import status


class PermissionEngineError(Exception):
    """Base exception for the permission engine."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class UserNotFound(PermissionEngineError):
    """No authenticated user context (or an unknown user id)."""

    status_code = status.HTTP_404_NOT_FOUND


class RoleNotFound(PermissionEngineError):
    """A role name or id has no matching registry entry."""

    status_code = status.HTTP_404_NOT_FOUND


class RoleInUse(PermissionEngineError):
    """Deleting a role that one or more users still reference."""

    status_code = status.HTTP_409_CONFLICT


class ProtectedRole(PermissionEngineError):
    """Deleting or renaming the distinguished super-role."""

    status_code = status.HTTP_403_FORBIDDEN


class RoleAlreadyExists(PermissionEngineError):
    status_code = status.HTTP_409_CONFLICT


class InvalidPermissionFormat(PermissionEngineError, ValueError):
    """Malformed permission string (empty, >3 segments, empty segment...)."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidRoleData(PermissionEngineError):
    """A role store returned records that break registry invariants."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
