"""
Permission evaluator — pure decision functions, no I/O.

Permission strings are colon-separated capability tokens:

    module                    e.g. "cases"
    module:action             e.g. "cases:update"
    module:submodule:action   e.g. "personnel:read:self"

`*` alone grants everything; `module:*` grants every action and
submodule under that module.  Matching is plain set membership, so the
order of the checks below never changes the outcome.
"""

import logging
import re
from collections.abc import Collection
from typing import TYPE_CHECKING

from npims.core.config import settings
from npims.core.exceptions import InvalidPermissionFormat

if TYPE_CHECKING:
    from npims.rbac.types import RoleRecord

logger = logging.getLogger("rbac")

WILDCARD = "*"
SEPARATOR = ":"
MAX_SEGMENTS = 3
DEFAULT_ACTION = "read"

_SEGMENT_RE = re.compile(r"^[\w-]+$")


def parse_permission(value: str) -> tuple[str, ...]:
    """Split a permission string into segments, rejecting malformed input."""
    if not isinstance(value, str) or not value:
        raise InvalidPermissionFormat("Permission must be a non-empty string")
    if value == WILDCARD:
        return (WILDCARD,)

    segments = tuple(value.split(SEPARATOR))
    if len(segments) > MAX_SEGMENTS:
        raise InvalidPermissionFormat(
            f"Permission {value!r} has more than {MAX_SEGMENTS} segments"
        )
    for index, segment in enumerate(segments):
        if segment == WILDCARD and index == len(segments) - 1 and index > 0:
            continue
        if not segment:
            raise InvalidPermissionFormat(f"Permission {value!r} has an empty segment")
        if not _SEGMENT_RE.match(segment):
            raise InvalidPermissionFormat(f"Permission {value!r} has an invalid segment {segment!r}")
    return segments


def validate_permission(value: str) -> str:
    parse_permission(value)
    return value


def module_wildcard(candidate: str) -> str:
    """`cases:update` -> `cases:*`."""
    return parse_permission(candidate)[0] + SEPARATOR + WILDCARD


def has_permission(permission_set: Collection[str] | None, candidate: str) -> bool:
    """
    Decide whether `permission_set` grants `candidate`.

    Fails closed: a missing set or a malformed candidate is a deny,
    never an exception.
    """
    if not permission_set:
        return False
    try:
        wildcard = module_wildcard(candidate)
    except InvalidPermissionFormat as exc:
        logger.warning("Denying malformed permission check: %s", exc.message)
        return False

    return (
        WILDCARD in permission_set
        or candidate in permission_set
        or wildcard in permission_set
    )


def build_permission(
    module: str,
    submodule: str | None = None,
    action: str | None = None,
) -> str:
    """
    Build the candidate string for a module/submodule/action check.

    Omitting both qualifiers asks for `module:read`, NOT for the bare
    module.  Callers that pass only a module rely on this.
    """
    if not submodule and not action:
        candidate = f"{module}{SEPARATOR}{DEFAULT_ACTION}"
    elif not action:
        candidate = f"{module}{SEPARATOR}{submodule}"
    elif not submodule:
        candidate = f"{module}{SEPARATOR}{action}"
    else:
        candidate = f"{module}{SEPARATOR}{submodule}{SEPARATOR}{action}"
    return validate_permission(candidate)


def is_super_role_name(role_name: str | None) -> bool:
    return role_name is not None and role_name == settings.SUPER_ROLE_NAME


def check_permission(
    role: "RoleRecord | None",
    module: str,
    submodule: str | None = None,
    action: str | None = None,
) -> bool:
    """Role-level check; the distinguished super-role bypasses everything."""
    if role is None:
        return False
    if is_super_role_name(role.name):
        return True
    try:
        candidate = build_permission(module, submodule, action)
    except InvalidPermissionFormat as exc:
        logger.warning("Denying malformed permission check for role %s: %s", role.name, exc.message)
        return False
    return has_permission(role.permissions, candidate)
