"""
Permission catalog & console navigation.

The catalog lists every permission string an administrator can grant,
module by module: the four standard actions plus a few module-specific
ones.  It feeds the role editor; the evaluator never consults it, so a
role may still hold strings that are not listed here.

The navigation tree is the console's sidebar.  Each entry names the
permission it needs; `visible_navigation` hides what the session user
cannot open and shows everything to the distinguished super-role.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from npims.core.config import settings

if TYPE_CHECKING:
    from npims.rbac.service import PermissionService

STANDARD_ACTIONS: tuple[str, ...] = ("read", "create", "update", "delete")

EXTRA_ACTIONS: dict[str, tuple[str, ...]] = {
    "resources": ("request", "approve"),
    "reports": ("export",),
    "admin": ("users", "roles", "settings"),
}

MODULES: tuple[str, ...] = (
    "personnel",
    "cases",
    "resources",
    "intelligence",
    "reports",
    "incidents",
    "wanted",
    "approvals",
    "analytics",
    "communications",
    "admin",
)


def module_permissions(module: str) -> list[str]:
    actions = STANDARD_ACTIONS + EXTRA_ACTIONS.get(module, ())
    return [f"{module}:{action}" for action in actions]


def permission_catalog() -> dict[str, list[str]]:
    return {module: module_permissions(module) for module in MODULES}


@dataclass(frozen=True)
class NavigationItem:
    key: str
    label: str
    path: str
    # None means always visible
    permission: str | None = None
    children: tuple["NavigationItem", ...] = field(default_factory=tuple)


NAVIGATION: tuple[NavigationItem, ...] = (
    NavigationItem("dashboard", "Dashboard", "/dashboard"),
    NavigationItem("personnel", "Personnel", "/personnel", "personnel:read"),
    NavigationItem("cases", "Cases", "/cases", "cases:read"),
    NavigationItem("resources", "Resources", "/resources", "resources:read"),
    NavigationItem("reports", "Reports", "/reports", "reports:read"),
    NavigationItem("analytics", "Analytics", "/analytics", "analytics:read"),
    NavigationItem("incidents", "Incidents", "/incidents", "incidents:read"),
    NavigationItem("intelligence", "Intelligence", "/intelligence", "intelligence:read"),
    NavigationItem("wanted", "Wanted Persons", "/wanted", "wanted:read"),
    NavigationItem("communications", "Communications", "/communications", "communications:read"),
    NavigationItem("approvals", "Approvals", "/approvals", "approvals:read"),
    NavigationItem(
        "admin",
        "Administration",
        "/admin",
        "admin:read",
        children=(
            NavigationItem("roles", "Roles & Permissions", "/admin/roles", "admin:roles"),
            NavigationItem("users", "Users", "/admin/users", "admin:users"),
            NavigationItem("settings", "Settings", "/admin/settings", "admin:settings"),
        ),
    ),
)


def visible_navigation(
    service: "PermissionService",
    items: tuple[NavigationItem, ...] = NAVIGATION,
) -> list[NavigationItem]:
    """Filter the navigation tree down to what the session user may open."""
    if service.has_role(settings.SUPER_ROLE_NAME):
        return list(items)

    visible: list[NavigationItem] = []
    for item in items:
        if item.permission is not None and not service.can_do(item.permission):
            continue
        children = tuple(
            child for child in item.children
            if child.permission is None or service.can_do(child.permission)
        )
        visible.append(
            NavigationItem(item.key, item.label, item.path, item.permission, children)
        )
    return visible
