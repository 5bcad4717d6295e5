# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    INVENTORY_PERMISSIONS,
    LEDGER_PERMISSIONS,
    MEMBER_PERMISSIONS,
    ORGANIZATION_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS, ASSIGNABLE_ROLES
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    role_has_permission,
    can_assign_role,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "INVENTORY_PERMISSIONS",
    "LEDGER_PERMISSIONS",
    "MEMBER_PERMISSIONS",
    "ORGANIZATION_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ASSIGNABLE_ROLES",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "role_has_permission",
    "can_assign_role",
]
