# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "VIEW_INVENTORY",
        "View Inventory",
        "View items, stock levels and ledger transactions",
        PermissionCategory.INVENTORY,
    ),
    (
        "CREATE_ITEM",
        "Create Item",
        "Add raw materials and finished goods to the catalog",
        PermissionCategory.INVENTORY,
    ),
    (
        "UPDATE_ITEM",
        "Update Item",
        "Edit item attributes (name, unit, reorder point, cost, status)",
        PermissionCategory.INVENTORY,
    ),
    (
        "DELETE_ITEM",
        "Delete or Retire Item",
        "Discontinue items, or delete items that have no ledger history",
        PermissionCategory.INVENTORY,
    ),
]


# -- LEDGER --

LEDGER_PERMISSIONS = [
    (
        "APPEND_TRANSACTION",
        "Append Transaction",
        "Record receipts, consumption, production and adjustments",
        PermissionCategory.LEDGER,
    ),
    (
        "VOID_TRANSACTION",
        "Void Transaction",
        "Reverse a transaction with a compensating entry",
        PermissionCategory.LEDGER,
    ),
    (
        "RECOMPUTE_STOCK",
        "Recompute Stock",
        "Rebuild an item's cached stock from the ledger",
        PermissionCategory.LEDGER,
    ),
]


# -- MEMBERS --

MEMBER_PERMISSIONS = [
    (
        "VIEW_MEMBERS",
        "View Members",
        "List the organization's members and their roles",
        PermissionCategory.MEMBERS,
    ),
    (
        "INVITE_MEMBERS",
        "Invite Members",
        "Invite users into the organization",
        PermissionCategory.MEMBERS,
    ),
    (
        "MANAGE_MEMBERS",
        "Manage Members",
        "Change roles and remove members",
        PermissionCategory.MEMBERS,
    ),
]


# -- ORGANIZATION --

ORGANIZATION_PERMISSIONS = [
    (
        "MANAGE_ORGANIZATION",
        "Manage Organization",
        "Edit organization name, slug, settings and status",
        PermissionCategory.ORGANIZATION,
    ),
]


PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + LEDGER_PERMISSIONS
    + MEMBER_PERMISSIONS
    + ORGANIZATION_PERMISSIONS
)
