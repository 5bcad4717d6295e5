# Overview: Role -> permission policy table.

_OPERATOR = {
    "VIEW_INVENTORY",
    "CREATE_ITEM",
    "APPEND_TRANSACTION",
    "VIEW_MEMBERS",
}

_MANAGER = _OPERATOR | {
    "UPDATE_ITEM",
    "VOID_TRANSACTION",
    "RECOMPUTE_STOCK",
    "INVITE_MEMBERS",
}

_ADMIN = _MANAGER | {
    "DELETE_ITEM",
    "MANAGE_MEMBERS",
    "MANAGE_ORGANIZATION",
}

DEFAULT_ROLE_PERMISSIONS = {
    "operator": frozenset(_OPERATOR),
    "manager": frozenset(_MANAGER),
    "admin": frozenset(_ADMIN),
}

# Roles a given role may hand out when inviting
ASSIGNABLE_ROLES = {
    "admin": frozenset({"admin", "manager", "operator"}),
    "manager": frozenset({"operator"}),
    "operator": frozenset(),
}
