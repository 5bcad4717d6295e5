# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for grouping and display."""
    INVENTORY = "INVENTORY"
    LEDGER = "LEDGER"
    MEMBERS = "MEMBERS"
    ORGANIZATION = "ORGANIZATION"
