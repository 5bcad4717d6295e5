from .tenancy import Organization, Membership, ORGANIZATION_STATUSES, MEMBER_ROLES
from .inventory import Item, InventoryTransaction, ITEM_TYPES, ITEM_STATUSES, TRANSACTION_TYPES
from .security import AuditEvent

__all__ = [
    'Organization', 'Membership', 'ORGANIZATION_STATUSES', 'MEMBER_ROLES',
    'Item', 'InventoryTransaction', 'ITEM_TYPES', 'ITEM_STATUSES', 'TRANSACTION_TYPES',
    'AuditEvent',
]
