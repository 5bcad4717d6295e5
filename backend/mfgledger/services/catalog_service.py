# Overview: Item catalog; lifecycle of trackable items within a tenant.

"""
Item Catalog

MULTI-TENANT: every item belongs to one organization; SKUs are unique per
organization, not globally.

Lifecycle:
- Any member may create items. An initial stock is recorded as an
  other_adjustment ledger row in the same commit as the item itself.
- Managers and admins may edit attributes. current_stock is derived from
  the ledger and is never writable here; sku is fixed after creation.
- Admins retire items (status='discontinued', terminal for appends) or
  delete them physically, which is only allowed while no ledger row
  references the item.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Item, InventoryTransaction, ITEM_TYPES, ITEM_STATUSES
from ..time_utils import to_utc_z
from ..validation import (
    ModelValidationPolicy,
    normalize_sku,
    optional_text,
    parse_decimal,
    parse_non_negative,
    validate_payload,
)
from .concurrency import run_with_retry
from .ledger_service import _AppendRequest, _append_locked, _parse_transaction_date
from .permission_service import require_permission, require_same_tenant
from .stock_service import is_low_stock, lock_item
from .tenant_service import ActorContext, resolve_actor


SORT_FIELDS = {
    "name": Item.name,
    "sku": Item.sku,
    "category": Item.category,
    "current_stock": Item.current_stock,
    "unit_cost": Item.unit_cost,
    "created_at": Item.created_at,
    "updated_at": Item.updated_at,
}

ITEM_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "category", "unit", "reorder_point", "unit_cost", "status", "metadata"},
    aliases={"metadata": "attributes"},
)


@dataclass(frozen=True)
class ItemFilters:
    item_type: str | None = None
    status: str | None = None
    category: str | None = None
    search: str | None = None
    low_stock_only: bool = False
    sort_by: str = "name"
    sort_order: str = "asc"


def _required_text(value, field: str, max_length: int) -> str:
    text = optional_text(value, field, max_length)
    if text is None:
        raise ValidationError(f"{field} is required")
    return text


def _check_choice(value, field: str, choices) -> str:
    if value not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return value


def _check_metadata(value) -> dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError("metadata must be an object")
    return dict(value)


def _get_item_for(actor: ActorContext, item_id) -> Item:
    item = db.session.get(Item, item_id) if item_id is not None else None
    if item is None:
        raise NotFoundError(f"Item {item_id} not found")
    require_same_tenant(actor, item.org_id, entity="item", entity_id=item_id)
    return item


def create_item(
    *,
    org_id: int,
    actor_id: str,
    sku: str,
    name: str,
    item_type: str,
    unit: str,
    description: str | None = None,
    category: str | None = None,
    reorder_point=None,
    unit_cost=None,
    status: str = "active",
    metadata: dict | None = None,
    initial_stock=None,
    initial_note: str | None = None,
) -> Item:
    actor = resolve_actor(org_id, actor_id)
    require_permission(actor, "CREATE_ITEM")

    sku = normalize_sku(sku)
    name = _required_text(name, "name", 255)
    unit = _required_text(unit, "unit", 50)
    item_type = _check_choice(item_type, "item_type", ITEM_TYPES)
    status = _check_choice(status or "active", "status", ITEM_STATUSES)
    reorder_point = parse_non_negative(reorder_point, "reorder_point")
    unit_cost = parse_non_negative(unit_cost, "unit_cost")
    attributes = _check_metadata(metadata)

    opening = None
    if initial_stock is not None:
        qty = parse_decimal(initial_stock, "initial_stock")
        if qty < 0:
            raise ValidationError("initial_stock must be >= 0")
        if qty > 0:
            if status == "discontinued":
                raise ValidationError("cannot record initial stock on a discontinued item")
            opening = _AppendRequest(
                transaction_type="other_adjustment",
                quantity=qty,
                unit_cost=unit_cost,
                reference_type=None,
                reference_id=None,
                note=optional_text(initial_note, "initial_note", 500) or "Initial stock",
                lot_number=None,
                transaction_date=_parse_transaction_date(None),
            )

    exists = db.session.query(Item.id).filter_by(org_id=actor.org_id, sku=sku).first()
    if exists is not None:
        raise ConflictError(f"SKU {sku} already exists")

    item = Item(
        org_id=actor.org_id,
        sku=sku,
        name=name,
        description=optional_text(description, "description", 1000),
        item_type=item_type,
        category=optional_text(category, "category", 100),
        unit=unit,
        reorder_point=reorder_point,
        unit_cost=unit_cost,
        current_stock=Decimal("0"),
        status=status,
        attributes=attributes,
        created_by=actor.actor_id,
    )
    db.session.add(item)
    try:
        db.session.flush()
        if opening is not None:
            _append_locked(item, opening, created_by=actor.actor_id)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"SKU {sku} already exists") from exc
    except Exception:
        db.session.rollback()
        raise
    return item


def get_item(org_id: int, item_id: int, actor_id: str) -> Item:
    """Item in the caller's tenant; NotFoundError or TenantMismatchError otherwise."""
    actor = resolve_actor(org_id, actor_id)
    item = _get_item_for(actor, item_id)
    require_permission(actor, "VIEW_INVENTORY")
    return item


def update_item(org_id: int, item_id: int, actor_id: str, changes: dict) -> Item:
    actor = resolve_actor(org_id, actor_id)
    item = _get_item_for(actor, item_id)
    require_permission(actor, "UPDATE_ITEM")

    if not isinstance(changes, dict):
        raise ValidationError("changes must be an object")
    if "current_stock" in changes:
        raise ValidationError("current_stock is derived from the ledger and cannot be set")
    if "sku" in changes:
        raise ValidationError("sku cannot be changed")
    patch = validate_payload(model=Item, payload=changes, policy=ITEM_UPDATE_POLICY, partial=True)
    for field in ("reorder_point", "unit_cost"):
        if patch.get(field) is not None and patch[field] < 0:
            raise ValidationError(f"{field} must be >= 0")
    if "status" in patch:
        _check_choice(patch["status"], "status", ITEM_STATUSES)
        # Discontinuing is retirement; same gate as retire_item
        if patch["status"] == "discontinued":
            require_permission(actor, "DELETE_ITEM")
    for field in ("description", "category"):
        if field in patch and not patch[field]:
            patch[field] = None
    if "metadata" in patch:
        patch["attributes"] = patch.pop("metadata")

    def _op():
        locked = lock_item(item.id)
        if locked.status == "discontinued" and patch.get("status", "discontinued") != "discontinued":
            raise ConflictError("Discontinued items cannot be reactivated")
        for key, value in patch.items():
            setattr(locked, key, value)
        locked.updated_by = actor.actor_id
        db.session.commit()
        return locked

    return run_with_retry(_op)


def retire_item(org_id: int, item_id: int, actor_id: str) -> Item:
    """Terminal status change; ledger history is kept."""
    actor = resolve_actor(org_id, actor_id)
    item = _get_item_for(actor, item_id)
    require_permission(actor, "DELETE_ITEM")

    def _op():
        locked = lock_item(item.id)
        locked.status = "discontinued"
        locked.updated_by = actor.actor_id
        db.session.commit()
        return locked

    return run_with_retry(_op)


def delete_item(org_id: int, item_id: int, actor_id: str) -> None:
    """Physical delete, allowed only while no ledger row references the item."""
    actor = resolve_actor(org_id, actor_id)
    item = _get_item_for(actor, item_id)
    require_permission(actor, "DELETE_ITEM")

    def _op():
        locked = lock_item(item.id)
        referenced = (
            db.session.query(InventoryTransaction.id)
            .filter_by(item_id=locked.id)
            .first()
        )
        if referenced is not None:
            raise ConflictError("Item has ledger history; retire it instead of deleting")
        db.session.delete(locked)
        db.session.commit()

    run_with_retry(_op)


def list_items(org_id: int, actor_id: str, filters: ItemFilters | None = None) -> list[Item]:
    actor = resolve_actor(org_id, actor_id)
    require_permission(actor, "VIEW_INVENTORY")
    filters = filters or ItemFilters()

    sort_col = SORT_FIELDS.get(filters.sort_by)
    if sort_col is None:
        raise ValidationError(f"sort_by must be one of: {', '.join(SORT_FIELDS)}")
    if filters.sort_order not in ("asc", "desc"):
        raise ValidationError("sort_order must be asc or desc")

    q = db.session.query(Item).filter(Item.org_id == actor.org_id)
    if filters.item_type is not None:
        q = q.filter(Item.item_type == _check_choice(filters.item_type, "item_type", ITEM_TYPES))
    if filters.status is not None:
        q = q.filter(Item.status == _check_choice(filters.status, "status", ITEM_STATUSES))
    if filters.category is not None:
        q = q.filter(Item.category == filters.category)
    if filters.search:
        pattern = f"%{filters.search.strip().lower()}%"
        q = q.filter(or_(func.lower(Item.name).like(pattern), func.lower(Item.sku).like(pattern)))
    if filters.low_stock_only:
        q = q.filter(Item.reorder_point.isnot(None), Item.current_stock <= Item.reorder_point)

    order = sort_col.asc() if filters.sort_order == "asc" else sort_col.desc()
    return q.order_by(order, Item.id).all()


def list_categories(org_id: int, actor_id: str) -> list[str]:
    actor = resolve_actor(org_id, actor_id)
    require_permission(actor, "VIEW_INVENTORY")

    rows = (
        db.session.query(Item.category)
        .filter(Item.org_id == actor.org_id, Item.category.isnot(None))
        .distinct()
        .order_by(Item.category)
        .all()
    )
    return [row.category for row in rows]


def inventory_summary(org_id: int, actor_id: str) -> dict:
    actor = resolve_actor(org_id, actor_id)
    require_permission(actor, "VIEW_INVENTORY")

    items = db.session.query(Item).filter(Item.org_id == actor.org_id).all()

    total_value = sum(
        ((item.unit_cost or Decimal("0")) * item.current_stock for item in items),
        Decimal("0"),
    )
    return {
        "total_items": len(items),
        "total_value": str(total_value),
        "low_stock_items": sum(1 for item in items if item.status == "active" and is_low_stock(item)),
        "raw_materials_count": sum(1 for item in items if item.item_type == "raw_material"),
        "finished_goods_count": sum(1 for item in items if item.item_type == "finished_good"),
        "inactive_items": sum(1 for item in items if item.status != "active"),
    }


def item_stats(org_id: int, item_id: int, actor_id: str) -> dict:
    item = get_item(org_id, item_id, actor_id)

    count, last_date = (
        db.session.query(
            func.count(InventoryTransaction.id),
            func.max(InventoryTransaction.transaction_date),
        )
        .filter(InventoryTransaction.item_id == item.id)
        .one()
    )
    return {
        "item_id": item.id,
        "transaction_count": int(count or 0),
        "last_transaction_date": to_utc_z(last_date),
        "is_low_stock": is_low_stock(item),
    }
