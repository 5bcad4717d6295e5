# Overview: Stock aggregator; keeps Item.current_stock equal to the ledger sum.

"""
Stock Aggregator Invariants (authoritative)

- The ledger (InventoryTransaction) is the only source of truth.
- Item.current_stock is a cache of SUM(quantity) over the item's rows.
- At quiescence: current_stock == ledger_quantity(item_id), always.
- current_stock >= 0 at every commit; apply_delta refuses any write that
  would break this, against a freshly locked read of the item.
- Only apply_delta (fast path) and recompute_stock (drift recovery) write
  current_stock. Both run inside the caller's unit of work, under the
  item's row lock / version check.
- Items never block one another: locking is per item row.
"""

from __future__ import annotations

from decimal import Decimal
from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import InsufficientStockError, IntegrityDrift, NotFoundError
from ..models import Item, InventoryTransaction
from .concurrency import lock_for_update, run_with_retry
from .permission_service import log_audit_event, require_permission, require_same_tenant
from .tenant_service import resolve_actor


ZERO = Decimal("0")


@dataclass(frozen=True)
class StockDrift:
    item_id: int
    org_id: int
    sku: str
    cached: Decimal
    ledger_sum: Decimal

    @property
    def difference(self) -> Decimal:
        return self.cached - self.ledger_sum

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "org_id": self.org_id,
            "sku": self.sku,
            "cached": str(self.cached),
            "ledger_sum": str(self.ledger_sum),
            "difference": str(self.difference),
        }


def _as_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def lock_item(item_id: int) -> Item:
    """Load an item under its per-item serialization boundary."""
    item = lock_for_update(db.session.query(Item).filter_by(id=item_id)).first()
    if item is None:
        raise NotFoundError(f"Item {item_id} not found")
    return item


def apply_delta(item: Item, delta: Decimal) -> Item:
    """
    Add a signed delta to the cached stock (fast path).

    The item must have been loaded with lock_item() in the same unit of
    work. The flush is a versioned UPDATE; if another writer committed
    first it fails with StaleDataError and the whole unit is retried.
    """
    current = _as_decimal(item.current_stock)
    new_stock = current + delta
    if new_stock < ZERO:
        raise InsufficientStockError(
            f"Insufficient stock for item {item.sku}: on hand {current}, requested {delta}",
            item_id=item.id,
            current_stock=current,
            requested=delta,
        )
    item.current_stock = new_stock
    db.session.flush()
    return item


def ledger_quantity(item_id: int) -> Decimal:
    """SUM(quantity) over every ledger row for the item."""
    total = (
        db.session.query(func.coalesce(func.sum(InventoryTransaction.quantity), 0))
        .filter(InventoryTransaction.item_id == item_id)
        .scalar()
    )
    return _as_decimal(total)


def _recompute_locked(item: Item) -> Item:
    cached = _as_decimal(item.current_stock)
    actual = ledger_quantity(item.id)

    if actual < ZERO:
        current_app.logger.error(
            "Ledger sum for item %s is negative (%s); refusing to overwrite cache", item.id, actual
        )
        raise IntegrityDrift(
            f"Ledger sum for item {item.id} is negative",
            item_id=item.id,
            cached=cached,
            ledger_sum=actual,
        )

    if actual != cached:
        current_app.logger.warning(
            "Stock drift on item %s (org %s): cached=%s ledger=%s; correcting",
            item.id, item.org_id, cached, actual,
        )
        log_audit_event(
            user_id=None,
            event_type="STOCK_DRIFT_CORRECTED",
            success=True,
            resource=f"item:{item.id}",
            action="RECOMPUTE_STOCK",
            reason=f"cached={cached} ledger={actual}",
            org_id=item.org_id,
            commit=False,
        )
        item.current_stock = actual
        db.session.flush()

    return item


def recompute_stock(item_id: int, *, org_id: int | None = None, actor_id: str | None = None) -> Item:
    """
    Rebuild an item's cached stock from the ledger (drift recovery).

    With actor_id the call is tenant-checked and requires RECOMPUTE_STOCK;
    without it the call is an operational one (CLI, migrations).
    Idempotent: a second run with no new transactions changes nothing.
    """
    if actor_id is not None:
        actor = resolve_actor(org_id, actor_id)
        item = db.session.get(Item, item_id)
        if item is None:
            raise NotFoundError(f"Item {item_id} not found")
        require_same_tenant(actor, item.org_id, entity="item", entity_id=item_id)
        require_permission(actor, "RECOMPUTE_STOCK")

    def _op():
        item = lock_item(item_id)
        _recompute_locked(item)
        db.session.commit()
        return item

    return run_with_retry(_op)


def recompute_all(org_id: int | None = None) -> list[Item]:
    """Recompute every item (optionally one tenant's), one unit of work per item."""
    q = db.session.query(Item.id)
    if org_id is not None:
        q = q.filter(Item.org_id == org_id)
    item_ids = [row.id for row in q.order_by(Item.id).all()]
    return [recompute_stock(item_id) for item_id in item_ids]


def find_drift(org_id: int | None = None) -> list[StockDrift]:
    """Read-only report of items whose cache disagrees with the ledger."""
    sums = (
        db.session.query(
            InventoryTransaction.item_id.label("item_id"),
            func.sum(InventoryTransaction.quantity).label("total"),
        )
        .group_by(InventoryTransaction.item_id)
        .subquery()
    )
    q = db.session.query(Item, sums.c.total).outerjoin(sums, sums.c.item_id == Item.id)
    if org_id is not None:
        q = q.filter(Item.org_id == org_id)

    drift = []
    for item, total in q.order_by(Item.id).all():
        cached = _as_decimal(item.current_stock)
        actual = _as_decimal(total)
        if cached != actual:
            drift.append(StockDrift(item.id, item.org_id, item.sku, cached, actual))
    return drift


def is_low_stock(item: Item) -> bool:
    """reorder_point IS NOT NULL AND current_stock <= reorder_point. Pure."""
    if item.reorder_point is None:
        return False
    return _as_decimal(item.current_stock) <= _as_decimal(item.reorder_point)


def low_stock_report(org_id: int, actor_id: str) -> list[Item]:
    """Active items at or below their reorder point, by name."""
    actor = resolve_actor(org_id, actor_id)
    require_permission(actor, "VIEW_INVENTORY")

    return (
        db.session.query(Item)
        .filter(
            Item.org_id == actor.org_id,
            Item.status == "active",
            Item.reorder_point.isnot(None),
            Item.current_stock <= Item.reorder_point,
        )
        .order_by(Item.name, Item.id)
        .all()
    )
