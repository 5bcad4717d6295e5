# Overview: Transaction ledger; append-only writes and filtered reads.

"""
Ledger Invariants & Time Semantics (authoritative)

Canonical time handling:
- All internal datetimes are UTC-naive (tzinfo=None).
- transaction_date is business time: defaults to now, may be backdated,
  may not lie beyond the configured future tolerance.
- Date-range filters are inclusive on both ends.

Ledger model:
- InventoryTransaction rows are facts; never updated, never deleted.
- quantity is signed and never zero.
- A void is a new other_adjustment row carrying the negated quantity and
  voids_transaction_id -> original. Each row is voidable once; void rows
  themselves are not voidable.

Atomicity:
- Append and Void lock the item row, validate against the fresh stock,
  insert the ledger row and apply the delta to the cached stock, then
  commit once. Any failure rolls both halves back together.
- Lock contention / stale versions are retried a bounded number of times
  (each retry re-validates) and then surface as ConcurrencyConflict.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterator

from flask import current_app, has_app_context
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Item, InventoryTransaction, TRANSACTION_TYPES
from ..time_utils import utcnow
from ..validation import optional_text, parse_datetime, parse_decimal, parse_non_negative
from .concurrency import run_with_retry
from .permission_service import require_permission, require_same_tenant
from .stock_service import apply_delta, lock_item
from .tenant_service import ActorContext, resolve_actor


POSITIVE_ONLY_TYPES = frozenset({"receive", "produce"})
NEGATIVE_ONLY_TYPES = frozenset({"consume"})
# Inbound rows with a cost refresh the item's cached unit cost
COSTED_INBOUND_TYPES = frozenset({"receive", "produce"})

VOID_TRANSACTION_TYPE = "other_adjustment"
VOID_REFERENCE_TYPE = "void"

DEFAULT_BATCH_SIZE = 100


@dataclass(frozen=True)
class TransactionFilters:
    item_id: int | None = None
    transaction_type: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    reference_type: str | None = None
    reference_id: str | None = None
    lot_number: str | None = None

    def validated(self) -> "TransactionFilters":
        if self.transaction_type is not None and self.transaction_type not in TRANSACTION_TYPES:
            raise ValidationError(f"transaction_type must be one of: {', '.join(TRANSACTION_TYPES)}")
        start = parse_datetime(self.start_date, "start_date")
        end = parse_datetime(self.end_date, "end_date")
        if start is not None and end is not None and start > end:
            raise ValidationError("start_date must be on or before end_date")
        return TransactionFilters(
            item_id=self.item_id,
            transaction_type=self.transaction_type,
            start_date=start,
            end_date=end,
            reference_type=self.reference_type,
            reference_id=self.reference_id,
            lot_number=self.lot_number,
        )


@dataclass(frozen=True)
class _AppendRequest:
    transaction_type: str
    quantity: Decimal
    unit_cost: Decimal | None
    reference_type: str | None
    reference_id: str | None
    note: str | None
    lot_number: str | None
    transaction_date: datetime


def _future_tolerance() -> timedelta:
    seconds = 120
    if has_app_context():
        seconds = current_app.config.get("LEDGER_FUTURE_TOLERANCE_SECONDS", seconds)
    return timedelta(seconds=seconds)


def _parse_transaction_date(value) -> datetime:
    """None -> now; otherwise normalized to UTC-naive and bounded in the future."""
    if value is None:
        return utcnow()
    dt = parse_datetime(value, "occurred_at")
    if dt is None:
        return utcnow()
    if dt > utcnow() + _future_tolerance():
        raise ValidationError("occurred_at cannot be in the future")
    return dt


def _validate_append(
    *,
    transaction_type,
    quantity,
    unit_cost,
    reference_type,
    reference_id,
    note,
    lot_number,
    occurred_at,
) -> _AppendRequest:
    if transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"transaction_type must be one of: {', '.join(TRANSACTION_TYPES)}")

    qty = parse_decimal(quantity, "quantity")
    if qty == 0:
        raise ValidationError("quantity cannot be zero")
    if transaction_type in POSITIVE_ONLY_TYPES and qty < 0:
        raise ValidationError(f"quantity must be positive for {transaction_type}")
    if transaction_type in NEGATIVE_ONLY_TYPES and qty > 0:
        raise ValidationError(f"quantity must be negative for {transaction_type}")

    reference_type = optional_text(reference_type, "reference_type", 50)
    reference_id = optional_text(reference_id, "reference_id", 64)
    if reference_id is not None and reference_type is None:
        raise ValidationError("reference_type is required when reference_id is given")

    return _AppendRequest(
        transaction_type=transaction_type,
        quantity=qty,
        unit_cost=parse_non_negative(unit_cost, "unit_cost"),
        reference_type=reference_type,
        reference_id=reference_id,
        note=optional_text(note, "note", 1000),
        lot_number=optional_text(lot_number, "lot_number", 100),
        transaction_date=_parse_transaction_date(occurred_at),
    )


def _load_item_in_tenant(actor: ActorContext, item_id) -> Item:
    item = db.session.get(Item, item_id) if item_id is not None else None
    if item is None:
        raise NotFoundError(f"Item {item_id} not found")
    require_same_tenant(actor, item.org_id, entity="item", entity_id=item_id)
    return item


def _append_locked(
    item: Item,
    req: _AppendRequest,
    *,
    created_by: str,
    voids_transaction_id: int | None = None,
) -> InventoryTransaction:
    """
    Core append without locking, retry or commit.

    The item must already be locked by the caller's unit of work. The
    non-negative check happens in apply_delta against that locked row.
    """
    if item.status == "discontinued" and voids_transaction_id is None:
        raise ValidationError(f"Item {item.sku} is discontinued")

    total_cost = None
    if req.unit_cost is not None:
        total_cost = req.quantity * req.unit_cost

    tx = InventoryTransaction(
        org_id=item.org_id,
        item_id=item.id,
        transaction_type=req.transaction_type,
        quantity=req.quantity,
        unit_cost=req.unit_cost,
        total_cost=total_cost,
        reference_type=req.reference_type,
        reference_id=req.reference_id,
        note=req.note,
        lot_number=req.lot_number,
        transaction_date=req.transaction_date,
        voids_transaction_id=voids_transaction_id,
        created_by=created_by,
    )
    db.session.add(tx)
    db.session.flush()

    if req.unit_cost is not None and req.transaction_type in COSTED_INBOUND_TYPES:
        item.unit_cost = req.unit_cost
        item.updated_by = created_by

    apply_delta(item, req.quantity)
    return tx


def append_transaction(
    *,
    org_id: int,
    item_id: int,
    transaction_type: str,
    quantity,
    actor_id: str,
    unit_cost=None,
    reference_type: str | None = None,
    reference_id: str | None = None,
    note: str | None = None,
    lot_number: str | None = None,
    occurred_at=None,
) -> InventoryTransaction:
    """
    Append a transaction and apply it to the item's cached stock atomically.

    Raises:
        AuthorizationError: actor is not a member or the role forbids appends
        TenantMismatchError: the item belongs to another organization
        NotFoundError: the item does not exist
        ValidationError: zero/invalid quantity, bad type, sign or date
        InsufficientStockError: the append would drive stock below zero
        ConcurrencyConflict: could not commit within the retry budget
    """
    actor = resolve_actor(org_id, actor_id)
    item = _load_item_in_tenant(actor, item_id)
    require_permission(actor, "APPEND_TRANSACTION")

    req = _validate_append(
        transaction_type=transaction_type,
        quantity=quantity,
        unit_cost=unit_cost,
        reference_type=reference_type,
        reference_id=reference_id,
        note=note,
        lot_number=lot_number,
        occurred_at=occurred_at,
    )

    def _op():
        locked = lock_item(item.id)
        tx = _append_locked(locked, req, created_by=actor.actor_id)
        db.session.commit()
        return tx

    return run_with_retry(_op)


def void_transaction(
    transaction_id: int,
    actor_id: str,
    reason: str,
    *,
    org_id: int,
) -> InventoryTransaction:
    """
    Void a transaction by appending a compensating entry.

    The original row is never altered. The new row is an other_adjustment
    with the negated quantity, reference ("void", <original id>) and
    voids_transaction_id linking the two. Only managers and admins may void.

    Voiding an inbound row whose stock has already been consumed fails with
    InsufficientStockError, like any other negative append.
    """
    actor = resolve_actor(org_id, actor_id)

    original = db.session.get(InventoryTransaction, transaction_id)
    if original is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    require_same_tenant(actor, original.org_id, entity="transaction", entity_id=transaction_id)
    require_permission(actor, "VOID_TRANSACTION")

    reason = optional_text(reason, "reason", 1000)
    if reason is None:
        raise ValidationError("reason is required to void a transaction")
    if original.voids_transaction_id is not None:
        raise ValidationError("A void entry cannot itself be voided")

    original_id = original.id
    original_item_id = original.item_id

    def _op():
        item = lock_item(original_item_id)

        already = (
            db.session.query(InventoryTransaction.id)
            .filter_by(voids_transaction_id=original_id)
            .first()
        )
        if already is not None:
            raise ConflictError(f"Transaction {original_id} is already voided by {already.id}")

        fresh = db.session.get(InventoryTransaction, original_id)
        req = _AppendRequest(
            transaction_type=VOID_TRANSACTION_TYPE,
            quantity=-fresh.quantity,
            unit_cost=fresh.unit_cost,
            reference_type=VOID_REFERENCE_TYPE,
            reference_id=str(original_id),
            note=f"Void of transaction {original_id}: {reason}",
            lot_number=fresh.lot_number,
            transaction_date=utcnow(),
        )
        try:
            tx = _append_locked(item, req, created_by=actor.actor_id, voids_transaction_id=original_id)
        except IntegrityError as exc:
            # Lost a race on uq_invtx_voids_transaction
            raise ConflictError(f"Transaction {original_id} is already voided") from exc
        db.session.commit()
        return tx

    return run_with_retry(_op)


def get_transaction(org_id: int, transaction_id: int, actor_id: str) -> InventoryTransaction:
    actor = resolve_actor(org_id, actor_id)
    tx = db.session.get(InventoryTransaction, transaction_id)
    if tx is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    require_same_tenant(actor, tx.org_id, entity="transaction", entity_id=transaction_id)
    require_permission(actor, "VIEW_INVENTORY")
    return tx


def _filtered_query(org_id: int, filters: TransactionFilters):
    q = db.session.query(InventoryTransaction).filter(InventoryTransaction.org_id == org_id)
    if filters.item_id is not None:
        q = q.filter(InventoryTransaction.item_id == filters.item_id)
    if filters.transaction_type is not None:
        q = q.filter(InventoryTransaction.transaction_type == filters.transaction_type)
    if filters.reference_type is not None:
        q = q.filter(InventoryTransaction.reference_type == filters.reference_type)
    if filters.reference_id is not None:
        q = q.filter(InventoryTransaction.reference_id == str(filters.reference_id))
    if filters.lot_number is not None:
        q = q.filter(InventoryTransaction.lot_number == filters.lot_number)
    if filters.start_date is not None:
        q = q.filter(InventoryTransaction.transaction_date >= filters.start_date)
    if filters.end_date is not None:
        q = q.filter(InventoryTransaction.transaction_date <= filters.end_date)
    return q


def _iter_transactions(
    org_id: int,
    filters: TransactionFilters,
    batch_size: int,
    cursor: tuple[datetime, int] | None = None,
) -> Iterator[InventoryTransaction]:
    """Keyset pagination over (transaction_date, id) descending."""
    cursor_dt, cursor_id = cursor if cursor is not None else (None, None)
    while True:
        q = _filtered_query(org_id, filters)
        if cursor_id is not None:
            q = q.filter(
                or_(
                    InventoryTransaction.transaction_date < cursor_dt,
                    and_(
                        InventoryTransaction.transaction_date == cursor_dt,
                        InventoryTransaction.id < cursor_id,
                    ),
                )
            )
        rows = (
            q.order_by(InventoryTransaction.transaction_date.desc(), InventoryTransaction.id.desc())
            .limit(batch_size)
            .all()
        )
        yield from rows
        if len(rows) < batch_size:
            return
        cursor_dt = rows[-1].transaction_date
        cursor_id = rows[-1].id


def query_transactions(
    org_id: int,
    actor_id: str,
    filters: TransactionFilters | None = None,
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    cursor: tuple[datetime, int] | None = None,
) -> Iterator[InventoryTransaction]:
    """
    Lazy, reverse-chronological sequence of the tenant's transactions.

    Authorization, tenant and filter checks happen eagerly; rows are then
    fetched in keyset-paginated batches as the caller iterates. Calling
    again restarts from the newest row, or from just after cursor
    (transaction_date, id) when one is given.
    """
    actor = resolve_actor(org_id, actor_id)
    require_permission(actor, "VIEW_INVENTORY")

    filters = (filters or TransactionFilters()).validated()
    if filters.item_id is not None:
        _load_item_in_tenant(actor, filters.item_id)
    if batch_size < 1:
        raise ValidationError("batch_size must be >= 1")

    if cursor is not None:
        cursor_dt, cursor_id = cursor
        cursor = (parse_datetime(cursor_dt, "cursor"), int(cursor_id))

    return _iter_transactions(actor.org_id, filters, batch_size, cursor)

