from __future__ import annotations

from decimal import Decimal

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..extensions import db
from ..errors import ConflictError
from ..time_utils import to_utc_z


ITEM_TYPES = ("raw_material", "finished_good")
ITEM_STATUSES = ("active", "inactive", "discontinued")
TRANSACTION_TYPES = (
    "receive",           # Receiving from supplier
    "consume",           # Used in production
    "produce",           # Created by production
    "count_adjustment",  # Physical count adjustment
    "waste_adjustment",  # Waste/spoilage
    "other_adjustment",  # Other manual adjustments (also used for voids)
    "transfer",          # Location transfers
)

# Quantities and costs: up to 11 integer digits, 4 fractional
QUANTITY = db.Numeric(15, 4)


def _fmt(value: Decimal | None) -> str | None:
    # Decimals serialize as strings so JSON clients never see float rounding
    return None if value is None else str(value)


class Item(db.Model):
    """
    Trackable raw material or finished good.

    MULTI-TENANT: Items are scoped to organizations via org_id.
    SKUs are unique within an organization, not globally.

    current_stock is a cache of SUM(InventoryTransaction.quantity) for the
    item. It is written only by stock_service.apply_delta and
    stock_service.recompute_stock; version_id makes every write a
    compare-and-swap so concurrent writers cannot both act on a stale value.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.UniqueConstraint("org_id", "sku", name="uq_items_org_sku"),
        db.CheckConstraint("current_stock >= 0", name="ck_items_current_stock_non_negative"),
        db.CheckConstraint("unit_cost IS NULL OR unit_cost >= 0", name="ck_items_unit_cost_non_negative"),
        db.CheckConstraint("reorder_point IS NULL OR reorder_point >= 0", name="ck_items_reorder_point_non_negative"),
        db.CheckConstraint("length(trim(sku)) > 0", name="ck_items_sku_not_empty"),
        db.CheckConstraint("length(trim(name)) > 0", name="ck_items_name_not_empty"),
        db.CheckConstraint("length(trim(unit)) > 0", name="ck_items_unit_not_empty"),
        db.CheckConstraint("item_type IN ('raw_material', 'finished_good')", name="ck_items_item_type"),
        db.CheckConstraint("status IN ('active', 'inactive', 'discontinued')", name="ck_items_status"),
        db.Index("ix_items_org_name", "org_id", "name"),
        db.Index("ix_items_org_status", "org_id", "status"),
        db.Index("ix_items_org_category", "org_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    sku = db.Column(db.String(100), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    item_type = db.Column(db.String(32), nullable=False)
    category = db.Column(db.String(100), nullable=True)

    unit = db.Column(db.String(50), nullable=False)
    reorder_point = db.Column(QUANTITY, nullable=True)
    # Most recent inbound cost per unit
    unit_cost = db.Column(QUANTITY, nullable=True)

    # Derived; see class docstring
    current_stock = db.Column(QUANTITY, nullable=False, default=Decimal("0"))

    status = db.Column(db.String(16), nullable=False, default="active")
    # "metadata" is reserved on declarative classes
    attributes = db.Column("metadata", db.JSON, nullable=False, default=dict)

    created_by = db.Column(db.String(128), nullable=False)
    updated_by = db.Column(db.String(128), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Item id={self.id} sku={self.sku!r} org_id={self.org_id} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        from ..services.stock_service import is_low_stock

        return {
            "id": self.id,
            "org_id": self.org_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "item_type": self.item_type,
            "category": self.category,
            "unit": self.unit,
            "reorder_point": _fmt(self.reorder_point),
            "unit_cost": _fmt(self.unit_cost),
            "current_stock": _fmt(self.current_stock),
            "is_low_stock": is_low_stock(self),
            "status": self.status,
            "metadata": self.attributes or {},
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    """
    Ledger entry: an item's quantity changed by a signed amount.

    APPEND-ONLY: rows are never updated or deleted. A void is a new row
    with the negated quantity whose voids_transaction_id points at the
    original; the unique constraint on that column makes a row voidable
    at most once.
    """
    __tablename__ = "inventory_transactions"
    __table_args__ = (
        db.CheckConstraint("quantity != 0", name="ck_invtx_quantity_not_zero"),
        db.CheckConstraint("unit_cost IS NULL OR unit_cost >= 0", name="ck_invtx_unit_cost_non_negative"),
        db.CheckConstraint(
            "transaction_type IN ('receive', 'consume', 'produce', 'count_adjustment', "
            "'waste_adjustment', 'other_adjustment', 'transfer')",
            name="ck_invtx_transaction_type",
        ),
        db.UniqueConstraint("voids_transaction_id", name="uq_invtx_voids_transaction"),
        db.Index("ix_invtx_org_date", "org_id", "transaction_date", "id"),
        db.Index("ix_invtx_item_date", "item_id", "transaction_date"),
        db.Index("ix_invtx_reference", "reference_type", "reference_id"),
        db.Index("ix_invtx_lot", "lot_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    quantity = db.Column(QUANTITY, nullable=False)
    unit_cost = db.Column(QUANTITY, nullable=True)
    total_cost = db.Column(db.Numeric(19, 4), nullable=True)

    # Pointer to an external document (purchase order, production run, ...)
    reference_type = db.Column(db.String(50), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True)

    note = db.Column(db.Text, nullable=True)
    lot_number = db.Column(db.String(100), nullable=True)

    # Business time; may be backdated
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    voids_transaction_id = db.Column(
        db.Integer,
        db.ForeignKey("inventory_transactions.id"),
        nullable=True,
    )

    created_by = db.Column(db.String(128), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item", backref=db.backref("transactions", lazy="dynamic"))
    voids = db.relationship(
        "InventoryTransaction",
        remote_side=[id],
        backref=db.backref("voided_by", uselist=False),
    )

    @property
    def is_void_entry(self) -> bool:
        return self.voids_transaction_id is not None

    @property
    def is_voided(self) -> bool:
        return self.voided_by is not None

    def __repr__(self) -> str:
        return (
            f"<InventoryTransaction id={self.id} item_id={self.item_id} "
            f"type={self.transaction_type} quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        voided_by = self.voided_by
        return {
            "id": self.id,
            "org_id": self.org_id,
            "item_id": self.item_id,
            "transaction_type": self.transaction_type,
            "quantity": _fmt(self.quantity),
            "unit_cost": _fmt(self.unit_cost),
            "total_cost": _fmt(self.total_cost),
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "note": self.note,
            "lot_number": self.lot_number,
            "transaction_date": to_utc_z(self.transaction_date),
            "voids_transaction_id": self.voids_transaction_id,
            "voided_by_transaction_id": voided_by.id if voided_by is not None else None,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(InventoryTransaction, "before_update")
def _reject_ledger_update(mapper, connection, target):
    # Backref bookkeeping can mark a row dirty without column changes
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise ConflictError("inventory transactions are append-only")


@event.listens_for(InventoryTransaction, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise ConflictError("inventory transactions are append-only")
