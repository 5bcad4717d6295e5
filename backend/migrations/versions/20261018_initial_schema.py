"""Initial schema: tenants, memberships, items, transaction ledger, audit events

Revision ID: 20261018_initial_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "organizations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("slug", sa.String(length=100), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="trial"),
        sa.Column("settings", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("length(trim(name)) > 0", name="ck_organizations_name_not_empty"),
        sa.CheckConstraint("status IN ('trial', 'active', 'inactive')", name="ck_organizations_status"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_organizations_slug", "organizations", ["slug"], unique=True)
    op.create_index("ix_organizations_status", "organizations", ["status"], unique=False)

    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False, server_default="operator"),
        sa.Column("invited_by", sa.String(length=128), nullable=True),
        sa.Column("invited_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.CheckConstraint("role IN ('admin', 'manager', 'operator')", name="ck_memberships_role"),
        sa.CheckConstraint("joined_at IS NULL OR joined_at >= invited_at", name="ck_memberships_joined_after_invited"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "user_id", name="uq_memberships_org_user"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_memberships_org_id", "memberships", ["org_id"], unique=False)
    op.create_index("ix_memberships_user_active", "memberships", ["user_id", "is_active"], unique=False)

    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("item_type", sa.String(length=32), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("unit", sa.String(length=50), nullable=False),
        sa.Column("reorder_point", sa.Numeric(15, 4), nullable=True),
        sa.Column("unit_cost", sa.Numeric(15, 4), nullable=True),
        sa.Column("current_stock", sa.Numeric(15, 4), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="active"),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("updated_by", sa.String(length=128), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("current_stock >= 0", name="ck_items_current_stock_non_negative"),
        sa.CheckConstraint("unit_cost IS NULL OR unit_cost >= 0", name="ck_items_unit_cost_non_negative"),
        sa.CheckConstraint("reorder_point IS NULL OR reorder_point >= 0", name="ck_items_reorder_point_non_negative"),
        sa.CheckConstraint("length(trim(sku)) > 0", name="ck_items_sku_not_empty"),
        sa.CheckConstraint("length(trim(name)) > 0", name="ck_items_name_not_empty"),
        sa.CheckConstraint("length(trim(unit)) > 0", name="ck_items_unit_not_empty"),
        sa.CheckConstraint("item_type IN ('raw_material', 'finished_good')", name="ck_items_item_type"),
        sa.CheckConstraint("status IN ('active', 'inactive', 'discontinued')", name="ck_items_status"),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "sku", name="uq_items_org_sku"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_items_org_id", "items", ["org_id"], unique=False)
    op.create_index("ix_items_org_name", "items", ["org_id", "name"], unique=False)
    op.create_index("ix_items_org_status", "items", ["org_id", "status"], unique=False)
    op.create_index("ix_items_org_category", "items", ["org_id", "category"], unique=False)

    op.create_table(
        "inventory_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=32), nullable=False),
        sa.Column("quantity", sa.Numeric(15, 4), nullable=False),
        sa.Column("unit_cost", sa.Numeric(15, 4), nullable=True),
        sa.Column("total_cost", sa.Numeric(19, 4), nullable=True),
        sa.Column("reference_type", sa.String(length=50), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("lot_number", sa.String(length=100), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("voids_transaction_id", sa.Integer(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.CheckConstraint("quantity != 0", name="ck_invtx_quantity_not_zero"),
        sa.CheckConstraint("unit_cost IS NULL OR unit_cost >= 0", name="ck_invtx_unit_cost_non_negative"),
        sa.CheckConstraint(
            "transaction_type IN ('receive', 'consume', 'produce', 'count_adjustment', "
            "'waste_adjustment', 'other_adjustment', 'transfer')",
            name="ck_invtx_transaction_type",
        ),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.ForeignKeyConstraint(["item_id"], ["items.id"]),
        sa.ForeignKeyConstraint(["voids_transaction_id"], ["inventory_transactions.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("voids_transaction_id", name="uq_invtx_voids_transaction"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_inventory_transactions_org_id", "inventory_transactions", ["org_id"], unique=False)
    op.create_index("ix_inventory_transactions_item_id", "inventory_transactions", ["item_id"], unique=False)
    op.create_index("ix_inventory_transactions_transaction_type", "inventory_transactions", ["transaction_type"], unique=False)
    op.create_index("ix_inventory_transactions_transaction_date", "inventory_transactions", ["transaction_date"], unique=False)
    op.create_index("ix_inventory_transactions_created_by", "inventory_transactions", ["created_by"], unique=False)
    op.create_index("ix_invtx_org_date", "inventory_transactions", ["org_id", "transaction_date", "id"], unique=False)
    op.create_index("ix_invtx_item_date", "inventory_transactions", ["item_id", "transaction_date"], unique=False)
    op.create_index("ix_invtx_reference", "inventory_transactions", ["reference_type", "reference_id"], unique=False)
    op.create_index("ix_invtx_lot", "inventory_transactions", ["lot_number"], unique=False)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("org_id", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.String(length=128), nullable=True),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("resource", sa.String(length=128), nullable=True),
        sa.Column("action", sa.String(length=64), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.ForeignKeyConstraint(["org_id"], ["organizations.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_events_org_id", "audit_events", ["org_id"], unique=False)
    op.create_index("ix_audit_events_user_id", "audit_events", ["user_id"], unique=False)
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"], unique=False)
    op.create_index("ix_audit_events_success", "audit_events", ["success"], unique=False)
    op.create_index("ix_audit_events_occurred_at", "audit_events", ["occurred_at"], unique=False)
    op.create_index("ix_audit_events_user_type", "audit_events", ["user_id", "event_type"], unique=False)
    op.create_index("ix_audit_events_org_occurred", "audit_events", ["org_id", "occurred_at"], unique=False)


def downgrade():
    op.drop_table("audit_events")
    op.drop_table("inventory_transactions")
    op.drop_table("items")
    op.drop_table("memberships")
    op.drop_table("organizations")
