# Overview: Pytest coverage for the append-only transaction ledger.

"""
Ledger Tests

Covers append semantics (signed quantities, sign rules, non-negative
stock), void-by-compensation, append-only enforcement and the lazy
filtered query.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from mfgledger.extensions import db
from mfgledger.errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from mfgledger.models import InventoryTransaction, Item
from mfgledger.services import catalog_service, ledger_service, stock_service
from mfgledger.services.ledger_service import TransactionFilters
from mfgledger.time_utils import utcnow


def _append(org, item, transaction_type, quantity, actor="alice", **kwargs):
    return ledger_service.append_transaction(
        org_id=org.id,
        item_id=item.id,
        transaction_type=transaction_type,
        quantity=quantity,
        actor_id=actor,
        **kwargs,
    )


def _stock(item_id) -> Decimal:
    return db.session.get(Item, item_id).current_stock


class TestAppend:
    def test_receive_consume_overdraw_scenario(self, db_session, org_a):
        item = catalog_service.create_item(
            org_id=org_a.id, actor_id="alice", sku="SCN-1", name="Scenario Part",
            item_type="raw_material", unit="pcs", reorder_point=10,
        )

        _append(org_a, item, "receive", 100, unit_cost="2.50")
        item = db_session.get(Item, item.id)
        assert item.current_stock == Decimal("100")
        assert not stock_service.is_low_stock(item)

        _append(org_a, item, "consume", -95)
        item = db_session.get(Item, item.id)
        assert item.current_stock == Decimal("5")
        assert stock_service.is_low_stock(item)

        with pytest.raises(InsufficientStockError):
            _append(org_a, item, "consume", -10)
        assert _stock(item.id) == Decimal("5")

    def test_receive_then_consume_updates_stock(self, db_session, org_a, item_a):
        _append(org_a, item_a, "receive", 100)
        _append(org_a, item_a, "consume", -95)

        assert _stock(item_a.id) == Decimal("5")
        assert stock_service.ledger_quantity(item_a.id) == Decimal("5")

    def test_overdraw_is_rejected_and_leaves_no_trace(self, db_session, org_a, item_a):
        _append(org_a, item_a, "receive", 100)
        _append(org_a, item_a, "consume", -95)

        with pytest.raises(InsufficientStockError) as exc:
            _append(org_a, item_a, "consume", -10)

        assert exc.value.current_stock == Decimal("5")
        assert exc.value.requested == Decimal("-10")
        assert _stock(item_a.id) == Decimal("5")
        assert db_session.query(InventoryTransaction).filter_by(item_id=item_a.id).count() == 2

    def test_fractional_quantities_are_exact(self, db_session, org_a, item_a):
        _append(org_a, item_a, "receive", "0.1")
        _append(org_a, item_a, "receive", "0.2")

        assert _stock(item_a.id) == Decimal("0.3")

    def test_operator_may_append(self, db_session, org_a, item_a, operator_a):
        tx = _append(org_a, item_a, "receive", 12, actor="oscar")

        assert tx.created_by == "oscar"
        assert tx.org_id == org_a.id

    def test_zero_quantity_rejected(self, db_session, org_a, item_a):
        with pytest.raises(ValidationError):
            _append(org_a, item_a, "count_adjustment", 0)

    @pytest.mark.parametrize("transaction_type,quantity", [
        ("receive", -5),
        ("produce", -1),
        ("consume", 5),
    ])
    def test_sign_rules(self, db_session, org_a, item_a, transaction_type, quantity):
        _append(org_a, item_a, "receive", 50)
        with pytest.raises(ValidationError):
            _append(org_a, item_a, transaction_type, quantity)

    def test_adjustments_accept_either_sign(self, db_session, org_a, item_a):
        _append(org_a, item_a, "count_adjustment", 10)
        _append(org_a, item_a, "waste_adjustment", -3)
        _append(org_a, item_a, "transfer", -2)
        # Reversing an over-recorded scrap
        _append(org_a, item_a, "waste_adjustment", 1)
        _append(org_a, item_a, "other_adjustment", -1)

        assert _stock(item_a.id) == Decimal("5")

    def test_unknown_type_rejected(self, db_session, org_a, item_a):
        with pytest.raises(ValidationError):
            _append(org_a, item_a, "teleport", 1)

    def test_excess_precision_rejected(self, db_session, org_a, item_a):
        with pytest.raises(ValidationError):
            _append(org_a, item_a, "receive", "1.00001")

    def test_missing_item(self, db_session, org_a):
        with pytest.raises(NotFoundError):
            ledger_service.append_transaction(
                org_id=org_a.id, item_id=99999, transaction_type="receive",
                quantity=1, actor_id="alice",
            )

    def test_reference_id_requires_reference_type(self, db_session, org_a, item_a):
        with pytest.raises(ValidationError):
            _append(org_a, item_a, "receive", 1, reference_id="PO-1")

    def test_receive_with_cost_refreshes_unit_cost(self, db_session, org_a, item_a):
        tx = _append(org_a, item_a, "receive", 10, unit_cost="2.5000")

        assert tx.total_cost == Decimal("25")
        assert Item.query.get(item_a.id).unit_cost == Decimal("2.5")

    def test_backdated_allowed_future_rejected(self, db_session, org_a, item_a):
        past = utcnow() - timedelta(days=30)
        tx = _append(org_a, item_a, "receive", 1, occurred_at=past.isoformat() + "Z")
        assert abs(tx.transaction_date - past) < timedelta(seconds=1)

        future = utcnow() + timedelta(days=1)
        with pytest.raises(ValidationError):
            _append(org_a, item_a, "receive", 1, occurred_at=future.isoformat() + "Z")

    def test_discontinued_item_rejects_appends(self, db_session, org_a, item_a):
        catalog_service.retire_item(org_a.id, item_a.id, "alice")

        with pytest.raises(ValidationError):
            _append(org_a, item_a, "receive", 1)

    def test_transaction_count_only_grows(self, db_session, org_a, item_a):
        counts = []
        for qty in (10, -3, 4):
            _append(org_a, item_a, "count_adjustment", qty)
            counts.append(db_session.query(InventoryTransaction).count())

        with pytest.raises(InsufficientStockError):
            _append(org_a, item_a, "consume", -100)
        counts.append(db_session.query(InventoryTransaction).count())

        assert counts == sorted(counts)
        assert counts[-1] == counts[-2]


class TestAppendOnly:
    def test_update_rejected(self, db_session, org_a, item_a):
        tx = _append(org_a, item_a, "receive", 10)
        tx.note = "rewritten"

        with pytest.raises(ConflictError):
            db_session.flush()
        db_session.rollback()

    def test_delete_rejected(self, db_session, org_a, item_a):
        tx = _append(org_a, item_a, "receive", 10)
        db_session.delete(tx)

        with pytest.raises(ConflictError):
            db_session.flush()
        db_session.rollback()


class TestVoid:
    def test_void_restores_stock_and_links_rows(self, db_session, org_a, item_a):
        _append(org_a, item_a, "receive", 100)
        consume = _append(org_a, item_a, "consume", -30)
        before = _stock(item_a.id)

        void = ledger_service.void_transaction(consume.id, "alice", "wrong item", org_id=org_a.id)

        assert void.quantity == Decimal("30")
        assert void.transaction_type == "other_adjustment"
        assert void.reference_type == "void"
        assert void.reference_id == str(consume.id)
        assert void.voids_transaction_id == consume.id
        assert _stock(item_a.id) == before - consume.quantity

        original = db_session.get(InventoryTransaction, consume.id)
        assert original.quantity == Decimal("-30")
        assert original.is_voided
        assert original.to_dict()["voided_by_transaction_id"] == void.id

    def test_void_twice_conflicts(self, db_session, org_a, item_a):
        tx = _append(org_a, item_a, "receive", 10)
        ledger_service.void_transaction(tx.id, "alice", "duplicate", org_id=org_a.id)

        with pytest.raises(ConflictError):
            ledger_service.void_transaction(tx.id, "alice", "again", org_id=org_a.id)

    def test_void_entry_cannot_be_voided(self, db_session, org_a, item_a):
        tx = _append(org_a, item_a, "receive", 10)
        void = ledger_service.void_transaction(tx.id, "alice", "duplicate", org_id=org_a.id)

        with pytest.raises(ValidationError):
            ledger_service.void_transaction(void.id, "alice", "undo", org_id=org_a.id)

    def test_reason_required(self, db_session, org_a, item_a):
        tx = _append(org_a, item_a, "receive", 10)

        with pytest.raises(ValidationError):
            ledger_service.void_transaction(tx.id, "alice", "  ", org_id=org_a.id)

    def test_void_of_consumed_receipt_is_insufficient(self, db_session, org_a, item_a):
        receipt = _append(org_a, item_a, "receive", 10)
        _append(org_a, item_a, "consume", -8)

        with pytest.raises(InsufficientStockError):
            ledger_service.void_transaction(receipt.id, "alice", "bad receipt", org_id=org_a.id)
        assert _stock(item_a.id) == Decimal("2")

    def test_void_allowed_on_discontinued_item(self, db_session, org_a, item_a):
        tx = _append(org_a, item_a, "receive", 10)
        catalog_service.retire_item(org_a.id, item_a.id, "alice")

        ledger_service.void_transaction(tx.id, "alice", "never arrived", org_id=org_a.id)

        assert _stock(item_a.id) == Decimal("0")

    def test_missing_transaction(self, db_session, org_a):
        with pytest.raises(NotFoundError):
            ledger_service.void_transaction(424242, "alice", "gone", org_id=org_a.id)


class TestQuery:
    def test_newest_first_and_filters(self, db_session, org_a, item_a):
        old = _append(org_a, item_a, "receive", 5, occurred_at=(utcnow() - timedelta(days=10)).isoformat())
        mid = _append(org_a, item_a, "receive", 5, reference_type="po", reference_id="PO-7")
        new = _append(org_a, item_a, "consume", -1, lot_number="LOT-1")

        rows = list(ledger_service.query_transactions(org_a.id, "alice"))
        assert [r.id for r in rows] == [new.id, mid.id, old.id]

        by_type = list(ledger_service.query_transactions(
            org_a.id, "alice", TransactionFilters(transaction_type="consume")
        ))
        assert [r.id for r in by_type] == [new.id]

        by_ref = list(ledger_service.query_transactions(
            org_a.id, "alice", TransactionFilters(reference_type="po", reference_id="PO-7")
        ))
        assert [r.id for r in by_ref] == [mid.id]

        recent = list(ledger_service.query_transactions(
            org_a.id, "alice", TransactionFilters(start_date=utcnow() - timedelta(days=1))
        ))
        assert old.id not in {r.id for r in recent}

    def test_date_range_is_inclusive(self, db_session, org_a, item_a):
        tx = _append(org_a, item_a, "receive", 5)
        at = tx.transaction_date

        rows = list(ledger_service.query_transactions(
            org_a.id, "alice", TransactionFilters(start_date=at, end_date=at)
        ))
        assert [r.id for r in rows] == [tx.id]

    def test_inverted_range_rejected(self, db_session, org_a):
        with pytest.raises(ValidationError):
            ledger_service.query_transactions(
                org_a.id, "alice",
                TransactionFilters(start_date=utcnow(), end_date=utcnow() - timedelta(days=1)),
            )

    def test_lazy_batches_cover_every_row(self, db_session, org_a, item_a):
        ids = [_append(org_a, item_a, "receive", 1).id for _ in range(7)]

        rows = ledger_service.query_transactions(org_a.id, "alice", batch_size=3)

        assert [r.id for r in rows] == sorted(ids, reverse=True)

    def test_restartable(self, db_session, org_a, item_a):
        for _ in range(3):
            _append(org_a, item_a, "receive", 1)

        first = [r.id for r in ledger_service.query_transactions(org_a.id, "alice")]
        second = [r.id for r in ledger_service.query_transactions(org_a.id, "alice")]
        assert first == second

    def test_cursor_resumes_after_row(self, db_session, org_a, item_a):
        ids = [_append(org_a, item_a, "receive", 1).id for _ in range(4)]
        newest = db_session.get(InventoryTransaction, ids[-1])

        rows = ledger_service.query_transactions(
            org_a.id, "alice", cursor=(newest.transaction_date, newest.id)
        )
        assert [r.id for r in rows] == sorted(ids[:-1], reverse=True)

    def test_get_transaction(self, db_session, org_a, item_a):
        tx = _append(org_a, item_a, "receive", 3)

        assert ledger_service.get_transaction(org_a.id, tx.id, "alice").id == tx.id
        with pytest.raises(NotFoundError):
            ledger_service.get_transaction(org_a.id, 987654, "alice")
