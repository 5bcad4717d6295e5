# Overview: Flask API routes for the inventory transaction ledger.

from itertools import islice

from flask import Blueprint, g, jsonify, request

from ..decorators import require_tenant, require_permission
from ..errors import ValidationError
from ..services import ledger_service
from ..services.ledger_service import TransactionFilters
from ..time_utils import to_utc_z

"""
Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- start_date/end_date filtering is inclusive on both ends.
- Listing is newest first; next_cursor is "<ISO-8601>|<id>" of the last row returned.
"""

transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

APPEND_FIELDS = {
    "item_id", "transaction_type", "quantity", "unit_cost", "reference_type",
    "reference_id", "note", "lot_number", "transaction_date",
}


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def _parse_cursor(raw):
    if not raw:
        return None
    try:
        cursor_dt, cursor_id = raw.split("|")
        return cursor_dt, int(cursor_id)
    except ValueError:
        raise ValidationError("cursor must be in format <ISO-8601>|<id>")


def format_cursor(transaction_date, transaction_id) -> str:
    return f"{to_utc_z(transaction_date, keep_microseconds=True)}|{transaction_id}"


@transactions_bp.get("")
@require_tenant
@require_permission("VIEW_INVENTORY")
def list_transactions_route():
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))

    filters = TransactionFilters(
        item_id=request.args.get("item_id", type=int),
        transaction_type=request.args.get("transaction_type") or None,
        start_date=request.args.get("start_date") or None,
        end_date=request.args.get("end_date") or None,
        reference_type=request.args.get("reference_type") or None,
        reference_id=request.args.get("reference_id") or None,
        lot_number=request.args.get("lot_number") or None,
    )
    rows = ledger_service.query_transactions(
        g.org_id,
        g.actor_id,
        filters,
        batch_size=limit,
        cursor=_parse_cursor(request.args.get("cursor")),
    )
    page = list(islice(rows, limit))

    next_cursor = None
    if len(page) == limit:
        last = page[-1]
        next_cursor = format_cursor(last.transaction_date, last.id)

    return jsonify({
        "items": [tx.to_dict() for tx in page],
        "next_cursor": next_cursor,
        "limit": limit,
    }), 200


@transactions_bp.post("")
@require_tenant
@require_permission("APPEND_TRANSACTION")
def append_transaction_route():
    """
    Append a ledger row.

    Body: {"item_id", "transaction_type", "quantity", "unit_cost"?,
    "reference_type"?, "reference_id"?, "note"?, "lot_number"?, "transaction_date"?}
    """
    payload = _json_body()
    unknown = set(payload) - APPEND_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    for field in ("item_id", "transaction_type", "quantity"):
        if field not in payload:
            raise ValidationError(f"{field} is required")

    tx = ledger_service.append_transaction(
        org_id=g.org_id,
        actor_id=g.actor_id,
        item_id=payload["item_id"],
        transaction_type=payload["transaction_type"],
        quantity=payload["quantity"],
        unit_cost=payload.get("unit_cost"),
        reference_type=payload.get("reference_type"),
        reference_id=payload.get("reference_id"),
        note=payload.get("note"),
        lot_number=payload.get("lot_number"),
        occurred_at=payload.get("transaction_date"),
    )
    return jsonify({"transaction": tx.to_dict(), "item": tx.item.to_dict()}), 201


@transactions_bp.get("/<int:transaction_id>")
@require_tenant
@require_permission("VIEW_INVENTORY")
def get_transaction_route(transaction_id: int):
    tx = ledger_service.get_transaction(g.org_id, transaction_id, g.actor_id)
    return jsonify({"transaction": tx.to_dict()}), 200


@transactions_bp.post("/<int:transaction_id>/void")
@require_tenant
def void_transaction_route(transaction_id: int):
    payload = _json_body()
    tx = ledger_service.void_transaction(
        transaction_id,
        g.actor_id,
        payload.get("reason"),
        org_id=g.org_id,
    )
    return jsonify({"transaction": tx.to_dict(), "item": tx.item.to_dict()}), 201
