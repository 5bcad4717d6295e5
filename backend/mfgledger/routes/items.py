# Overview: Flask API routes for the item catalog and stock reports.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_tenant, require_permission
from ..errors import ValidationError
from ..services import catalog_service, stock_service
from ..services.catalog_service import ItemFilters

items_bp = Blueprint("items", __name__, url_prefix="/api/items")

CREATE_FIELDS = {
    "sku", "name", "item_type", "unit", "description", "category",
    "reorder_point", "unit_cost", "status", "metadata", "initial_stock", "initial_note",
}


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


@items_bp.get("")
@require_tenant
@require_permission("VIEW_INVENTORY")
def list_items_route():
    """
    List items.

    Query params: item_type, status, category, search, low_stock=true,
    sort_by, sort_order (asc|desc).
    """
    filters = ItemFilters(
        item_type=request.args.get("item_type") or None,
        status=request.args.get("status") or None,
        category=request.args.get("category") or None,
        search=request.args.get("search") or None,
        low_stock_only=request.args.get("low_stock", "false").lower() == "true",
        sort_by=request.args.get("sort_by", "name"),
        sort_order=request.args.get("sort_order", "asc"),
    )
    items = catalog_service.list_items(g.org_id, g.actor_id, filters)
    return jsonify({"items": [item.to_dict() for item in items], "count": len(items)}), 200


@items_bp.post("")
@require_tenant
@require_permission("CREATE_ITEM")
def create_item_route():
    payload = _json_body()
    unknown = set(payload) - CREATE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    missing = sorted(f for f in ("sku", "name", "item_type", "unit") if f not in payload)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    item = catalog_service.create_item(org_id=g.org_id, actor_id=g.actor_id, **payload)
    return jsonify({"item": item.to_dict()}), 201


@items_bp.get("/low-stock")
@require_tenant
@require_permission("VIEW_INVENTORY")
def low_stock_route():
    items = stock_service.low_stock_report(g.org_id, g.actor_id)
    return jsonify({"items": [item.to_dict() for item in items], "count": len(items)}), 200


@items_bp.get("/summary")
@require_tenant
@require_permission("VIEW_INVENTORY")
def summary_route():
    return jsonify(catalog_service.inventory_summary(g.org_id, g.actor_id)), 200


@items_bp.get("/categories")
@require_tenant
@require_permission("VIEW_INVENTORY")
def categories_route():
    return jsonify({"categories": catalog_service.list_categories(g.org_id, g.actor_id)}), 200


@items_bp.get("/<int:item_id>")
@require_tenant
@require_permission("VIEW_INVENTORY")
def get_item_route(item_id: int):
    item = catalog_service.get_item(g.org_id, item_id, g.actor_id)
    return jsonify({"item": item.to_dict()}), 200


@items_bp.get("/<int:item_id>/stats")
@require_tenant
@require_permission("VIEW_INVENTORY")
def item_stats_route(item_id: int):
    return jsonify(catalog_service.item_stats(g.org_id, item_id, g.actor_id)), 200


@items_bp.patch("/<int:item_id>")
@require_tenant
def update_item_route(item_id: int):
    item = catalog_service.update_item(g.org_id, item_id, g.actor_id, _json_body())
    return jsonify({"item": item.to_dict()}), 200


@items_bp.post("/<int:item_id>/retire")
@require_tenant
def retire_item_route(item_id: int):
    item = catalog_service.retire_item(g.org_id, item_id, g.actor_id)
    return jsonify({"item": item.to_dict()}), 200


@items_bp.delete("/<int:item_id>")
@require_tenant
def delete_item_route(item_id: int):
    catalog_service.delete_item(g.org_id, item_id, g.actor_id)
    return "", 204


@items_bp.post("/<int:item_id>/recompute")
@require_tenant
def recompute_item_route(item_id: int):
    item = stock_service.recompute_stock(item_id, org_id=g.org_id, actor_id=g.actor_id)
    return jsonify({"item": item.to_dict()}), 200
