# Overview: Flask API routes for organizations (tenants) and memberships.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_tenant, require_permission
from ..errors import ValidationError
from ..services import tenant_service

organizations_bp = Blueprint("organizations", __name__, url_prefix="/api")


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


@organizations_bp.post("/organizations")
@require_auth
def create_organization_route():
    """
    Create an organization; the caller becomes its admin.

    Body: {"name": str, "slug": str?, "settings": {}?}
    """
    payload = _json_body()
    name = payload.get("name")
    slug = payload.get("slug") or tenant_service.slugify(name or "")

    org, membership = tenant_service.create_organization(
        name=name,
        slug=slug,
        creator_user_id=g.actor_id,
        settings=payload.get("settings"),
    )
    return jsonify({"organization": org.to_dict(), "membership": membership.to_dict()}), 201


@organizations_bp.get("/organizations/mine")
@require_auth
def list_my_organizations_route():
    rows = tenant_service.list_user_organizations(g.actor_id)
    return jsonify({
        "items": [dict(org.to_dict(), role=role) for org, role in rows],
    }), 200


@organizations_bp.get("/organizations/slug-available")
@require_auth
def slug_available_route():
    slug = request.args.get("slug", "")
    slug = tenant_service.validate_slug(slug)
    return jsonify({"slug": slug, "available": tenant_service.is_slug_available(slug)}), 200


@organizations_bp.get("/organizations/current")
@require_tenant
def get_current_organization_route():
    org = tenant_service.get_organization(g.org_id, g.actor_id)
    return jsonify({"organization": org.to_dict(), "role": g.actor.role}), 200


@organizations_bp.patch("/organizations/current")
@require_tenant
@require_permission("MANAGE_ORGANIZATION")
def update_current_organization_route():
    org = tenant_service.update_organization(g.org_id, g.actor_id, _json_body())
    return jsonify({"organization": org.to_dict()}), 200


@organizations_bp.get("/organizations/current/audit-events")
@require_tenant
@require_permission("MANAGE_ORGANIZATION")
def list_audit_events_route():
    limit = request.args.get("limit", default=100, type=int)
    events = tenant_service.list_audit_events(
        g.org_id,
        g.actor_id,
        event_type=request.args.get("event_type") or None,
        limit=limit,
    )
    return jsonify({"items": [e.to_dict() for e in events]}), 200


@organizations_bp.get("/members")
@require_tenant
@require_permission("VIEW_MEMBERS")
def list_members_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    members = tenant_service.list_members(g.org_id, g.actor_id, include_inactive=include_inactive)
    return jsonify({"items": [m.to_dict() for m in members]}), 200


@organizations_bp.post("/members")
@require_tenant
@require_permission("INVITE_MEMBERS")
def invite_member_route():
    payload = _json_body()
    membership = tenant_service.invite_member(
        g.org_id,
        g.actor_id,
        user_id=payload.get("user_id"),
        role=payload.get("role", "operator"),
    )
    return jsonify({"membership": membership.to_dict()}), 201


@organizations_bp.post("/members/accept")
@require_auth
def accept_invitation_route():
    """Accept a pending invitation into the organization named by X-Org-Id."""
    if g.org_id is None:
        raise ValidationError("X-Org-Id header is required")
    membership = tenant_service.accept_invitation(g.org_id, g.actor_id)
    return jsonify({"membership": membership.to_dict()}), 200


@organizations_bp.patch("/members/<int:membership_id>")
@require_tenant
@require_permission("MANAGE_MEMBERS")
def change_member_role_route(membership_id: int):
    payload = _json_body()
    if "role" not in payload:
        raise ValidationError("role is required")
    membership = tenant_service.change_member_role(g.org_id, g.actor_id, membership_id, payload["role"])
    return jsonify({"membership": membership.to_dict()}), 200


@organizations_bp.delete("/members/<int:membership_id>")
@require_tenant
@require_permission("MANAGE_MEMBERS")
def remove_member_route(membership_id: int):
    membership = tenant_service.remove_member(g.org_id, g.actor_id, membership_id)
    return jsonify({"membership": membership.to_dict()}), 200
