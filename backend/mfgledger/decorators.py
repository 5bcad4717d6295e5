# Overview: Request identity and permission decorators for API routes.

"""
Identity comes from the upstream identity provider as two headers:

- X-User-Id: the authenticated user's id (required)
- X-Org-Id:  the tenant the request acts in (required for tenant routes)

The headers only name the caller; every role and tenant decision is
re-derived from stored memberships by the Tenant Directory.
"""

from functools import wraps

from flask import g, jsonify, request

from .services import permission_service, tenant_service

USER_HEADER = "X-User-Id"
ORG_HEADER = "X-Org-Id"


def _header_org_id():
    raw = request.headers.get(ORG_HEADER)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        return False


def require_auth(f):
    """
    Require an authenticated identity.

    Sets:
    - g.actor_id: the caller's user id
    - g.org_id: the requested tenant id, or None when not supplied
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get(USER_HEADER) or "").strip()
        if not actor_id:
            return jsonify({"error": "Authentication required", "kind": "authentication_required"}), 401

        org_id = _header_org_id()
        if org_id is False:
            return jsonify({"error": f"{ORG_HEADER} must be an integer", "kind": "validation_error"}), 400

        g.actor_id = actor_id
        g.org_id = org_id
        return f(*args, **kwargs)

    return decorated_function


def require_tenant(f):
    """
    Require an authenticated identity acting inside a tenant.

    Resolves the membership and sets g.actor (ActorContext). Raises
    AuthorizationError (rendered as 403) for non-members.
    """
    @wraps(f)
    @require_auth
    def decorated_function(*args, **kwargs):
        if g.org_id is None:
            return jsonify({"error": "Tenant context required", "kind": "tenant_required"}), 400

        g.actor = tenant_service.resolve_actor(g.org_id, g.actor_id)
        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission for the resolved actor.

    Must be applied below @require_tenant.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "actor"):
                return jsonify({"error": "Authentication required", "kind": "authentication_required"}), 401

            permission_service.require_permission(g.actor, permission_code)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
