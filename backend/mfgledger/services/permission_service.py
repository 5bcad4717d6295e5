# Overview: Authorization gate; role checks, tenant checks and audit logging.

"""
Authorization Gate

Every ledger and catalog mutation passes through here before any write is
attempted. The gate is the single enforcement point: whatever a client
displays, the server re-checks the caller's role and the target row's
tenant on every call.

DESIGN PRINCIPLES:
- Fail closed: a role grants only what DEFAULT_ROLE_PERMISSIONS lists
- Log denials only: grants are not logged
- Tenant isolation is checked against the stored row, never against the
  caller's claimed context alone
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from flask import has_request_context, request

from ..extensions import db
from ..errors import AuthorizationError, TenantMismatchError
from ..models import AuditEvent
from ..permissions import can_assign_role, role_has_permission
from ..time_utils import utcnow

if TYPE_CHECKING:
    from .tenant_service import ActorContext


def log_audit_event(
    user_id: str | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    org_id: int | None = None,
    commit: bool = True,
) -> AuditEvent:
    """
    Append an audit event with tenant context.

    event_type examples:
    - PERMISSION_DENIED
    - CROSS_TENANT_ACCESS_DENIED
    - MEMBERSHIP_REQUIRED
    - STOCK_DRIFT_CORRECTED

    commit=False adds the event to the caller's unit of work instead of
    committing on its own.
    """
    if resource is None and has_request_context():
        resource = request.path

    event = AuditEvent(
        user_id=user_id,
        org_id=org_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    if commit:
        db.session.commit()
    else:
        db.session.flush()

    return event


def has_permission(actor: ActorContext, permission_code: str) -> bool:
    return role_has_permission(actor.role, permission_code)


def require_permission(actor: ActorContext, permission_code: str) -> None:
    """
    Require the actor's role to grant permission_code.

    Raises AuthorizationError (and logs PERMISSION_DENIED) otherwise.
    """
    if has_permission(actor, permission_code):
        return

    log_audit_event(
        user_id=actor.actor_id,
        event_type="PERMISSION_DENIED",
        success=False,
        action=permission_code,
        reason=f"Role {actor.role!r} lacks {permission_code}",
        org_id=actor.org_id,
    )
    raise AuthorizationError(f"Permission denied: {permission_code} requires a higher role than {actor.role}")


def require_same_tenant(
    actor: ActorContext,
    row_org_id: int,
    *,
    entity: str,
    entity_id: int | None = None,
) -> None:
    """
    Core tenant isolation check against a row loaded from storage.

    Runs regardless of the caller's role, so a syntactically valid id for a
    row in another tenant is always rejected with TenantMismatchError.
    """
    if row_org_id == actor.org_id:
        return

    log_audit_event(
        user_id=actor.actor_id,
        event_type="CROSS_TENANT_ACCESS_DENIED",
        success=False,
        action=entity,
        reason=f"{entity} {entity_id} belongs to org {row_org_id}, not {actor.org_id}",
        org_id=actor.org_id,
    )
    raise TenantMismatchError(f"{entity} {entity_id} does not belong to the active organization")


def require_assignable_role(actor: ActorContext, target_role: str) -> None:
    """Admins may assign any role; managers may only bring in operators."""
    if can_assign_role(actor.role, target_role):
        return

    log_audit_event(
        user_id=actor.actor_id,
        event_type="PERMISSION_DENIED",
        success=False,
        action="ASSIGN_ROLE",
        reason=f"Role {actor.role!r} cannot assign {target_role!r}",
        org_id=actor.org_id,
    )
    raise AuthorizationError(f"Role {actor.role} cannot assign role {target_role}")
