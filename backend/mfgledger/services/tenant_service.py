"""
Tenant Directory: organizations, memberships and actor resolution.

The ledger core never reads an ambient "active tenant". Callers pass the
tenant explicitly and resolve_actor() turns (org_id, actor_id) into an
ActorContext from the stored membership on every call.

SECURITY INVARIANTS:
1. Only an active, joined membership in a non-inactive organization
   yields an ActorContext
2. A membership's role is the sole authorization input
3. An organization always keeps at least one active admin
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ..models import AuditEvent, Organization, Membership, ORGANIZATION_STATUSES, MEMBER_ROLES
from ..time_utils import utcnow
from . import permission_service
from .concurrency import lock_for_update, run_with_retry
from .permission_service import log_audit_event


SLUG_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
SLUG_MIN_LENGTH = 2
SLUG_MAX_LENGTH = 100


@dataclass(frozen=True)
class ActorContext:
    """Explicit per-call identity: who is acting, in which tenant, with which role."""
    actor_id: str
    org_id: int
    role: str


def validate_slug(slug: str) -> str:
    """Lowercase alphanumerics separated by single hyphens, 2-100 chars."""
    if not isinstance(slug, str) or not slug.strip():
        raise ValidationError("slug is required")
    slug = slug.strip()
    if len(slug) < SLUG_MIN_LENGTH:
        raise ValidationError(f"slug must be at least {SLUG_MIN_LENGTH} characters")
    if len(slug) > SLUG_MAX_LENGTH:
        raise ValidationError(f"slug must not exceed {SLUG_MAX_LENGTH} characters")
    if not SLUG_PATTERN.match(slug):
        raise ValidationError(
            "slug may only contain lowercase letters, numbers and single hyphens, "
            "and cannot start or end with a hyphen"
        )
    return slug


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower().strip())
    return slug.strip("-")[:SLUG_MAX_LENGTH].strip("-")


def _validate_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    name = name.strip()
    if len(name) < 2:
        raise ValidationError("name must be at least 2 characters")
    if len(name) > 255:
        raise ValidationError("name must not exceed 255 characters")
    return name


def _validate_role(role) -> str:
    if role not in MEMBER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(MEMBER_ROLES)}")
    return role


def _validate_user_id(user_id) -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("user_id is required")
    return user_id.strip()


# -- Actor resolution --

def get_active_membership(org_id: int, user_id: str) -> Membership | None:
    return (
        db.session.query(Membership)
        .filter_by(org_id=org_id, user_id=user_id, is_active=True)
        .filter(Membership.joined_at.isnot(None))
        .first()
    )


def resolve_actor(org_id, actor_id) -> ActorContext:
    """
    Resolve (org_id, actor_id) to an ActorContext.

    Raises AuthorizationError if the organization is missing or inactive,
    or if the actor has no active, joined membership in it. The reason is
    logged but not revealed to the caller.
    """
    if not actor_id:
        raise AuthorizationError("Actor identity required")
    if org_id is None:
        raise AuthorizationError("Organization context required")

    org = db.session.get(Organization, org_id)
    membership = get_active_membership(org_id, actor_id) if org is not None else None

    if org is None or not org.is_active or membership is None:
        if org is None:
            reason = f"Organization {org_id} not found"
        elif not org.is_active:
            reason = f"Organization {org_id} is inactive"
        else:
            reason = f"No active membership in organization {org_id}"
        log_audit_event(
            user_id=actor_id,
            event_type="MEMBERSHIP_REQUIRED",
            success=False,
            reason=reason,
            org_id=org.id if org is not None else None,
        )
        raise AuthorizationError("Not a member of this organization")

    return ActorContext(actor_id=actor_id, org_id=org.id, role=membership.role)


# -- Organizations --

def is_slug_available(slug: str) -> bool:
    return db.session.query(Organization.id).filter_by(slug=slug).first() is None


def create_organization(
    *,
    name: str,
    slug: str,
    creator_user_id: str,
    settings: dict | None = None,
    status: str = "trial",
) -> tuple[Organization, Membership]:
    """
    Create a tenant and make its creator a joined admin in the same commit.
    """
    name = _validate_name(name)
    slug = validate_slug(slug)
    creator_user_id = _validate_user_id(creator_user_id)
    if status not in ORGANIZATION_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORGANIZATION_STATUSES)}")
    if settings is not None and not isinstance(settings, dict):
        raise ValidationError("settings must be an object")

    if not is_slug_available(slug):
        raise ConflictError(f"slug {slug!r} is already taken")

    now = utcnow()
    org = Organization(name=name, slug=slug, status=status, settings=settings or {})
    db.session.add(org)
    db.session.flush()

    membership = Membership(
        org_id=org.id,
        user_id=creator_user_id,
        role="admin",
        invited_by=creator_user_id,
        invited_at=now,
        joined_at=now,
        is_active=True,
    )
    db.session.add(membership)

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"slug {slug!r} is already taken") from exc

    return org, membership


def get_organization(org_id: int, actor_id: str) -> Organization:
    actor = resolve_actor(org_id, actor_id)
    return db.session.get(Organization, actor.org_id)


def update_organization(org_id: int, actor_id: str, changes: dict) -> Organization:
    """
    Update name, slug, settings or status (admin only).

    Setting status='inactive' is the soft removal of a tenant.
    """
    actor = resolve_actor(org_id, actor_id)
    permission_service.require_permission(actor, "MANAGE_ORGANIZATION")

    allowed = {"name", "slug", "settings", "status"}
    unknown = set(changes) - allowed
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    org = db.session.get(Organization, actor.org_id)

    # Validate everything before touching the row
    patch = {}
    if "name" in changes:
        patch["name"] = _validate_name(changes["name"])
    if "slug" in changes:
        slug = validate_slug(changes["slug"])
        if slug != org.slug and not is_slug_available(slug):
            raise ConflictError(f"slug {slug!r} is already taken")
        patch["slug"] = slug
    if "settings" in changes:
        if not isinstance(changes["settings"], dict):
            raise ValidationError("settings must be an object")
        patch["settings"] = dict(changes["settings"])
    if "status" in changes:
        if changes["status"] not in ORGANIZATION_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(ORGANIZATION_STATUSES)}")
        patch["status"] = changes["status"]

    for key, value in patch.items():
        setattr(org, key, value)

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError("organization update conflicts with existing data") from exc
    return org


def list_user_organizations(user_id: str) -> list[tuple[Organization, str]]:
    """Organizations the user has joined, with the user's role in each."""
    rows = (
        db.session.query(Organization, Membership.role)
        .join(Membership, Membership.org_id == Organization.id)
        .filter(
            Membership.user_id == user_id,
            Membership.is_active.is_(True),
            Membership.joined_at.isnot(None),
        )
        .order_by(Organization.name)
        .all()
    )
    return [(org, role) for org, role in rows]


# -- Memberships --

def list_members(org_id: int, actor_id: str, include_inactive: bool = False) -> list[Membership]:
    actor = resolve_actor(org_id, actor_id)
    permission_service.require_permission(actor, "VIEW_MEMBERS")

    q = db.session.query(Membership).filter_by(org_id=actor.org_id)
    if not include_inactive:
        q = q.filter_by(is_active=True)
    return q.order_by(Membership.invited_at, Membership.id).all()


def invite_member(org_id: int, actor_id: str, *, user_id: str, role: str = "operator") -> Membership:
    """
    Invite a user into the organization.

    Admins may invite any role, managers only operators. A previously
    removed membership is re-opened as a fresh invitation.
    """
    actor = resolve_actor(org_id, actor_id)
    permission_service.require_permission(actor, "INVITE_MEMBERS")
    user_id = _validate_user_id(user_id)
    role = _validate_role(role)
    permission_service.require_assignable_role(actor, role)

    now = utcnow()
    existing = db.session.query(Membership).filter_by(org_id=actor.org_id, user_id=user_id).first()
    if existing is not None:
        if existing.is_active:
            raise ConflictError(f"user {user_id} is already a member")
        existing.role = role
        existing.invited_by = actor.actor_id
        existing.invited_at = now
        existing.joined_at = None
        existing.is_active = True
        membership = existing
    else:
        membership = Membership(
            org_id=actor.org_id,
            user_id=user_id,
            role=role,
            invited_by=actor.actor_id,
            invited_at=now,
            joined_at=None,
            is_active=True,
        )
        db.session.add(membership)

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"user {user_id} is already a member") from exc
    return membership


def accept_invitation(org_id: int, user_id: str) -> Membership:
    membership = (
        db.session.query(Membership)
        .filter_by(org_id=org_id, user_id=user_id, is_active=True)
        .first()
    )
    if membership is None:
        raise NotFoundError("No pending invitation for this organization")
    if membership.joined_at is not None:
        raise ConflictError("Invitation already accepted")

    membership.joined_at = max(utcnow(), membership.invited_at)
    db.session.commit()
    return membership


def add_member(org_id: int, user_id: str, role: str = "operator") -> Membership:
    """
    Operational bootstrap (CLI): add a joined membership without an inviting actor.

    Re-activates a removed membership with the given role.
    """
    if db.session.get(Organization, org_id) is None:
        raise NotFoundError(f"Organization {org_id} not found")
    user_id = _validate_user_id(user_id)
    role = _validate_role(role)

    now = utcnow()
    membership = db.session.query(Membership).filter_by(org_id=org_id, user_id=user_id).first()
    if membership is not None:
        if membership.is_active:
            raise ConflictError(f"user {user_id} is already a member")
        membership.role = role
        membership.invited_at = now
        membership.joined_at = now
        membership.is_active = True
    else:
        membership = Membership(
            org_id=org_id,
            user_id=user_id,
            role=role,
            invited_by=None,
            invited_at=now,
            joined_at=now,
            is_active=True,
        )
        db.session.add(membership)

    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(f"user {user_id} is already a member") from exc
    return membership


def _get_membership_in_tenant(actor: ActorContext, membership_id: int) -> Membership:
    membership = db.session.get(Membership, membership_id)
    if membership is None:
        raise NotFoundError(f"Membership {membership_id} not found")
    permission_service.require_same_tenant(
        actor, membership.org_id, entity="membership", entity_id=membership_id
    )
    return membership


def _lock_active_admins(org_id: int) -> list[Membership]:
    return lock_for_update(
        db.session.query(Membership)
        .filter_by(org_id=org_id, role="admin", is_active=True)
        .filter(Membership.joined_at.isnot(None))
    ).all()


def _is_active_admin(membership: Membership) -> bool:
    return membership.role == "admin" and membership.is_active and membership.joined_at is not None


def _guard_last_admin(org_id: int) -> None:
    """Checked after the change is flushed, inside the writer's transaction."""
    db.session.flush()
    remaining = (
        db.session.query(Membership)
        .filter_by(org_id=org_id, role="admin", is_active=True)
        .filter(Membership.joined_at.isnot(None))
        .count()
    )
    if remaining < 1:
        raise ConflictError("An organization must keep at least one active admin")


def change_member_role(org_id: int, actor_id: str, membership_id: int, role: str) -> Membership:
    actor = resolve_actor(org_id, actor_id)
    _get_membership_in_tenant(actor, membership_id)
    permission_service.require_permission(actor, "MANAGE_MEMBERS")
    role = _validate_role(role)

    def _op():
        # Concurrent demotions of the last admins serialize on these rows
        _lock_active_admins(actor.org_id)
        locked = db.session.get(Membership, membership_id, populate_existing=True)
        if locked.role != role:
            was_admin = _is_active_admin(locked)
            locked.role = role
            if was_admin:
                _guard_last_admin(actor.org_id)
        db.session.commit()
        return locked

    return run_with_retry(_op)


def remove_member(org_id: int, actor_id: str, membership_id: int) -> Membership:
    """Soft-remove a member; history and audit rows keep their user ids."""
    actor = resolve_actor(org_id, actor_id)
    _get_membership_in_tenant(actor, membership_id)
    permission_service.require_permission(actor, "MANAGE_MEMBERS")

    def _op():
        _lock_active_admins(actor.org_id)
        locked = db.session.get(Membership, membership_id, populate_existing=True)
        if locked.is_active:
            was_admin = _is_active_admin(locked)
            locked.is_active = False
            if was_admin:
                _guard_last_admin(actor.org_id)
        db.session.commit()
        return locked

    return run_with_retry(_op)


# -- Audit --

def list_audit_events(org_id: int, actor_id: str, *, event_type: str | None = None, limit: int = 100) -> list[AuditEvent]:
    """Most recent audit events for the tenant (admin only)."""
    actor = resolve_actor(org_id, actor_id)
    permission_service.require_permission(actor, "MANAGE_ORGANIZATION")

    q = db.session.query(AuditEvent).filter(AuditEvent.org_id == actor.org_id)
    if event_type:
        q = q.filter(AuditEvent.event_type == event_type)
    limit = max(1, min(limit, 500))
    return q.order_by(AuditEvent.occurred_at.desc(), AuditEvent.id.desc()).limit(limit).all()
