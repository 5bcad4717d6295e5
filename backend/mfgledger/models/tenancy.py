from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


ORGANIZATION_STATUSES = ("trial", "active", "inactive")
MEMBER_ROLES = ("admin", "manager", "operator")


class Organization(db.Model):
    """
    Multi-tenant root: every tenant is an Organization.

    All items, transactions and memberships belong to exactly one
    organization. No data may cross organization boundaries.

    Organizations are never hard-deleted; status='inactive' is the only
    form of removal.
    """
    __tablename__ = "organizations"
    __table_args__ = (
        db.CheckConstraint("length(trim(name)) > 0", name="ck_organizations_name_not_empty"),
        db.CheckConstraint(
            "status IN ('trial', 'active', 'inactive')",
            name="ck_organizations_status",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(100), nullable=False, unique=True, index=True)

    status = db.Column(db.String(16), nullable=False, default="trial", index=True)
    settings = db.Column(db.JSON, nullable=False, default=dict)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_active(self) -> bool:
        return self.status != "inactive"

    def __repr__(self) -> str:
        return f"<Organization id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "status": self.status,
            "settings": self.settings or {},
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Membership(db.Model):
    """
    Binds an external user identity to one organization with one role.

    The role is the sole authorization input for ledger operations.
    joined_at stays NULL until the invitation is accepted; a pending
    membership grants nothing.
    """
    __tablename__ = "memberships"
    __table_args__ = (
        db.UniqueConstraint("org_id", "user_id", name="uq_memberships_org_user"),
        db.CheckConstraint(
            "role IN ('admin', 'manager', 'operator')",
            name="ck_memberships_role",
        ),
        db.CheckConstraint(
            "joined_at IS NULL OR joined_at >= invited_at",
            name="ck_memberships_joined_after_invited",
        ),
        db.Index("ix_memberships_user_active", "user_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    # Identity provider's user id (opaque string)
    user_id = db.Column(db.String(128), nullable=False)
    role = db.Column(db.String(16), nullable=False, default="operator")

    invited_by = db.Column(db.String(128), nullable=True)
    invited_at = db.Column(db.DateTime(timezone=True), nullable=False)
    joined_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    organization = db.relationship("Organization", backref=db.backref("memberships", lazy=True))

    @property
    def has_joined(self) -> bool:
        return self.joined_at is not None

    def __repr__(self) -> str:
        return f"<Membership org_id={self.org_id} user_id={self.user_id!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "user_id": self.user_id,
            "role": self.role,
            "invited_by": self.invited_by,
            "invited_at": to_utc_z(self.invited_at),
            "joined_at": to_utc_z(self.joined_at),
            "is_active": self.is_active,
        }
