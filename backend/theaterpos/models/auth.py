from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..time_utils import to_utc_z


ROLE_SUPER_ADMIN = "super_admin"
ROLE_THEATER_ADMIN = "theater_admin"
ROLE_THEATER_STAFF = "theater_staff"
ROLE_CUSTOMER = "customer"

USER_ROLES = (ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN, ROLE_THEATER_STAFF, ROLE_CUSTOMER)
THEATER_BOUND_ROLES = (ROLE_THEATER_ADMIN, ROLE_THEATER_STAFF)

STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
STATUS_SUSPENDED = "suspended"
USER_STATUSES = (STATUS_ACTIVE, STATUS_INACTIVE, STATUS_SUSPENDED)


class User(db.Model):
    """
    User accounts for authentication and attribution.

    Usernames are lowercased and unique across all theaters. theater_id is
    required for theater_admin and theater_staff and must be empty for
    super_admin. role_id names the Role record (within the bound theater)
    whose page permissions apply to this user.

    SECURITY: to_dict() never includes the credential hash, tokens, the
    login-attempt counter or lock_until.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("login_attempts >= 0", name="ck_users_login_attempts_nonneg"),
        db.Index("ix_users_theater_id", "theater_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    username = db.Column(db.String(64), nullable=False, unique=True, index=True)
    email = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(32), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(32), nullable=False, default=ROLE_CUSTOMER)
    theater_id = db.Column(db.Integer, db.ForeignKey("theaters.id"), nullable=True)
    role_id = db.Column(db.String(64), nullable=True)

    # Coarse resource permissions: [{"resource": "...", "actions": ["read", ...]}]
    permissions = db.Column(db.JSON, nullable=False, default=list)

    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE)

    login_attempts = db.Column(db.Integer, nullable=False, default=0)
    lock_until = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    theater = db.relationship("Theater", backref=db.backref("users", lazy=True))
    auth_tokens = db.relationship(
        "AuthToken",
        back_populates="user",
        cascade="all, delete-orphan",
        order_by="AuthToken.id",
    )

    def is_locked(self, now: datetime) -> bool:
        return self.lock_until is not None and self.lock_until > now

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "full_name": self.full_name,
            "phone_number": self.phone_number,
            "role": self.role,
            "theater_id": self.theater_id,
            "role_id": self.role_id,
            "permissions": list(self.permissions or []),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class AuthToken(db.Model):
    """
    Bearer token issued at login.

    Tokens are stored verbatim and never serialized. Each user keeps at most
    the five most recent tokens (eviction by insertion order).
    """
    __tablename__ = "auth_tokens"
    __table_args__ = (
        db.Index("ix_auth_tokens_user_id", "user_id"),
        db.Index("ix_auth_tokens_expires_at", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = db.Column(db.String(128), nullable=False, unique=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    device_info = db.Column(db.String(512), nullable=True)

    user = db.relationship("User", back_populates="auth_tokens")

    def to_dict(self) -> dict:
        # The token value itself is deliberately absent
        return {
            "id": self.id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "device_info": self.device_info,
        }


class Role(db.Model):
    """
    Theater-scoped role carrying the page-permission list.

    permissions is an embedded list of
    {"page", "page_name", "category", "has_access", "updated_at"} entries.
    The list is mutated only through page_access_service/role_service, which
    compare-and-swap on version_id.
    """
    __tablename__ = "roles"
    __table_args__ = (
        db.UniqueConstraint("theater_id", "normalized_name", name="uq_roles_theater_name"),
        db.UniqueConstraint("theater_id", "role_id", name="uq_roles_theater_role_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    theater_id = db.Column(db.Integer, db.ForeignKey("theaters.id"), nullable=False, index=True)
    role_id = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(100), nullable=False)
    normalized_name = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)

    permissions = db.Column(db.JSON, nullable=False, default=list)

    is_default = db.Column(db.Boolean, nullable=False, default=False)
    can_delete = db.Column(db.Boolean, nullable=False, default=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    theater = db.relationship("Theater", backref=db.backref("roles", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "theater_id": self.theater_id,
            "role_id": self.role_id,
            "name": self.name,
            "description": self.description,
            "permissions": [dict(entry) for entry in (self.permissions or [])],
            "is_default": self.is_default,
            "can_delete": self.can_delete,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
