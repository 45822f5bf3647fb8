from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


# Direct manager -> employee edges. Visibility only ever follows one hop.
user_managers = db.Table(
    "user_managers",
    db.Column("manager_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    db.Column("employee_id", db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    db.Index("ix_user_managers_employee", "employee_id"),
)


class User(db.Model):
    """
    Dashboard accounts (Principals).

    WHY: Every request is attributed to exactly one user. Capabilities come
    from the assigned Role; legacy_role is only consulted when role_id is NULL.

    REVOCATION: token_version is embedded in every issued credential.
    Bumping it invalidates all outstanding credentials for the user.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.Index("ix_users_role_id", "role_id"),
        db.Index("ix_users_created_by", "created_by_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False)

    # Bcrypt hashed password, never serialized
    password_hash = db.Column(db.String(255), nullable=False)

    # DEPRECATED: superadmin | admin | manager | employee | telecaller
    legacy_role = db.Column(db.String(20), nullable=False, default="employee")

    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    token_version = db.Column(db.Integer, nullable=False, default=0, server_default="0")

    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    # Owning super-admin for managers created under one
    super_admin_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Joined so permission checks never need a second query
    role = db.relationship("Role", backref=db.backref("users", lazy="dynamic"), lazy="joined")
    created_by = db.relationship("User", foreign_keys=[created_by_id], remote_side=[id])
    super_admin = db.relationship("User", foreign_keys=[super_admin_id], remote_side=[id])
    managers = db.relationship(
        "User",
        secondary=user_managers,
        primaryjoin="User.id == user_managers.c.employee_id",
        secondaryjoin="User.id == user_managers.c.manager_id",
        backref=db.backref("employees", lazy="select"),
        lazy="select",
    )

    def to_dict(self, include_managers: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "legacy_role": self.legacy_role,
            "role_id": self.role_id,
            "role": self.role.to_summary() if self.role else None,
            "is_active": self.is_active,
            "created_by_id": self.created_by_id,
            "super_admin_id": self.super_admin_id,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }
        if include_managers:
            data["manager_ids"] = sorted(manager.id for manager in self.managers)
        return data


class Role(db.Model):
    """
    Dynamic permission bundle.

    permissions is a module -> action -> bool document. It is always stored
    sanitized against dashboard.permissions.PERMISSION_SCHEMA (see
    role_service), so every known key is present and nothing else is.

    RULES:
    - full_access short-circuits every check, but only while is_active
    - is_system roles cannot be edited, deactivated or deleted
    - a role cannot be deleted while any user references it
    """
    __tablename__ = "roles"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_roles_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)

    full_access = db.Column(db.Boolean, nullable=False, default=False)
    is_team_manager = db.Column(db.Boolean, nullable=False, default=False)
    permissions = db.Column(db.JSON, nullable=False, default=dict)

    is_system = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "full_access": self.full_access,
            "is_team_manager": self.is_team_manager,
            "is_active": self.is_active,
        }

    def to_dict(self, user_count: int | None = None) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "full_access": self.full_access,
            "is_team_manager": self.is_team_manager,
            "permissions": self.permissions or {},
            "is_system": self.is_system,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if user_count is not None:
            data["user_count"] = user_count
        return data
