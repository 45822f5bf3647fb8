# Overview: Service-layer operations for roles; create, update, toggle and delete dynamic Roles.

"""
Role Management

WHY: Roles are the only way to grant capabilities to non-legacy users, so
every write goes through here to keep the stored documents sanitized and
system roles untouched.

RULES:
- permissions is always stored as the full module -> action -> bool grid
- full_access roles store the all-true grid
- is_system roles cannot be modified, deactivated or deleted
- a role cannot be deleted while users still reference it
"""

from ..errors import ApiError, ErrorCode
from ..extensions import db
from ..models import Role, User
from ..permissions import (
    sanitize_permissions,
    full_permission_grid,
    LegacyRole,
    LEGACY_PERMISSION_FALLBACK,
    LEGACY_PAGE_ACCESS,
    PermissionModule,
    parse_legacy_role,
)


class RoleError(ApiError):
    """Role write rejected."""
    code = ErrorCode.VALIDATION_ERROR


def get_role_or_404(role_id: int) -> Role:
    role = db.session.get(Role, role_id)
    if role is None:
        raise RoleError("Role not found", code=ErrorCode.ROLE_NOT_FOUND, status=404)
    return role


def user_count(role: Role) -> int:
    return db.session.query(User).filter(User.role_id == role.id).count()


def list_roles() -> list[tuple[Role, int]]:
    """All roles, system roles first, then by name, with holder counts."""
    counts = dict(
        db.session.query(User.role_id, db.func.count(User.id))
        .filter(User.role_id.isnot(None))
        .group_by(User.role_id)
        .all()
    )
    roles = db.session.query(Role).order_by(Role.is_system.desc(), Role.name.asc()).all()
    return [(role, counts.get(role.id, 0)) for role in roles]


def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise RoleError("Role name is required")
    return name.strip()


def _ensure_unique_name(name: str, role_id: int | None = None) -> None:
    query = db.session.query(Role).filter(db.func.lower(Role.name) == name.lower())
    if role_id is not None:
        query = query.filter(Role.id != role_id)
    if query.first() is not None:
        raise RoleError("A role with this name already exists", code=ErrorCode.DUPLICATE)


def _permissions_for(full_access: bool, raw_permissions) -> dict:
    if full_access:
        return full_permission_grid()
    if raw_permissions is not None and not isinstance(raw_permissions, dict):
        raise RoleError("Permissions must be an object of module -> action -> boolean")
    return sanitize_permissions(raw_permissions or {})


def create_role(data: dict) -> Role:
    name = _clean_name(data.get("name"))
    _ensure_unique_name(name)

    full_access = bool(data.get("full_access", False))
    role = Role(
        name=name,
        description=data.get("description"),
        full_access=full_access,
        is_team_manager=bool(data.get("is_team_manager", False)),
        permissions=_permissions_for(full_access, data.get("permissions")),
        is_system=False,
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(role)
    db.session.commit()
    return role


def update_role(role_id: int, data: dict) -> Role:
    """
    Apply a partial update. Omitted fields keep their values.

    Changing full_access without sending permissions re-derives the grid
    from the stored document.
    """
    role = get_role_or_404(role_id)
    if role.is_system:
        raise RoleError("System roles cannot be modified", code=ErrorCode.ROLE_PROTECTED, status=403)

    if "name" in data:
        name = _clean_name(data.get("name"))
        _ensure_unique_name(name, role_id=role.id)
        role.name = name

    if "description" in data:
        role.description = data.get("description")

    if "is_team_manager" in data:
        role.is_team_manager = bool(data.get("is_team_manager"))

    if "is_active" in data:
        role.is_active = bool(data.get("is_active"))

    if "full_access" in data:
        role.full_access = bool(data.get("full_access"))

    if "permissions" in data or "full_access" in data:
        raw = data["permissions"] if "permissions" in data else role.permissions
        # Assign a new dict so the JSON column is marked dirty
        role.permissions = _permissions_for(role.full_access, raw)

    db.session.commit()
    return role


def toggle_role(role_id: int) -> Role:
    role = get_role_or_404(role_id)
    if role.is_system:
        raise RoleError("System roles cannot be deactivated", code=ErrorCode.ROLE_PROTECTED, status=403)

    role.is_active = not role.is_active
    db.session.commit()
    return role


def delete_role(role_id: int) -> str:
    """Delete a role. Returns its name for the audit log."""
    role = get_role_or_404(role_id)
    if role.is_system:
        raise RoleError("System roles cannot be deleted", code=ErrorCode.ROLE_PROTECTED, status=403)

    count = user_count(role)
    if count > 0:
        raise RoleError(
            f"Cannot delete role. {count} user(s) are assigned to this role.",
            code=ErrorCode.ROLE_IN_USE,
        )

    name = role.name
    db.session.delete(role)
    db.session.commit()
    return name


# =============================================================================
# LEGACY MIGRATION
# =============================================================================

def _legacy_equivalent_permissions(tier: LegacyRole) -> dict:
    """Grid granting exactly what the legacy fallback tables grant a tier."""
    raw = {module: sorted(actions) for module, actions in LEGACY_PERMISSION_FALLBACK.get(tier, {}).items()}
    raw[PermissionModule.PAGES.value] = sorted(LEGACY_PAGE_ACCESS.get(tier, frozenset()))
    return sanitize_permissions(raw)


# Role each legacy tier migrates to: (name, full_access, is_team_manager)
LEGACY_ROLE_TARGETS = {
    LegacyRole.SUPERADMIN: ("Super Admin", True, True),
    LegacyRole.ADMIN: ("Admin", True, True),
    LegacyRole.MANAGER: ("Manager", False, True),
    LegacyRole.EMPLOYEE: ("Employee", False, False),
    LegacyRole.TELECALLER: ("Telecaller", False, False),
}


def seed_default_roles() -> list[Role]:
    """
    Create one Role per legacy tier, matching what the tier gets today.

    Idempotent: existing roles (by name) are left untouched. The Super Admin
    role is a system role.
    """
    created = []
    for tier, (name, full_access, is_team_manager) in LEGACY_ROLE_TARGETS.items():
        if db.session.query(Role).filter_by(name=name).first():
            continue
        role = Role(
            name=name,
            description=f"Equivalent of the legacy '{tier.value}' role",
            full_access=full_access,
            is_team_manager=is_team_manager,
            permissions=full_permission_grid() if full_access else _legacy_equivalent_permissions(tier),
            is_system=tier is LegacyRole.SUPERADMIN,
            is_active=True,
        )
        db.session.add(role)
        created.append(role)
    db.session.commit()
    return created


def migrate_legacy_users(dry_run: bool = True) -> list[tuple[User, str]]:
    """
    Give every user without a Role the seeded Role for their legacy tier.

    Returns (user, role name) pairs. Users with an unknown tag are skipped.
    """
    planned = []
    users = db.session.query(User).filter(User.role_id.is_(None)).order_by(User.id).all()
    for user in users:
        target = LEGACY_ROLE_TARGETS.get(parse_legacy_role(user.legacy_role))
        if target is None:
            continue
        role = db.session.query(Role).filter_by(name=target[0]).first()
        if role is None:
            continue
        planned.append((user, role.name))
        if not dry_run:
            user.role_id = role.id

    if not dry_run:
        db.session.commit()
    return planned
