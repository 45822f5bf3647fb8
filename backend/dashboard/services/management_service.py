# Overview: Service-layer operations for management; per-target guards and client assignment rules.

"""
Hierarchical Management Guards

WHY: Coarse permissions say what kind of thing a user may do; these guards
decide whether they may do it to one specific user or client.

RULES:
- A user may always read and update their own record
- Users Update (or full access) manages anyone; Users Read only manages
  users they created or directly manage
- Non-full-access users assign/unassign only clients they can access, and
  only to users in their own team
- Non-full-access users can never unassign themselves
- The owner (oldest superadmin) cannot be deactivated or demoted

Every guard raises ManagementError with a distinct code; nothing here
writes an HTTP response.
"""

import logging

from ..errors import ApiError, ErrorCode
from ..extensions import db
from ..models import User, Role, Client, ClientAssignment, user_managers
from ..permissions import PermissionModule, CrudAction, LegacyRole, parse_legacy_role
from ..time_utils import utcnow
from . import permission_service, visibility_service


logger = logging.getLogger(__name__)


class ManagementError(ApiError):
    """Per-target guard failure."""
    status = 403

    def __init__(self, message: str, code: str, status: int | None = None, actor_id: int | None = None, target_id=None):
        super().__init__(message, code=code, status=status)
        self.actor_id = actor_id
        self.target_id = target_id


def _deny(actor: User | None, target_id, message: str, code: str, status: int = 403):
    logger.warning(
        "Management guard denied: code=%s actor_id=%s target=%s",
        code, actor.id if actor else None, target_id,
    )
    raise ManagementError(message, code=code, status=status, actor_id=actor.id if actor else None, target_id=target_id)


def parse_id(value, code: str, label: str) -> int:
    """Coerce a path/body identifier to a positive int or raise 400."""
    if isinstance(value, bool):
        raise ManagementError(f"Invalid {label} ID", code=code, status=400)
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ManagementError(f"Invalid {label} ID", code=code, status=400, target_id=value)
    if parsed <= 0:
        raise ManagementError(f"Invalid {label} ID", code=code, status=400, target_id=value)
    return parsed


def _get_user_or_404(actor: User | None, user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        _deny(actor, user_id, "User not found", ErrorCode.USER_NOT_FOUND, status=404)
    return user


def _get_client_or_404(actor: User | None, client_id: int) -> Client:
    client = db.session.get(Client, client_id)
    if client is None:
        _deny(actor, client_id, "Client not found", ErrorCode.CLIENT_NOT_FOUND, status=404)
    return client


# =============================================================================
# USER MANAGEMENT
# =============================================================================

def can_manage_user(actor: User, target_id) -> User:
    """
    Gate access to one user record. Returns the target user.

    Raises ManagementError: INVALID_USER_ID (400), USER_NOT_FOUND (404),
    CANNOT_MANAGE_USER (403).
    """
    target_id = parse_id(target_id, ErrorCode.INVALID_USER_ID, "user")

    # Self-management exception
    if target_id == actor.id:
        return actor

    if permission_service.has_permission(actor, PermissionModule.USERS, CrudAction.UPDATE):
        return _get_user_or_404(actor, target_id)

    if permission_service.has_permission(actor, PermissionModule.USERS, CrudAction.READ):
        target = _get_user_or_404(actor, target_id)
        if visibility_service.is_in_subtree(actor, target):
            return target

    _deny(actor, target_id, "You do not have permission to manage this user", ErrorCode.CANNOT_MANAGE_USER)


def set_user_managers(actor: User, target: User, manager_ids: list) -> list[User]:
    """
    Replace the direct managers of target.

    Rejects self-management and any edge that would close a cycle
    (a manager managed, directly or through others, by target).
    The session is flushed, not committed.
    """
    if not isinstance(manager_ids, (list, tuple)):
        raise ManagementError("manager_ids must be a list", code=ErrorCode.VALIDATION_ERROR, status=400)

    managers = []
    for raw_id in dict.fromkeys(manager_ids):
        manager_id = parse_id(raw_id, ErrorCode.INVALID_USER_ID, "user")
        if manager_id == target.id:
            _deny(actor, target.id, "A user cannot manage themself", ErrorCode.MANAGEMENT_CYCLE, status=400)
        managers.append(_get_user_or_404(actor, manager_id))

    below_target = managed_descendant_ids(target.id)
    for manager in managers:
        if manager.id in below_target:
            _deny(
                actor,
                target.id,
                f"User {manager.id} is managed by this user and cannot also manage them",
                ErrorCode.MANAGEMENT_CYCLE,
                status=400,
            )

    target.managers = managers
    db.session.flush()
    return managers


def managed_descendant_ids(user_id: int) -> set[int]:
    """
    Every user reachable from user_id by following manager -> employee edges.

    Only used for cycle detection on edits; visibility never follows more
    than one edge. The visited set bounds the walk even if a cycle already
    exists in stored data.
    """
    seen: set[int] = set()
    frontier = {user_id}
    while frontier:
        rows = (
            db.session.query(user_managers.c.employee_id)
            .filter(user_managers.c.manager_id.in_(frontier))
            .all()
        )
        next_ids = {row[0] for row in rows} - seen - {user_id}
        seen |= next_ids
        frontier = next_ids
    return seen


# =============================================================================
# OWNER PROTECTION
# =============================================================================

def get_owner() -> User | None:
    """The oldest superadmin account."""
    return (
        db.session.query(User)
        .filter(User.legacy_role == LegacyRole.SUPERADMIN.value)
        .order_by(User.created_at.asc(), User.id.asc())
        .first()
    )


def check_owner_protection(actor: User, target: User, changes: dict) -> None:
    """
    Block updates that would lock the owner out or remove its privileges.

    changes holds the requested field values (is_active, legacy_role, role_id).
    """
    owner = get_owner()
    if owner is None or owner.id != target.id:
        return

    if "is_active" in changes and not changes["is_active"]:
        _deny(actor, target.id, "The system owner cannot be deactivated", ErrorCode.OWNER_PROTECTED)

    if "legacy_role" in changes and parse_legacy_role(changes["legacy_role"]) is not LegacyRole.SUPERADMIN:
        _deny(actor, target.id, "The system owner cannot be demoted", ErrorCode.OWNER_PROTECTED)

    if "role_id" in changes and changes["role_id"] != target.role_id:
        role = db.session.get(Role, changes["role_id"]) if changes["role_id"] is not None else None
        if role is None or not role.full_access or not role.is_active:
            _deny(actor, target.id, "The system owner must keep a full-access role", ErrorCode.OWNER_PROTECTED)


# =============================================================================
# CLIENT MANAGEMENT
# =============================================================================

def can_manage_clients(actor: User) -> None:
    """Coarse gate: full access, Clients Create or Clients Update."""
    if (
        permission_service.has_permission(actor, PermissionModule.CLIENTS, CrudAction.CREATE)
        or permission_service.has_permission(actor, PermissionModule.CLIENTS, CrudAction.UPDATE)
    ):
        return
    _deny(actor, None, "You do not have permission to manage clients", ErrorCode.CANNOT_MANAGE_CLIENTS)


def check_client_access(actor: User, client_id) -> Client:
    """
    Gate access to one client. Returns the client.

    Raises ManagementError: INVALID_CLIENT_ID (400), CLIENT_NOT_FOUND (404),
    CLIENT_ACCESS_DENIED (403).
    """
    client_id = parse_id(client_id, ErrorCode.INVALID_CLIENT_ID, "client")
    client = _get_client_or_404(actor, client_id)
    if not visibility_service.can_access_client(actor, client):
        _deny(actor, client_id, "You do not have access to this client", ErrorCode.CLIENT_ACCESS_DENIED)
    return client


def assign_client(actor: User, client_id, target_id) -> tuple[ClientAssignment, bool]:
    """
    Assign a client to a user. Returns (assignment, created).

    Full access: any active target that has a Role.
    Otherwise: the actor must have created the client or be assigned to it,
    and the target must be in the actor's team. Re-assigning refreshes the
    existing row.
    """
    client_id = parse_id(client_id, ErrorCode.INVALID_CLIENT_ID, "client")
    target_id = parse_id(target_id, ErrorCode.INVALID_USER_ID, "user")
    client = _get_client_or_404(actor, client_id)
    target = _get_user_or_404(actor, target_id)

    if permission_service.has_full_access(actor):
        if not target.is_active:
            _deny(
                actor,
                target_id,
                "Inactive users cannot be assigned clients",
                ErrorCode.INVALID_ASSIGNMENT_TARGET,
                status=400,
            )
        if target.role_id is None:
            _deny(
                actor,
                target_id,
                "Users without a role cannot be assigned clients",
                ErrorCode.INVALID_ASSIGNMENT_TARGET,
                status=400,
            )
    else:
        if not visibility_service.is_created_or_assigned(actor, client):
            _deny(actor, client_id, "You can only assign clients that are assigned to you", ErrorCode.CLIENT_ACCESS_DENIED)
        if not visibility_service.is_in_subtree(actor, target):
            _deny(actor, target_id, "You can only assign clients to your team members", ErrorCode.CANNOT_MANAGE_CLIENTS)

    assignment = db.session.query(ClientAssignment).filter_by(client_id=client.id, user_id=target.id).first()
    created = assignment is None
    if created:
        assignment = ClientAssignment(
            client_id=client.id,
            user_id=target.id,
            assigned_by_id=actor.id,
            assigned_at=utcnow(),
        )
        db.session.add(assignment)
    else:
        assignment.assigned_by_id = actor.id
        assignment.updated_at = utcnow()

    db.session.commit()
    return assignment, created


def unassign_client(actor: User, client_id, target_id) -> None:
    """
    Remove a client assignment.

    Same rules as assign_client, plus non-full-access users can never
    remove their own assignment.
    """
    client_id = parse_id(client_id, ErrorCode.INVALID_CLIENT_ID, "client")
    target_id = parse_id(target_id, ErrorCode.INVALID_USER_ID, "user")
    full_access = permission_service.has_full_access(actor)

    if not full_access and target_id == actor.id:
        _deny(actor, target_id, "You cannot unassign yourself from a client", ErrorCode.CANNOT_UNASSIGN_SELF)

    client = _get_client_or_404(actor, client_id)
    target = _get_user_or_404(actor, target_id)

    if not full_access:
        if not visibility_service.is_created_or_assigned(actor, client):
            _deny(actor, client_id, "You can only unassign clients that are assigned to you", ErrorCode.CLIENT_ACCESS_DENIED)
        if not visibility_service.is_in_subtree(actor, target):
            _deny(actor, target_id, "You can only unassign clients from your team members", ErrorCode.CANNOT_MANAGE_CLIENTS)

    assignment = db.session.query(ClientAssignment).filter_by(client_id=client.id, user_id=target.id).first()
    if assignment is None:
        _deny(actor, target_id, "Assignment not found", ErrorCode.ASSIGNMENT_NOT_FOUND, status=404)

    db.session.delete(assignment)
    db.session.commit()
