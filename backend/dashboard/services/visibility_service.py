# Overview: Service-layer operations for visibility; computes which clients and users a caller may read.

"""
Resource Visibility Filters

WHY: List and detail routes must never return rows outside the caller's
scope. These functions return ID sets; the routes run their own queries
filtered by them.

RULES:
- Recomputed on every call (no caching), so Role and assignment edits
  apply on the next request
- Management relation is followed one hop only (direct edges)
"""

from ..extensions import db
from ..models import User, Client, ClientAssignment, user_managers
from ..permissions import PermissionModule, CrudAction
from . import permission_service


def created_client_ids(user: User) -> set[int]:
    rows = db.session.query(Client.id).filter(Client.created_by_id == user.id).all()
    return {row[0] for row in rows}


def assigned_client_ids(user: User) -> set[int]:
    rows = db.session.query(ClientAssignment.client_id).filter(ClientAssignment.user_id == user.id).all()
    return {row[0] for row in rows}


def accessible_client_ids(user: User) -> set[int]:
    """
    Client IDs the user may read.

    - Full access: every client
    - Clients Read or Create: created by the user, or assigned to the user
    - Anyone else: assigned to the user only
    """
    if permission_service.has_full_access(user):
        return {row[0] for row in db.session.query(Client.id).all()}

    accessible = assigned_client_ids(user)
    if (
        permission_service.has_permission(user, PermissionModule.CLIENTS, CrudAction.READ)
        or permission_service.has_permission(user, PermissionModule.CLIENTS, CrudAction.CREATE)
    ):
        accessible |= created_client_ids(user)
    return accessible


def can_access_client(user: User, client: Client) -> bool:
    """Per-client form of accessible_client_ids, without loading the whole set."""
    if permission_service.has_full_access(user):
        return True

    assigned = db.session.query(ClientAssignment.id).filter_by(client_id=client.id, user_id=user.id).first()
    if assigned is not None:
        return True

    return client.created_by_id == user.id and (
        permission_service.has_permission(user, PermissionModule.CLIENTS, CrudAction.READ)
        or permission_service.has_permission(user, PermissionModule.CLIENTS, CrudAction.CREATE)
    )


def is_created_or_assigned(user: User, client: Client) -> bool:
    """Direct relationship to the client, regardless of Clients permissions."""
    if client.created_by_id == user.id:
        return True
    assigned = db.session.query(ClientAssignment.id).filter_by(client_id=client.id, user_id=user.id).first()
    return assigned is not None


def managed_user_ids(user: User) -> set[int]:
    """Users created by `user` or directly managed by `user`. Excludes `user`."""
    created = db.session.query(User.id).filter(User.created_by_id == user.id)
    managed = db.session.query(user_managers.c.employee_id).filter(user_managers.c.manager_id == user.id)
    ids = {row[0] for row in created.all()} | {row[0] for row in managed.all()}
    ids.discard(user.id)
    return ids


def is_in_subtree(manager: User, target: User) -> bool:
    """True when target was created by manager or lists manager among its managers."""
    if target.id == manager.id:
        return False
    if target.created_by_id == manager.id:
        return True
    edge = (
        db.session.query(user_managers.c.employee_id)
        .filter(user_managers.c.manager_id == manager.id, user_managers.c.employee_id == target.id)
        .first()
    )
    return edge is not None


def is_manager_tier(user: User) -> bool:
    """Manager tier for employee visibility: team manager, or Users Read."""
    return permission_service.is_team_manager(user) or permission_service.has_permission(
        user, PermissionModule.USERS, CrudAction.READ
    )


def accessible_employee_ids(user: User) -> set[int]:
    """
    User IDs the user may read.

    - Full access: everyone
    - Manager tier: users they created plus users they directly manage, never
      the manager themself
    - Anyone else: themself only
    """
    if permission_service.has_full_access(user):
        return {row[0] for row in db.session.query(User.id).all()}

    if is_manager_tier(user):
        return managed_user_ids(user)

    return {user.id}


def list_managers() -> list[User]:
    """Active users that count as managers for assignment-target listings."""
    users = db.session.query(User).filter(User.is_active.is_(True)).order_by(User.name).all()
    return [user for user in users if permission_service.is_team_manager(user)]


def list_employees() -> list[User]:
    """Active users that are not managers."""
    users = db.session.query(User).filter(User.is_active.is_(True)).order_by(User.name).all()
    return [user for user in users if not permission_service.is_team_manager(user)]


def list_team_employees(manager: User) -> list[User]:
    """Active users the given manager created or directly manages."""
    ids = managed_user_ids(manager)
    if not ids:
        return []
    return (
        db.session.query(User)
        .filter(User.id.in_(ids), User.is_active.is_(True))
        .order_by(User.name)
        .all()
    )


def client_query_for(user: User):
    """Client query scoped to accessible_client_ids, for list routes."""
    query = db.session.query(Client)
    if permission_service.has_full_access(user):
        return query
    return query.filter(Client.id.in_(accessible_client_ids(user)))
