# Overview: Flask API routes for client operations; parses input and returns JSON responses.

# backend/dashboard/routes/clients.py
"""
Client and client-assignment routes.

List and detail routes are scoped by the visibility filters. Assignment
routes pass the coarse client-management gate first, then the per-client
and per-target rules in management_service.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ErrorCode, error_response
from ..extensions import db
from ..models import Client, User
from ..permissions import PermissionModule, CrudAction
from ..services import permission_service, visibility_service, management_service
from ..services.management_service import ManagementError
from ..decorators import (
    require_auth,
    require_permission,
    require_client_access,
    require_client_management,
    deny,
)

clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


def _audit(event_type: str, client_id: int, target_id: int) -> None:
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type=event_type,
        success=True,
        resource=request.path,
        action=request.method,
        reason=f"client={client_id} target={target_id}",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


# =============================================================================
# CLIENTS
# =============================================================================

@clients_bp.get("")
@require_auth
def list_clients():
    """
    List clients visible to the caller.

    Query params:
    - include_inactive: bool (default false)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"

    query = visibility_service.client_query_for(g.current_user)
    if not include_inactive:
        query = query.filter(Client.is_active.is_(True))

    clients = [c.to_dict() for c in query.order_by(Client.name).all()]
    return jsonify({"success": True, "clients": clients, "count": len(clients)})


@clients_bp.post("")
@require_auth
@require_permission(PermissionModule.CLIENTS, CrudAction.CREATE)
def create_client():
    """
    Create a client owned by the caller.

    Request body:
    - name: str (required)
    - client_type: str
    - email: str
    """
    try:
        data = request.get_json(silent=True) or {}
        name = (data.get("name") or "").strip()
        if not name:
            return error_response(ErrorCode.VALIDATION_ERROR, "Client name is required", 400)

        client = Client(
            name=name,
            client_type=data.get("client_type"),
            email=data.get("email"),
            is_active=True,
            created_by_id=g.current_user.id,
        )
        db.session.add(client)
        db.session.commit()
        return jsonify({"success": True, "client": client.to_dict()}), 201

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create client")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@clients_bp.get("/<client_id>")
@require_auth
@require_client_access
def get_client(client_id):
    client = g.target_client
    data = client.to_dict()
    data["assigned_user_ids"] = sorted(a.user_id for a in client.assignments)
    return jsonify({"success": True, "client": data})


@clients_bp.delete("/<client_id>")
@require_auth
@require_permission(PermissionModule.CLIENTS, CrudAction.DELETE)
@require_client_access
def deactivate_client(client_id):
    """Soft-delete: the client is hidden from lists but its assignments are kept."""
    try:
        client = g.target_client
        client.is_active = False
        db.session.commit()
        return jsonify({"success": True, "client": client.to_dict()})

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to deactivate client")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


# =============================================================================
# ASSIGNMENTS
# =============================================================================

@clients_bp.post("/<client_id>/assign")
@require_auth
@require_client_management
def assign_client(client_id):
    """
    Assign the client to a user.

    Request body:
    - user_id: int (required)
    """
    actor = g.current_user
    try:
        data = request.get_json(silent=True) or {}
        assignment, created = management_service.assign_client(actor, client_id, data.get("user_id"))
        _audit("CLIENT_ASSIGNED", assignment.client_id, assignment.user_id)
        return jsonify({"success": True, "assignment": assignment.to_dict()}), 201 if created else 200

    except ManagementError as e:
        db.session.rollback()
        return deny(e, actor, required="ASSIGN_CLIENT")
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to assign client")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@clients_bp.delete("/<client_id>/assign/<user_id>")
@require_auth
@require_client_management
def unassign_client(client_id, user_id):
    actor = g.current_user
    try:
        management_service.unassign_client(actor, client_id, user_id)
        _audit("CLIENT_UNASSIGNED", int(client_id), int(user_id))
        return jsonify({"success": True, "message": "Client unassigned successfully"})

    except ManagementError as e:
        db.session.rollback()
        return deny(e, actor, required="UNASSIGN_CLIENT")
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to unassign client")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@clients_bp.get("/assignment/managers")
@require_auth
@require_client_management
def list_assignment_managers():
    """Assignment targets that count as managers. Non-full-access callers see only themself."""
    actor = g.current_user
    if permission_service.has_full_access(actor):
        managers = visibility_service.list_managers()
    else:
        managers = [actor] if permission_service.is_team_manager(actor) else []
    return jsonify({"success": True, "users": [m.to_dict() for m in managers], "count": len(managers)})


@clients_bp.get("/assignment/managers/<manager_id>/employees")
@require_auth
@require_client_management
def list_manager_employees(manager_id):
    """Active users a manager created or directly manages."""
    actor = g.current_user
    try:
        manager_id = management_service.parse_id(manager_id, ErrorCode.INVALID_USER_ID, "user")
        if manager_id != actor.id and not permission_service.has_full_access(actor):
            raise ManagementError(
                "You can only list your own team members",
                code=ErrorCode.CANNOT_MANAGE_CLIENTS,
                target_id=manager_id,
            )
        manager = db.session.get(User, manager_id)
        if manager is None:
            return error_response(ErrorCode.USER_NOT_FOUND, "User not found", 404)

    except ManagementError as e:
        return deny(e, actor, required="MANAGE_CLIENTS")

    employees = visibility_service.list_team_employees(manager)
    return jsonify({"success": True, "users": [u.to_dict() for u in employees], "count": len(employees)})


@clients_bp.get("/assignment/employees")
@require_auth
@require_client_management
def list_assignment_employees():
    """Active non-manager users. Non-full-access callers see their own team."""
    actor = g.current_user
    if permission_service.has_full_access(actor):
        employees = visibility_service.list_employees()
    else:
        employees = visibility_service.list_team_employees(actor)
    return jsonify({"success": True, "users": [u.to_dict() for u in employees], "count": len(employees)})
