# Overview: Flask API routes for role operations; parses input and returns JSON responses.

# backend/dashboard/routes/roles.py
"""
Role management routes.

All endpoints require full access. Writes go through role_service, which
sanitizes permission documents and protects system roles.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ErrorCode, error_response, api_error_response
from ..extensions import db
from ..permissions import get_schema_dict, PERMISSION_SCHEMA_VERSION
from ..services import role_service, permission_service
from ..services.role_service import RoleError
from ..decorators import require_auth, require_full_access

roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")


def _audit(event_type: str, role_id: int | None, reason: str | None = None) -> None:
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type=event_type,
        success=True,
        resource=request.path,
        action=request.method,
        reason=reason if reason else f"role_id={role_id}",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def _role_error(e: RoleError):
    db.session.rollback()
    if e.status == 403:
        current_app.logger.warning(
            "Role change denied: code=%s user_id=%s %s %s",
            e.code, g.current_user.id, request.method, request.path,
        )
    return api_error_response(e)


@roles_bp.get("")
@require_auth
@require_full_access
def list_roles():
    """List roles, system roles first, with the number of users holding each."""
    roles = [role.to_dict(user_count=count) for role, count in role_service.list_roles()]
    return jsonify({"success": True, "roles": roles, "count": len(roles)})


@roles_bp.get("/schema")
@require_auth
@require_full_access
def get_schema():
    """The closed module/action vocabulary used by the role editor."""
    return jsonify({
        "success": True,
        "version": PERMISSION_SCHEMA_VERSION,
        "schema": get_schema_dict(),
    })


@roles_bp.get("/<int:role_id>")
@require_auth
@require_full_access
def get_role(role_id: int):
    try:
        role = role_service.get_role_or_404(role_id)
    except RoleError as e:
        return api_error_response(e)
    return jsonify({"success": True, "role": role.to_dict(user_count=role_service.user_count(role))})


@roles_bp.post("")
@require_auth
@require_full_access
def create_role():
    """
    Create a role.

    Request body:
    - name: str (required, unique)
    - description: str
    - full_access: bool
    - is_team_manager: bool
    - permissions: {module: {action: bool}} (ignored when full_access)
    """
    try:
        data = request.get_json(silent=True) or {}
        role = role_service.create_role(data)
        _audit("ROLE_CREATED", role.id)
        return jsonify({"success": True, "role": role.to_dict(user_count=0)}), 201

    except RoleError as e:
        return _role_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create role")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@roles_bp.put("/<int:role_id>")
@require_auth
@require_full_access
def update_role(role_id: int):
    try:
        data = request.get_json(silent=True) or {}
        role = role_service.update_role(role_id, data)
        _audit("ROLE_UPDATED", role.id)
        return jsonify({"success": True, "role": role.to_dict(user_count=role_service.user_count(role))})

    except RoleError as e:
        return _role_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update role")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@roles_bp.patch("/<int:role_id>/toggle")
@require_auth
@require_full_access
def toggle_role(role_id: int):
    """Flip is_active. Holders of an inactive role get no permissions from it."""
    try:
        role = role_service.toggle_role(role_id)
        _audit("ROLE_TOGGLED", role.id, reason=f"role_id={role.id} is_active={role.is_active}")
        return jsonify({"success": True, "role": role.to_dict(user_count=role_service.user_count(role))})

    except RoleError as e:
        return _role_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to toggle role")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@roles_bp.delete("/<int:role_id>")
@require_auth
@require_full_access
def delete_role(role_id: int):
    try:
        name = role_service.delete_role(role_id)
        _audit("ROLE_DELETED", role_id, reason=f"role_id={role_id} name={name}")
        return jsonify({"success": True, "message": "Role deleted successfully"})

    except RoleError as e:
        return _role_error(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete role")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)
