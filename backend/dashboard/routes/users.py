# Overview: Flask API routes for user (employee) operations; parses input and returns JSON responses.

# backend/dashboard/routes/users.py
"""
User management routes.

Provides endpoints for:
- Listing the users the caller may see (visibility filter)
- Creating users (Users Create)
- Reading / updating one user (management guard, self always allowed)
- Editing the direct management relation
- Forced session revocation (full access)

Authorization lives in decorators and services; handlers only shape data.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import ApiError, ErrorCode, error_response, api_error_response
from ..extensions import db
from ..models import User, Role, Client
from ..permissions import PermissionModule, CrudAction, LegacyRole, LEGACY_FULL_ACCESS_TIERS, parse_legacy_role
from ..services import (
    auth_service,
    session_service,
    permission_service,
    visibility_service,
    management_service,
)
from ..services.management_service import ManagementError
from ..decorators import (
    require_auth,
    require_permission,
    require_full_access,
    require_user_management,
    authorize,
    deny,
)

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

PRIVILEGED_FIELDS = ("role_id", "legacy_role", "is_active")


def _audit(event_type: str, target_id: int, reason: str | None = None) -> None:
    permission_service.log_security_event(
        user_id=g.current_user.id,
        event_type=event_type,
        success=True,
        resource=request.path,
        action=request.method,
        reason=reason if reason else f"target={target_id}",
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def _forbidden(message: str, target_id=None, required: str | None = None):
    error = ManagementError(message, code=ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS, target_id=target_id)
    return deny(error, g.current_user, required=required)


def _resolve_role(actor: User, role_id) -> Role | None:
    """
    Validate a role the actor wants to give to someone.

    Only full-access users may hand out full-access roles.
    """
    if role_id is None:
        return None
    role = db.session.get(Role, management_service.parse_id(role_id, ErrorCode.VALIDATION_ERROR, "role"))
    if role is None:
        raise ApiError("Role not found", code=ErrorCode.ROLE_NOT_FOUND, status=404)
    if not role.is_active:
        raise ApiError("Cannot assign an inactive role")
    if role.full_access and not permission_service.has_full_access(actor):
        raise ManagementError(
            "Only full-access users can assign full-access roles",
            code=ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS,
            target_id=role.id,
        )
    return role


# =============================================================================
# LISTING
# =============================================================================

@users_bp.get("")
@require_auth
def list_users():
    """
    List visible users.

    Query params:
    - include_inactive: bool (default false)
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    user = g.current_user

    ids = visibility_service.accessible_employee_ids(user)
    query = db.session.query(User).filter(User.id.in_(ids))
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))

    users = [u.to_dict() for u in query.order_by(User.name).all()]
    return jsonify({"success": True, "users": users, "count": len(users)})


@users_bp.get("/team")
@require_auth
@authorize(LegacyRole.MANAGER)
def list_team():
    """DEPRECATED: legacy manager view of their direct team."""
    team = visibility_service.list_team_employees(g.current_user)
    return jsonify({"success": True, "users": [u.to_dict() for u in team], "count": len(team)})


# =============================================================================
# CREATE
# =============================================================================

@users_bp.post("")
@require_auth
@require_permission(PermissionModule.USERS, CrudAction.CREATE)
def create_user():
    """
    Create a user.

    Request body:
    - name, email, password: str (required)
    - role_id: int
    - legacy_role: str (full-access callers only)

    A caller without full access becomes the new user's manager.
    """
    actor = g.current_user
    try:
        data = request.get_json(silent=True) or {}
        full_access = permission_service.has_full_access(actor)

        role = _resolve_role(actor, data.get("role_id"))

        legacy_role = data.get("legacy_role") or LegacyRole.EMPLOYEE.value
        if not full_access and legacy_role != LegacyRole.EMPLOYEE.value:
            raise ManagementError(
                "Only full-access users can set a legacy role",
                code=ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS,
            )

        user = auth_service.create_user(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password"),
            legacy_role=legacy_role,
            role_id=role.id if role else None,
            created_by=actor,
        )
        if not full_access:
            user.managers = [actor]
        db.session.commit()

        _audit("USER_CREATED", user.id)
        return jsonify({"success": True, "user": user.to_dict(include_managers=True)}), 201

    except ManagementError as e:
        db.session.rollback()
        return deny(e, actor, required="USERS_CREATE")
    except ApiError as e:
        db.session.rollback()
        return api_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create user")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


# =============================================================================
# SINGLE USER
# =============================================================================

@users_bp.get("/<user_id>")
@require_auth
@require_user_management
def get_user(user_id):
    return jsonify({"success": True, "user": g.target_user.to_dict(include_managers=True)})


@users_bp.put("/<user_id>")
@require_auth
@require_user_management
def update_user(user_id):
    """
    Update a user.

    Request body (all optional): name, email, is_active, role_id, legacy_role.

    Self-service covers name and email. Other users need Users Update.
    A caller without full access can never leave the target with full
    access, including by clearing a Role over an admin legacy tag.
    Changing access (role, legacy tag, active flag) revokes the target's
    credentials.
    """
    actor = g.current_user
    target = g.target_user
    try:
        data = request.get_json(silent=True) or {}
        is_self = target.id == actor.id
        full_access = permission_service.has_full_access(actor)
        can_update = permission_service.has_permission(actor, PermissionModule.USERS, CrudAction.UPDATE)

        if not is_self and not can_update:
            return _forbidden("You do not have permission to update users", target.id, "Users:Update")

        privileged = {field: data[field] for field in PRIVILEGED_FIELDS if field in data}
        if privileged and is_self and not full_access:
            return _forbidden("You cannot change your own access", target.id, "FULL_ACCESS")
        if is_self and privileged.get("is_active") is False:
            return _forbidden("You cannot deactivate your own account", target.id)

        if "role_id" in privileged:
            role = _resolve_role(actor, privileged["role_id"])
            privileged["role_id"] = role.id if role else None

        if "legacy_role" in privileged:
            tier = parse_legacy_role(privileged["legacy_role"])
            if tier in LEGACY_FULL_ACCESS_TIERS and not full_access:
                return _forbidden("Only full-access users can grant admin legacy roles", target.id, "FULL_ACCESS")
            privileged["legacy_role"] = auth_service.ensure_legacy_role_allowed(
                privileged["legacy_role"], user_id=target.id
            )

        if privileged and not full_access and not permission_service.has_full_access(target):
            role_id_after = privileged.get("role_id", target.role_id)
            role_after = db.session.get(Role, role_id_after) if role_id_after is not None else None
            legacy_after = privileged.get("legacy_role", target.legacy_role)
            if permission_service.grants_full_access(role_after, legacy_after):
                return _forbidden("Only full-access users can grant full access", target.id, "FULL_ACCESS")

        management_service.check_owner_protection(actor, target, privileged)

        if "name" in data:
            name = (data.get("name") or "").strip()
            if not name:
                return error_response(ErrorCode.VALIDATION_ERROR, "Name cannot be empty", 400)
            target.name = name

        if "email" in data:
            email = auth_service.normalize_email(data.get("email"))
            if not email:
                return error_response(ErrorCode.VALIDATION_ERROR, "Email cannot be empty", 400)
            clash = db.session.query(User).filter(User.email == email, User.id != target.id).first()
            if clash:
                return error_response(ErrorCode.DUPLICATE, "A user with this email already exists", 400)
            target.email = email

        access_changed = False
        if "role_id" in privileged and privileged["role_id"] != target.role_id:
            target.role_id = privileged["role_id"]
            access_changed = True
        if "legacy_role" in privileged and privileged["legacy_role"] != target.legacy_role:
            target.legacy_role = privileged["legacy_role"]
            access_changed = True
        if "is_active" in privileged and bool(privileged["is_active"]) != target.is_active:
            target.is_active = bool(privileged["is_active"])
            access_changed = True

        db.session.commit()

        if access_changed:
            session_service.revoke_all_user_sessions(target.id)
            _audit("USER_ACCESS_CHANGED", target.id)
        else:
            _audit("USER_UPDATED", target.id)

        target = db.session.get(User, target.id)
        return jsonify({"success": True, "user": target.to_dict(include_managers=True)})

    except ManagementError as e:
        db.session.rollback()
        return deny(e, actor, required="USERS_UPDATE")
    except ApiError as e:
        db.session.rollback()
        return api_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update user")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@users_bp.put("/<user_id>/managers")
@require_auth
@require_permission(PermissionModule.USERS, CrudAction.UPDATE)
@require_user_management
def set_managers(user_id):
    """
    Replace the target's direct managers.

    Request body:
    - manager_ids: list[int]
    """
    actor = g.current_user
    target = g.target_user
    try:
        data = request.get_json(silent=True) or {}
        managers = management_service.set_user_managers(actor, target, data.get("manager_ids"))
        db.session.commit()

        _audit("MANAGERS_UPDATED", target.id, reason=f"target={target.id} managers={[m.id for m in managers]}")
        return jsonify({"success": True, "user": target.to_dict(include_managers=True)})

    except ManagementError as e:
        db.session.rollback()
        return deny(e, actor, required="USERS_UPDATE")
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update managers")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@users_bp.post("/<int:user_id>/revoke-sessions")
@require_auth
@require_full_access
def revoke_sessions(user_id: int):
    """Force-logout a user everywhere (compromise response)."""
    try:
        token_version = session_service.revoke_all_user_sessions(user_id)
    except ValueError:
        return error_response(ErrorCode.USER_NOT_FOUND, "User not found", 404)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to revoke user sessions")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)

    _audit("SESSIONS_REVOKED", user_id, reason=f"target={user_id} token_version={token_version}")
    return jsonify({"success": True, "message": "All sessions revoked"})


@users_bp.get("/<user_id>/clients")
@require_auth
@require_user_management
def list_user_clients(user_id):
    """Clients assigned to the target, limited to what the caller can see."""
    actor = g.current_user
    target = g.target_user

    ids = visibility_service.assigned_client_ids(target)
    if target.id != actor.id:
        ids &= visibility_service.accessible_client_ids(actor)

    clients = db.session.query(Client).filter(Client.id.in_(ids)).order_by(Client.name).all()
    return jsonify({"success": True, "clients": [c.to_dict() for c in clients], "count": len(clients)})
