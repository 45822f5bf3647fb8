# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/dashboard/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on registration and password change
- Uniform INVALID_CREDENTIALS response for unknown email / wrong password
- Logout, password change and revoke-all bump token_version, so every
  credential issued before the call stops working
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..errors import ApiError, ErrorCode, error_response, api_error_response
from ..extensions import db
from ..models import User
from ..permissions import LegacyRole
from ..services import auth_service, session_service, permission_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _client_context() -> dict:
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


@auth_bp.post("/register")
def register_route():
    """
    Bootstrap registration.

    Open only while no users exist; the first account becomes the
    superadmin with the Super Admin system role. Everyone else is created
    by an authorized user via POST /api/users.
    """
    try:
        data = request.get_json(silent=True) or {}

        if db.session.query(User).count() > 0:
            return error_response(
                ErrorCode.REGISTRATION_CLOSED,
                "Registration is closed. Contact an administrator to create an account.",
                403,
            )

        user = auth_service.bootstrap_superadmin(
            name=data.get("name"),
            email=data.get("email"),
            password=data.get("password"),
        )
        permission_service.log_security_event(
            user_id=user.id,
            event_type="USER_CREATED",
            success=True,
            resource=request.path,
            action="REGISTER",
            reason="Bootstrap superadmin",
            **_client_context(),
        )

        return jsonify({
            "success": True,
            "user": user.to_dict(),
            "token": session_service.issue_token(user),
        }), 201

    except ApiError as e:
        db.session.rollback()
        return api_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to register user")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@auth_bp.post("/login")
def login_route():
    """
    Exchange email/password for an access credential.

    Inactive accounts are reported only after the password checks out.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not email or not password:
            return error_response(ErrorCode.VALIDATION_ERROR, "Email and password are required", 400)

        user = auth_service.authenticate(email, password)

        if not user:
            permission_service.log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                action="LOGIN",
                reason=ErrorCode.INVALID_CREDENTIALS,
                **_client_context(),
            )
            return error_response(ErrorCode.INVALID_CREDENTIALS, "Invalid email or password", 401)

        if not user.is_active:
            permission_service.log_security_event(
                user_id=user.id,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                action="LOGIN",
                reason=ErrorCode.AUTH_ACCOUNT_INACTIVE,
                **_client_context(),
            )
            return error_response(ErrorCode.AUTH_ACCOUNT_INACTIVE, "Account is deactivated", 403)

        permission_service.log_security_event(
            user_id=user.id,
            event_type="LOGIN_SUCCESS",
            success=True,
            resource=request.path,
            action="LOGIN",
            **_client_context(),
        )

        return jsonify({
            "success": True,
            "user": user.to_dict(),
            "capabilities": permission_service.capability_summary(user),
            "token": session_service.issue_token(user),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke every credential of the current user (token_version bump)."""
    try:
        user = g.current_user
        session_service.revoke_all_user_sessions(user.id)
        permission_service.log_security_event(
            user_id=user.id,
            event_type="LOGOUT",
            success=True,
            resource=request.path,
            action="LOGOUT",
            **_client_context(),
        )
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user with evaluated capabilities."""
    user = g.current_user
    return jsonify({
        "success": True,
        "user": user.to_dict(include_managers=True),
        "capabilities": permission_service.capability_summary(user),
    }), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """Change own password. Returns a fresh credential; older ones are revoked."""
    try:
        data = request.get_json(silent=True) or {}
        user = g.current_user

        auth_service.change_password(
            user,
            current_password=data.get("current_password"),
            new_password=data.get("new_password"),
        )
        permission_service.log_security_event(
            user_id=user.id,
            event_type="PASSWORD_CHANGED",
            success=True,
            resource=request.path,
            action="CHANGE_PASSWORD",
            **_client_context(),
        )

        user = db.session.get(User, user.id)
        return jsonify({
            "success": True,
            "message": "Password changed successfully",
            "token": session_service.issue_token(user),
        }), 200

    except ApiError as e:
        db.session.rollback()
        return api_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to change password")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@auth_bp.post("/revoke-all-sessions")
@require_auth
def revoke_all_sessions_route():
    """Sign out everywhere. The current credential stops working too."""
    try:
        user = g.current_user
        token_version = session_service.revoke_all_user_sessions(user.id)
        permission_service.log_security_event(
            user_id=user.id,
            event_type="SESSIONS_REVOKED",
            success=True,
            resource=request.path,
            action="REVOKE_ALL",
            reason=f"Self-service revoke, token_version={token_version}",
            **_client_context(),
        )
        return jsonify({"success": True, "message": "All sessions revoked"}), 200

    except Exception:
        current_app.logger.exception("Failed to revoke sessions")
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)


@auth_bp.get("/legacy-roles")
def legacy_roles_route():
    """Legacy tag vocabulary, for the user edit form."""
    return jsonify({"legacy_roles": [role.value for role in LegacyRole]}), 200
