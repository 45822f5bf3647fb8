# Overview: Request authentication and authorization decorators for API routes.

from functools import wraps
from flask import request, g, current_app

from .extensions import db
from .errors import ApiError, ErrorCode, error_response, api_error_response
from .permissions import key_of
from .services import session_service, permission_service, management_service
from .services.management_service import ManagementError


def _is_authenticated() -> bool:
    return getattr(g, 'current_user', None) is not None


def _audit_rejection(
    event_type: str,
    user,
    code: str,
    required: str | None = None,
    target=None,
    user_id: int | None = None,
) -> None:
    """
    Log one rejection to the app logger and the security_events table.

    Never includes the credential, password hash or permission document.
    """
    actor_id = user.id if user is not None else user_id
    role_name = permission_service.role_label(user) if user is not None else None
    current_app.logger.warning(
        "%s code=%s user_id=%s role=%s required=%s target=%s %s %s ip=%s",
        event_type, code, actor_id, role_name, required, target,
        request.method, request.path, request.remote_addr,
    )
    reason = f"{code} required={required}" if required else code
    if target is not None:
        reason = f"{reason} target={target}"
    permission_service.log_security_event(
        user_id=actor_id,
        event_type=event_type,
        success=False,
        resource=request.path,
        action=f"{request.method} {required}" if required else request.method,
        reason=reason,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )


def _reject(response, event_type: str, user, code: str, required: str | None = None, target=None):
    """
    Audit a rejection, then return `response`.

    A failed audit write still answers with the shared error shape (500).
    """
    try:
        _audit_rejection(event_type, user, code, required=required, target=target)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record %s for %s %s", event_type, request.method, request.path)
        return error_response(ErrorCode.SERVER_ERROR, "Internal server error", 500)
    return response


def deny(error: ApiError, user=None, required: str | None = None, target=None):
    """Audit a guard failure raised by a service and return the rejection."""
    if isinstance(error, ManagementError) and target is None:
        target = error.target_id
    event_type = "MANAGEMENT_DENIED" if isinstance(error, ManagementError) else "PERMISSION_DENIED"
    return _reject(api_error_response(error), event_type, user, error.code, required=required, target=target)


def _authentication_required():
    return error_response(ErrorCode.AUTH_REQUIRED, "Authentication required", 401)


def require_auth(f):
    """
    Require a valid access credential.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    Rejections (see ErrorCode):
    - 401 AUTH_TOKEN_MISSING / AUTH_TOKEN_INVALID / AUTH_TOKEN_EXPIRED /
      AUTH_INVALID_TOKEN_TYPE / AUTH_USER_NOT_FOUND / AUTH_TOKEN_REVOKED
    - 403 AUTH_ACCOUNT_INACTIVE
    - 500 AUTH_ERROR when the check itself fails
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            auth_header = request.headers.get("Authorization")

            if not auth_header or not auth_header.startswith("Bearer "):
                _audit_rejection("AUTH_REJECTED", None, ErrorCode.AUTH_TOKEN_MISSING)
                return error_response(ErrorCode.AUTH_TOKEN_MISSING, "Authentication token is required", 401)

            token = auth_header.split(" ", 1)[1].strip()
            if not token:
                _audit_rejection("AUTH_REJECTED", None, ErrorCode.AUTH_TOKEN_MISSING)
                return error_response(ErrorCode.AUTH_TOKEN_MISSING, "Authentication token is required", 401)

            try:
                context = session_service.resolve_session(token)
            except session_service.AuthenticationError as e:
                _audit_rejection("AUTH_REJECTED", None, e.code, user_id=e.user_id)
                return api_error_response(e)
            except ApiError as e:
                _audit_rejection("AUTH_REJECTED", None, e.code)
                return api_error_response(e)

            g.current_user = context.user
            g.session_context = context
        except Exception:
            current_app.logger.exception("Authentication check failed")
            return error_response(ErrorCode.AUTH_ERROR, "Authentication failed", 500)

        return f(*args, **kwargs)

    return decorated_function


def require_full_access(f):
    """Require a full-access Role (or the deprecated admin legacy tiers)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return _authentication_required()

        user = g.current_user
        if not permission_service.has_full_access(user):
            return _reject(
                error_response(ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS, "Full access required", 403),
                "PERMISSION_DENIED", user, ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS, required="FULL_ACCESS",
            )

        return f(*args, **kwargs)

    return decorated_function


def require_permission(module, action):
    """Require a module/action pair, e.g. require_permission("Clients", "Delete")."""
    module_name = key_of(module)
    action_name = key_of(action)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return _authentication_required()

            user = g.current_user
            if not permission_service.has_permission(user, module_name, action_name):
                return _reject(
                    error_response(
                        ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS,
                        f"You do not have permission to {action_name.lower()} {module_name.lower()}",
                        403,
                    ),
                    "PERMISSION_DENIED", user, ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS,
                    required=f"{module_name}:{action_name}",
                )

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_page_access(page):
    """Require a Pages flag, e.g. require_page_access("Activities")."""
    page_name = key_of(page)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return _authentication_required()

            user = g.current_user
            if not permission_service.has_page_access(user, page_name):
                return _reject(
                    error_response(
                        ErrorCode.AUTH_PAGE_ACCESS_DENIED,
                        f"You do not have access to the {page_name} page",
                        403,
                    ),
                    "PERMISSION_DENIED", user, ErrorCode.AUTH_PAGE_ACCESS_DENIED, required=f"Pages:{page_name}",
                )

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def authorize(*legacy_roles):
    """
    DEPRECATED: gate by legacy role tag. Use require_permission for new routes.

    Passes on full access or when the user's legacy tag is listed.
    """
    allowed = {key_of(role) for role in legacy_roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return _authentication_required()

            user = g.current_user
            if permission_service.has_full_access(user):
                return f(*args, **kwargs)

            if user.legacy_role in allowed:
                current_app.logger.info(
                    "Legacy authorize passed: user_id=%s tier=%s %s %s",
                    user.id, user.legacy_role, request.method, request.path,
                )
                return f(*args, **kwargs)

            return _reject(
                error_response(ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS, "Insufficient permissions", 403),
                "PERMISSION_DENIED", user, ErrorCode.AUTH_INSUFFICIENT_PERMISSIONS,
                required=f"LEGACY:{','.join(sorted(allowed))}",
            )

        return decorated_function
    return decorator


def require_user_management(f):
    """
    Gate a route on a single user (the `user_id` view argument).

    Sets g.target_user. Self-access always passes.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return _authentication_required()

        user = g.current_user
        try:
            g.target_user = management_service.can_manage_user(user, kwargs.get("user_id"))
        except ManagementError as e:
            return deny(e, user, required="MANAGE_USER")
        except Exception:
            current_app.logger.exception("User management check failed")
            return error_response(ErrorCode.SERVER_ERROR, "Failed to verify user management access", 500)

        return f(*args, **kwargs)

    return decorated_function


def require_client_management(f):
    """Coarse gate for client-assignment routes: full access or Clients Create/Update."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return _authentication_required()

        user = g.current_user
        try:
            management_service.can_manage_clients(user)
        except ManagementError as e:
            return deny(e, user, required="MANAGE_CLIENTS")

        return f(*args, **kwargs)

    return decorated_function


def require_client_access(f):
    """
    Gate a route on a single client (the `client_id` view argument).

    Sets g.target_client.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return _authentication_required()

        user = g.current_user
        try:
            g.target_client = management_service.check_client_access(user, kwargs.get("client_id"))
        except ManagementError as e:
            return deny(e, user, required="CLIENT_ACCESS")
        except Exception:
            current_app.logger.exception("Client access check failed")
            return error_response(ErrorCode.SERVER_ERROR, "Failed to verify client access", 500)

        return f(*args, **kwargs)

    return decorated_function
