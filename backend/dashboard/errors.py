# Overview: Error codes and the JSON rejection shape shared by decorators and routes.

"""
Every rejection leaves the API as:

    {"success": false, "error": {"code": "<CODE>", "message": "<human text>"}}

The code is what the front-end branches on (redirect to login, show a
disabled state, ...). The message is safe to show to the user and never
contains credentials or internal details.
"""

from flask import jsonify


class ErrorCode:
    """Machine-readable rejection codes."""
    # Credential errors (401)
    AUTH_TOKEN_MISSING = "AUTH_TOKEN_MISSING"
    AUTH_TOKEN_EXPIRED = "AUTH_TOKEN_EXPIRED"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"
    AUTH_INVALID_TOKEN_TYPE = "AUTH_INVALID_TOKEN_TYPE"
    AUTH_USER_NOT_FOUND = "AUTH_USER_NOT_FOUND"
    AUTH_TOKEN_REVOKED = "AUTH_TOKEN_REVOKED"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"

    # Account state (403)
    AUTH_ACCOUNT_INACTIVE = "AUTH_ACCOUNT_INACTIVE"

    # Permission errors (403)
    AUTH_INSUFFICIENT_PERMISSIONS = "AUTH_INSUFFICIENT_PERMISSIONS"
    AUTH_PAGE_ACCESS_DENIED = "AUTH_PAGE_ACCESS_DENIED"
    CANNOT_MANAGE_USER = "CANNOT_MANAGE_USER"
    CANNOT_MANAGE_CLIENTS = "CANNOT_MANAGE_CLIENTS"
    CLIENT_ACCESS_DENIED = "CLIENT_ACCESS_DENIED"
    CANNOT_UNASSIGN_SELF = "CANNOT_UNASSIGN_SELF"
    OWNER_PROTECTED = "OWNER_PROTECTED"
    ROLE_PROTECTED = "ROLE_PROTECTED"
    REGISTRATION_CLOSED = "REGISTRATION_CLOSED"

    # Bad input (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_USER_ID = "INVALID_USER_ID"
    INVALID_CLIENT_ID = "INVALID_CLIENT_ID"
    INVALID_ASSIGNMENT_TARGET = "INVALID_ASSIGNMENT_TARGET"
    MANAGEMENT_CYCLE = "MANAGEMENT_CYCLE"
    ROLE_IN_USE = "ROLE_IN_USE"
    DUPLICATE = "DUPLICATE"
    MAX_SUPERADMINS_REACHED = "MAX_SUPERADMINS_REACHED"

    # Lookups (404)
    USER_NOT_FOUND = "USER_NOT_FOUND"
    CLIENT_NOT_FOUND = "CLIENT_NOT_FOUND"
    ROLE_NOT_FOUND = "ROLE_NOT_FOUND"
    ASSIGNMENT_NOT_FOUND = "ASSIGNMENT_NOT_FOUND"

    # Internal (500)
    AUTH_ERROR = "AUTH_ERROR"
    SERVER_ERROR = "SERVER_ERROR"


class ApiError(Exception):
    """
    Base class for rejections that carry their own HTTP status and code.

    Services raise subclasses; decorators and routes turn them into the
    JSON rejection shape with error_response().
    """
    status = 400
    code = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, code: str | None = None, status: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status


def error_response(code: str, message: str, status: int):
    return jsonify({
        "success": False,
        "error": {"code": code, "message": message},
    }), status


def api_error_response(exc: ApiError):
    return error_response(exc.code, exc.message, exc.status)
