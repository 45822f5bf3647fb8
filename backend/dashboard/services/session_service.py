# Overview: Service-layer operations for session; resolves credentials to users and revokes them.

"""
Session Resolution and Revocation

WHY: A valid signature only proves the credential was issued by us. The
user behind it may since have been deactivated, deleted or had every
session revoked, so each request re-checks the database.

SECURITY FEATURES:
- Distinct rejection codes per failure (see ErrorCode)
- Revocation by token_version: one counter per user, bumped atomically
- Never logs or stores the raw credential
"""

from dataclasses import dataclass

from ..errors import ApiError, ErrorCode
from ..extensions import db
from ..models import User
from . import token_service


@dataclass
class SessionContext:
    """Resolved request identity, stored on flask.g by require_auth."""
    user: User
    token_version: int
    issued_at: int | None
    expires_at: int | None


class AuthenticationError(ApiError):
    """Credential decoded but does not authenticate an active user."""
    status = 401
    code = ErrorCode.AUTH_TOKEN_INVALID

    def __init__(self, message: str, code: str | None = None, status: int | None = None, user_id: int | None = None):
        super().__init__(message, code=code, status=status)
        self.user_id = user_id


def issue_token(user: User) -> str:
    """Mint a credential at the user's current token_version."""
    return token_service.mint_token(user.id, user.token_version)


def resolve_session(token: str) -> SessionContext:
    """
    Turn a bearer credential into a SessionContext.

    Raises TokenError (bad/expired/wrong-type credential) or
    AuthenticationError (unknown user, inactive account, revoked credential).
    """
    claims = token_service.decode_token(token)

    user = db.session.get(User, claims["sub"])
    if user is None:
        raise AuthenticationError("User not found", code=ErrorCode.AUTH_USER_NOT_FOUND)

    if not user.is_active:
        raise AuthenticationError(
            "Account is deactivated",
            code=ErrorCode.AUTH_ACCOUNT_INACTIVE,
            status=403,
            user_id=user.id,
        )

    # Equality, not >=: anything issued before the last bump is dead
    if claims["token_version"] != user.token_version:
        raise AuthenticationError(
            "Token has been revoked. Please log in again.",
            code=ErrorCode.AUTH_TOKEN_REVOKED,
            user_id=user.id,
        )

    return SessionContext(
        user=user,
        token_version=claims["token_version"],
        issued_at=claims.get("iat"),
        expires_at=claims.get("exp"),
    )


def revoke_all_user_sessions(user_id: int) -> int:
    """
    Invalidate every outstanding credential for a user.

    The increment runs as a single UPDATE so concurrent bumps never lose a
    step. Commits, then returns the new token_version.
    """
    updated = db.session.query(User).filter(User.id == user_id).update(
        {User.token_version: User.token_version + 1},
        synchronize_session=False,
    )
    if not updated:
        raise ValueError("User not found")
    db.session.commit()

    return db.session.query(User.token_version).filter(User.id == user_id).scalar()
