# Overview: Service-layer operations for access credentials; signs and decodes JWTs.

"""
Access Credential Minting and Decoding

WHY: Stateless bearer credentials. Revocation is handled by the per-user
token_version claim, compared against the database on every request.

SECURITY FEATURES:
- One fixed algorithm (HS256). decode() is never allowed to pick another,
  so "none"/RS-HS confusion downgrades are rejected as invalid
- Fixed "type" claim: only "access" credentials authenticate requests
- Expired credentials are reported separately from malformed ones
"""

from datetime import timedelta

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from flask import current_app

from ..errors import ApiError, ErrorCode
from ..time_utils import utcnow

ACCESS_TOKEN_TYPE = "access"


class TokenError(ApiError):
    """Credential could not be decoded into trusted claims."""
    status = 401
    code = ErrorCode.AUTH_TOKEN_INVALID


def _secret() -> str:
    secret = current_app.config.get("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET is not configured")
    return secret


def _algorithm() -> str:
    return current_app.config.get("JWT_ALGORITHM", "HS256")


def mint_token(user_id: int, token_version: int, expires_in: timedelta | None = None) -> str:
    """
    Sign an access credential for user_id at its current token_version.

    expires_in defaults to JWT_EXPIRES_IN (7 days).
    """
    now = utcnow()
    if expires_in is None:
        expires_in = current_app.config.get("JWT_EXPIRES_IN", timedelta(days=7))

    payload = {
        "sub": str(user_id),
        "type": ACCESS_TOKEN_TYPE,
        "token_version": int(token_version),
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, _secret(), algorithm=_algorithm())


def decode_token(token: str) -> dict:
    """
    Verify signature, algorithm and expiry, then check the claim shapes.

    Returns claims with "sub" converted to int.
    Raises TokenError with AUTH_TOKEN_EXPIRED, AUTH_INVALID_TOKEN_TYPE or
    AUTH_TOKEN_INVALID.
    """
    try:
        claims = jwt.decode(
            token,
            _secret(),
            algorithms=[_algorithm()],
            options={"require": ["sub", "exp", "iat"]},
        )
    except ExpiredSignatureError:
        raise TokenError("Token has expired", code=ErrorCode.AUTH_TOKEN_EXPIRED)
    except InvalidTokenError:
        raise TokenError("Invalid token")

    if claims.get("type") != ACCESS_TOKEN_TYPE:
        raise TokenError("Invalid token type", code=ErrorCode.AUTH_INVALID_TOKEN_TYPE)

    try:
        claims["sub"] = int(claims["sub"])
    except (TypeError, ValueError):
        raise TokenError("Invalid token")

    token_version = claims.get("token_version")
    if not isinstance(token_version, int) or isinstance(token_version, bool):
        raise TokenError("Invalid token")

    return claims
