# Overview: Service-layer operations for auth; passwords, account creation and bootstrap.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for password hashing
and enforces the account invariants that do not depend on Roles.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum 8 characters, mixed case, digit and special char
- Login compares against a dummy hash for unknown emails so response time
  does not reveal which emails exist
- At most one user may hold the legacy superadmin tag
- Email addresses are unique system-wide (stored lower-cased)
"""

import logging
import re

import bcrypt
from flask import current_app

from ..errors import ApiError, ErrorCode
from ..extensions import db
from ..models import User, Role
from ..permissions import LegacyRole, parse_legacy_role, full_permission_grid
from ..time_utils import utcnow
from . import session_service


logger = logging.getLogger(__name__)

SUPER_ADMIN_ROLE_NAME = "Super Admin"

_dummy_hash: str | None = None


class PasswordValidationError(ApiError):
    """Raised when password doesn't meet strength requirements."""
    code = ErrorCode.VALIDATION_ERROR


class AccountError(ApiError):
    """Raised when an account write would break an account invariant."""
    code = ErrorCode.VALIDATION_ERROR


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[^A-Za-z0-9]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() compares in constant time.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed stored hash
        return False


def _get_dummy_hash() -> str:
    global _dummy_hash
    if _dummy_hash is None:
        rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
        _dummy_hash = bcrypt.hashpw(b"dummy-password-for-timing", bcrypt.gensalt(rounds=rounds)).decode('utf-8')
    return _dummy_hash


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def superadmin_exists(exclude_user_id: int | None = None) -> bool:
    query = db.session.query(User).filter(User.legacy_role == LegacyRole.SUPERADMIN.value)
    if exclude_user_id is not None:
        query = query.filter(User.id != exclude_user_id)
    return db.session.query(query.exists()).scalar()


def ensure_legacy_role_allowed(legacy_role: str, user_id: int | None = None) -> str:
    """
    Validate a legacy tag for a user being created or updated.

    Raises AccountError for unknown tags or a second superadmin.
    """
    tier = parse_legacy_role(legacy_role)
    if tier is None:
        raise AccountError(f"Unknown legacy role: {legacy_role}")
    if tier is LegacyRole.SUPERADMIN and superadmin_exists(exclude_user_id=user_id):
        raise AccountError(
            "A superadmin already exists",
            code=ErrorCode.MAX_SUPERADMINS_REACHED,
        )
    return tier.value


def create_user(
    name: str,
    email: str,
    password: str,
    legacy_role: str = LegacyRole.EMPLOYEE.value,
    role_id: int | None = None,
    created_by: User | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Does not check the caller's permissions; routes do that first.
    The session is flushed, not committed.

    Raises AccountError on duplicate email / second superadmin and
    PasswordValidationError on a weak password.
    """
    name = (name or "").strip()
    email = normalize_email(email)
    if not name or not email:
        raise AccountError("Name and email are required")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise AccountError("A user with this email already exists", code=ErrorCode.DUPLICATE)

    legacy_role = ensure_legacy_role_allowed(legacy_role)

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        legacy_role=legacy_role,
        role_id=role_id,
        is_active=True,
        token_version=0,
        created_by_id=created_by.id if created_by else None,
    )
    if created_by is not None and parse_legacy_role(created_by.legacy_role) is LegacyRole.SUPERADMIN:
        user.super_admin_id = created_by.id

    db.session.add(user)
    db.session.flush()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Check email/password.

    Returns the user (active or not, the caller reports inactive accounts)
    or None. Unknown emails still pay for one bcrypt comparison.
    """
    user = db.session.query(User).filter_by(email=normalize_email(email)).first()

    if user is None:
        verify_password(password, _get_dummy_hash())
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> int:
    """
    Replace a user's password and revoke every outstanding credential.

    Returns the new token_version.
    """
    if not verify_password(current_password or "", user.password_hash):
        raise AccountError("Current password is incorrect", code=ErrorCode.INVALID_CREDENTIALS, status=401)

    user.password_hash = hash_password(new_password)
    db.session.commit()
    return session_service.revoke_all_user_sessions(user.id)


def get_or_create_super_admin_role() -> Role:
    """The system role held by the bootstrap account."""
    role = db.session.query(Role).filter_by(name=SUPER_ADMIN_ROLE_NAME).first()
    if role:
        return role

    role = Role(
        name=SUPER_ADMIN_ROLE_NAME,
        description="Full system access. Created at bootstrap.",
        full_access=True,
        is_team_manager=True,
        permissions=full_permission_grid(),
        is_system=True,
        is_active=True,
    )
    db.session.add(role)
    db.session.flush()
    return role


def bootstrap_superadmin(name: str, email: str, password: str) -> User:
    """
    Create the single superadmin account with the Super Admin system role.

    Raises AccountError if a superadmin already exists.
    """
    if superadmin_exists():
        raise AccountError("A superadmin already exists", code=ErrorCode.MAX_SUPERADMINS_REACHED)

    role = get_or_create_super_admin_role()
    user = create_user(
        name=name,
        email=email,
        password=password,
        legacy_role=LegacyRole.SUPERADMIN.value,
        role_id=role.id,
    )
    db.session.commit()
    logger.info("Bootstrap superadmin created: user_id=%s", user.id)
    return user
