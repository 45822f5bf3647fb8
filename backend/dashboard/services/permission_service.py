# Overview: Service-layer operations for permission; encapsulates capability checks and audit logging.

"""
Permission Checking and Security Event Logging

WHY: Every protected route asks the same three questions (full access?
module/action granted? page visible?). Answering them in one place keeps
the legacy fallbacks contained and auditable.

DESIGN PRINCIPLES:
- Fail closed: a missing Role, an inactive Role or an unknown key grants nothing
- No I/O: checks read the User and its eagerly loaded Role only
- No caching: every request re-reads current Role state
- Legacy fallbacks are logged distinctly so they can be retired
"""

import logging

from ..extensions import db
from ..models import User, SecurityEvent
from ..permissions import (
    PermissionModule,
    Page,
    key_of,
    get_schema_dict,
    is_granted,
    LegacyRole,
    LEGACY_FULL_ACCESS_TIERS,
    LEGACY_MANAGER_TIERS,
    LEGACY_PERMISSION_FALLBACK,
    LEGACY_PAGE_ACCESS,
    parse_legacy_role,
)
from ..time_utils import utcnow


logger = logging.getLogger(__name__)


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    WHY: Immutable audit log for compliance and security monitoring.

    event_type examples:
    - AUTH_REJECTED
    - PERMISSION_DENIED
    - MANAGEMENT_DENIED
    - LOGIN_FAILED / LOGIN_SUCCESS
    - SESSIONS_REVOKED
    - ROLE_CREATED / ROLE_UPDATED / ROLE_DELETED / ROLE_TOGGLED
    - CLIENT_ASSIGNED / CLIENT_UNASSIGNED
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def _active_role(user: User | None):
    """The user's Role if it exists and is active, else None."""
    if user is None:
        return None
    role = user.role
    if role is None or not role.is_active:
        return None
    return role


def _legacy_tier(user: User | None) -> LegacyRole | None:
    """Legacy tier, only for users that have no Role assigned."""
    if user is None or user.role_id is not None:
        return None
    return parse_legacy_role(user.legacy_role)


def has_full_access(user: User | None) -> bool:
    """
    True when the user's active Role has full_access, or (DEPRECATED) the
    user has no Role and a superadmin/admin legacy tag.
    """
    role = _active_role(user)
    if role is not None:
        return bool(role.full_access)

    tier = _legacy_tier(user)
    if tier in LEGACY_FULL_ACCESS_TIERS:
        logger.info("Legacy full-access fallback used: user_id=%s tier=%s", user.id, tier.value)
        return True
    return False


def grants_full_access(role, legacy_role: str | None) -> bool:
    """
    Would this Role / legacy tag pair give full access?

    Mirrors has_full_access for a prospective assignment, so callers can
    check an edit before applying it. A Role (active or not) hides the tag.
    """
    if role is not None:
        return bool(role.is_active and role.full_access)
    return parse_legacy_role(legacy_role) in LEGACY_FULL_ACCESS_TIERS


def has_permission(user: User | None, module, action) -> bool:
    """
    Check a module/action pair.

    Order: full access, then the active Role's document, then the manager
    tier fallback table. Nothing else grants.
    """
    if has_full_access(user):
        return True

    role = _active_role(user)
    if role is not None:
        return is_granted(role.permissions, module, action)

    tier = _legacy_tier(user)
    granted = LEGACY_PERMISSION_FALLBACK.get(tier, {}).get(key_of(module), frozenset())
    if key_of(action) in granted:
        logger.info(
            "Legacy permission fallback used: user_id=%s tier=%s %s:%s",
            user.id, tier.value, key_of(module), key_of(action),
        )
        return True
    return False


def has_page_access(user: User | None, page) -> bool:
    """Check the Pages bucket, falling back to the static legacy page lists."""
    if has_full_access(user):
        return True

    role = _active_role(user)
    if role is not None:
        return is_granted(role.permissions, PermissionModule.PAGES, page)

    tier = _legacy_tier(user)
    if key_of(page) in LEGACY_PAGE_ACCESS.get(tier, frozenset()):
        logger.info("Legacy page fallback used: user_id=%s tier=%s page=%s", user.id, tier.value, key_of(page))
        return True
    return False


def is_team_manager(user: User | None) -> bool:
    """
    Manager for assignment listings: an active Role with full_access or
    is_team_manager, or a legacy superadmin/admin/manager without a Role.
    """
    role = _active_role(user)
    if role is not None:
        return bool(role.full_access or role.is_team_manager)
    return _legacy_tier(user) in LEGACY_MANAGER_TIERS


def accessible_pages(user: User | None) -> list[str]:
    return [page.value for page in Page if has_page_access(user, page)]


def capability_summary(user: User) -> dict:
    """Evaluated capabilities for the current user, as served by /api/auth/me."""
    schema = get_schema_dict()
    return {
        "full_access": has_full_access(user),
        "team_manager": is_team_manager(user),
        "pages": accessible_pages(user),
        "permissions": {
            module: {action: has_permission(user, module, action) for action in actions}
            for module, actions in schema.items()
            if module != PermissionModule.PAGES.value
        },
        "uses_legacy_role": user.role_id is None,
    }


def count_unmigrated_users() -> int:
    """Users still relying on a legacy tag (no Role assigned)."""
    return db.session.query(User).filter(User.role_id.is_(None)).count()


def unmigrated_breakdown() -> dict[str, int]:
    """Unmigrated users per legacy tag, for the migration report."""
    rows = (
        db.session.query(User.legacy_role, db.func.count(User.id))
        .filter(User.role_id.is_(None))
        .group_by(User.legacy_role)
        .all()
    )
    return {legacy_role: count for legacy_role, count in rows}


def role_label(user: User | None) -> str:
    """Role name for audit lines; legacy users are labelled by tag."""
    if user is None:
        return "anonymous"
    if user.role is not None:
        return user.role.name
    return f"legacy:{user.legacy_role}"
