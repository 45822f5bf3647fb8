# Overview: Deprecated legacy role tags and their fixed fallback tables.

"""
Legacy Role Tags (DEPRECATED)

WHY: Accounts created before dynamic Roles existed carry only a legacy tag.
These tables keep them working until every account has a Role assigned.

RULES:
- Fallbacks apply only to users with no Role assigned
- Only the manager tier has a permission fallback table; do not add tiers
- Track progress with permission_service.count_unmigrated_users()
"""

from enum import Enum

from .categories import PermissionModule, Page, CrudAction


class LegacyRole(Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"
    TELECALLER = "telecaller"


# Tiers that behave as full access when no Role is assigned
LEGACY_FULL_ACCESS_TIERS = frozenset({LegacyRole.SUPERADMIN, LegacyRole.ADMIN})

# Tiers listed as managers in assignment-target listings
LEGACY_MANAGER_TIERS = frozenset({LegacyRole.SUPERADMIN, LegacyRole.ADMIN, LegacyRole.MANAGER})

# The single un-migrated tier with a permission fallback
LEGACY_PERMISSION_FALLBACK = {
    LegacyRole.MANAGER: {
        PermissionModule.USERS.value: frozenset({
            CrudAction.CREATE.value,
            CrudAction.READ.value,
            CrudAction.UPDATE.value,
        }),
        PermissionModule.CLIENTS.value: frozenset({
            CrudAction.CREATE.value,
            CrudAction.READ.value,
            CrudAction.UPDATE.value,
            CrudAction.DELETE.value,
        }),
    },
}

# Static page lists per tier. Full-access tiers see every page anyway.
LEGACY_PAGE_ACCESS = {
    LegacyRole.SUPERADMIN: frozenset(page.value for page in Page),
    LegacyRole.ADMIN: frozenset(page.value for page in Page),
    LegacyRole.MANAGER: frozenset({
        Page.DASHBOARD.value,
        Page.CLIENTS.value,
        Page.USERS.value,
        Page.SERVICES.value,
        Page.ACTIVITIES.value,
    }),
    LegacyRole.EMPLOYEE: frozenset({
        Page.DASHBOARD.value,
        Page.CLIENTS.value,
        Page.SERVICES.value,
    }),
    LegacyRole.TELECALLER: frozenset({
        Page.DASHBOARD.value,
        Page.CLIENTS.value,
    }),
}


def parse_legacy_role(value) -> LegacyRole | None:
    """Map a stored tag to the enum; unknown or empty tags map to None."""
    if isinstance(value, LegacyRole):
        return value
    try:
        return LegacyRole(value)
    except ValueError:
        return None


def legacy_role_values() -> list[str]:
    return [role.value for role in LegacyRole]
