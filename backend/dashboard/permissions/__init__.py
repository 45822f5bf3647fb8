# Overview: Permission system package.
# Re-exports all public APIs for imports from the package root.

from .categories import PermissionModule, Page, SettingsArea, CrudAction
from .definitions import PERMISSION_SCHEMA, PERMISSION_SCHEMA_VERSION
from .helpers import (
    key_of,
    get_schema_dict,
    is_valid_permission,
    empty_permission_grid,
    full_permission_grid,
    sanitize_permissions,
    is_granted,
)
from .legacy import (
    LegacyRole,
    LEGACY_FULL_ACCESS_TIERS,
    LEGACY_MANAGER_TIERS,
    LEGACY_PERMISSION_FALLBACK,
    LEGACY_PAGE_ACCESS,
    parse_legacy_role,
    legacy_role_values,
)

__all__ = [
    "PermissionModule",
    "Page",
    "SettingsArea",
    "CrudAction",
    "PERMISSION_SCHEMA",
    "PERMISSION_SCHEMA_VERSION",
    "key_of",
    "get_schema_dict",
    "is_valid_permission",
    "empty_permission_grid",
    "full_permission_grid",
    "sanitize_permissions",
    "is_granted",
    "LegacyRole",
    "LEGACY_FULL_ACCESS_TIERS",
    "LEGACY_MANAGER_TIERS",
    "LEGACY_PERMISSION_FALLBACK",
    "LEGACY_PAGE_ACCESS",
    "parse_legacy_role",
    "legacy_role_values",
]
