# Overview: The closed permission schema shared by the write-time sanitizer
# and the read-time checks. Adding a module or action is a change here only.

from .categories import PermissionModule, Page, SettingsArea, CrudAction


# Bump when the vocabulary changes so stored documents can be re-sanitized.
PERMISSION_SCHEMA_VERSION = 1

PERMISSION_SCHEMA = {
    PermissionModule.PAGES: Page,
    PermissionModule.SETTINGS: SettingsArea,
    PermissionModule.USERS: CrudAction,
    PermissionModule.CLIENTS: CrudAction,
}
