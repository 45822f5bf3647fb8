# Overview: Utility functions for schema lookups, sanitizing and reading permission documents.

from enum import Enum

from .definitions import PERMISSION_SCHEMA


def key_of(value) -> str:
    """Schema members and plain strings are interchangeable at call sites."""
    return value.value if isinstance(value, Enum) else value


def get_schema_dict() -> dict[str, list[str]]:
    """Module name -> ordered action names, as served to the settings UI."""
    return {
        module.value: [action.value for action in actions]
        for module, actions in PERMISSION_SCHEMA.items()
    }


def is_valid_permission(module, action) -> bool:
    """Check that module/action belong to the closed schema."""
    actions = get_schema_dict().get(key_of(module))
    return actions is not None and key_of(action) in actions


def empty_permission_grid() -> dict[str, dict[str, bool]]:
    return {
        module: {action: False for action in actions}
        for module, actions in get_schema_dict().items()
    }


def full_permission_grid() -> dict[str, dict[str, bool]]:
    return {
        module: {action: True for action in actions}
        for module, actions in get_schema_dict().items()
    }


def sanitize_permissions(raw) -> dict[str, dict[str, bool]]:
    """
    Project an arbitrary permissions payload onto the schema.

    Every schema key is present in the result. Unknown modules and actions
    are dropped. In the map form only a literal True grants an action; the
    older list form (module -> [actions]) grants the listed actions.
    """
    grid = empty_permission_grid()
    if not isinstance(raw, dict):
        return grid

    for module, actions in grid.items():
        bucket = raw.get(module)
        if isinstance(bucket, dict):
            for action in actions:
                actions[action] = bucket.get(action) is True
        elif isinstance(bucket, (list, tuple)):
            for action in actions:
                actions[action] = action in bucket
    return grid


def is_granted(permissions, module, action) -> bool:
    """
    Read one flag out of a stored permissions document.

    Never raises: a missing or malformed document simply grants nothing.
    Keys outside the schema never grant, even if a stale document has them.
    """
    if not isinstance(permissions, dict) or not is_valid_permission(module, action):
        return False

    bucket = permissions.get(key_of(module))
    action = key_of(action)
    if isinstance(bucket, dict):
        return bucket.get(action) is True
    if isinstance(bucket, (list, tuple)):
        return action in bucket
    return False
