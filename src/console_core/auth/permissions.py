"""Role to capability matrix used by the console UI and route guards."""

from __future__ import annotations

from typing import Any

from .roles import Role, RoleSet

_OPERATOR_PERMISSIONS: dict[str, bool] = {
    "can_view_dashboard": True,
    "can_view_clients": True,
    "can_create_clients": True,
    "can_update_clients": True,
    "can_delete_clients": False,
    "can_view_users": False,
    "can_create_users": False,
    "can_update_users": False,
    "can_delete_users": False,
    "can_view_settings": False,
    "can_update_settings": False,
    "can_view_audit_logs": False,
}

PERMISSIONS: dict[str, dict[str, bool]] = {
    Role.OPERATOR.value: _OPERATOR_PERMISSIONS,
    # Everything except configuration.
    Role.ADMIN.value: {
        **_OPERATOR_PERMISSIONS,
        "can_delete_clients": True,
        "can_view_users": True,
        "can_create_users": True,
        "can_update_users": True,
        "can_delete_users": True,
        "can_view_audit_logs": True,
    },
    Role.SUPERUSER.value: {
        **{name: True for name in _OPERATOR_PERMISSIONS},
        "can_manage_superusers": True,
    },
}

PROTECTED_ROUTES: dict[str, str] = {
    "/users": "can_view_users",
    "/configuration": "can_view_settings",
    "/settings": "can_view_settings",
    "/audit-logs": "can_view_audit_logs",
}


def has_permission(roles: Any, permission: str) -> bool:
    """True if any held role grants ``permission``."""
    return any(
        PERMISSIONS.get(tag, {}).get(permission) is True
        for tag in RoleSet.normalize(roles)
    )


def get_permissions(roles: Any) -> dict[str, bool]:
    """Merged capability map across every held role (logical OR)."""
    merged: dict[str, bool] = {}
    for tag in RoleSet.normalize(roles):
        for name, granted in PERMISSIONS.get(tag, {}).items():
            merged[name] = merged.get(name, False) or granted
    return merged


def can_access_route(roles: Any, path: str) -> bool:
    required = PROTECTED_ROUTES.get(path)
    if required is None:
        return True
    return has_permission(roles, required)
