from __future__ import annotations

from console_core.auth.permissions import (
    PERMISSIONS,
    can_access_route,
    get_permissions,
    has_permission,
)


def test_operator_cannot_manage_users() -> None:
    assert has_permission("operator", "can_create_clients") is True
    assert has_permission("operator", "can_view_users") is False
    assert has_permission("operator", "can_view_audit_logs") is False


def test_admin_views_audit_logs_but_not_settings() -> None:
    assert has_permission(["admin"], "can_view_audit_logs") is True
    assert has_permission(["admin"], "can_view_settings") is False


def test_superuser_grants_every_capability() -> None:
    every = {name for perms in PERMISSIONS.values() for name in perms}
    assert all(has_permission("superuser", name) for name in every)


def test_merged_permissions_are_logical_or() -> None:
    merged = get_permissions(["operator", "admin"])
    assert merged["can_create_clients"] is True
    assert merged["can_view_users"] is True


def test_unknown_roles_grant_nothing() -> None:
    assert get_permissions(["viewer"]) == {}
    assert get_permissions(None) == {}


def test_route_access() -> None:
    assert can_access_route("operator", "/clients") is True
    assert can_access_route("operator", "/users") is False
    assert can_access_route("admin", "/audit-logs") is True
    assert can_access_route("admin", "/settings") is False
    assert can_access_route("superuser", "/configuration") is True
