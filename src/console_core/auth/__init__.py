"""Authentication context, role hierarchy and permission gate."""

from console_core.auth.context import (
    Principal,
    get_principal_optional,
    reset_principal,
    set_principal,
)
from console_core.auth.gate import (
    PermissionGate,
    can_create_user_with_role,
    can_manage_user,
)
from console_core.auth.role_lookup import RoleLookup
from console_core.auth.roles import (
    ROLE_ORDER,
    Role,
    RoleSet,
    is_admin,
    is_operator,
    is_super_user,
    normalize_roles,
)

__all__ = [
    "PermissionGate",
    "Principal",
    "ROLE_ORDER",
    "Role",
    "RoleLookup",
    "RoleSet",
    "can_create_user_with_role",
    "can_manage_user",
    "get_principal_optional",
    "is_admin",
    "is_operator",
    "is_super_user",
    "normalize_roles",
    "reset_principal",
    "set_principal",
]
