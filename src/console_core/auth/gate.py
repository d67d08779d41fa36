"""Permission gate for mutating and administrative operations."""

from __future__ import annotations

import logging
from typing import Any

from console_core.errors import InvalidArgument, PermissionDenied, Unauthenticated

from .context import Principal
from .role_lookup import RoleLookup
from .roles import Role, RoleSet

logger = logging.getLogger(__name__)

_DENIAL_MESSAGES: dict[Role, str] = {
    Role.OPERATOR: "You do not have the permissions required for this operation.",
    Role.ADMIN: "Only administrators can perform this operation.",
    Role.SUPERUSER: "Only superusers can perform this operation.",
}


def can_manage_user(caller_roles: Any, target_role: str | None) -> bool:
    """Authority rule for updating or deleting another principal.

    A superuser manages anyone; an admin manages operators only.
    """
    caller = RoleSet.normalize(caller_roles)
    if caller.is_super_user:
        return True
    if caller.is_admin:
        return target_role == Role.OPERATOR.value
    return False


def can_create_user_with_role(caller_roles: Any, new_role: str | None) -> bool:
    """Authority rule for the role assigned to a newly provisioned principal."""
    return can_manage_user(caller_roles, new_role)


class PermissionGate:
    """
    Authentication and role checks backed by a RoleLookup.

    Every check reads the stored profile afresh. Failures raise typed errors;
    there is no partial success.
    """

    def __init__(self, role_lookup: RoleLookup) -> None:
        self._role_lookup = role_lookup

    def require_authenticated(self, principal: Principal | None) -> Principal:
        if principal is None or not principal.subject_id:
            raise Unauthenticated("You must be signed in to perform this operation.")
        return principal

    async def lookup_roles(self, subject_id: str) -> RoleSet | None:
        return await self._role_lookup.lookup(subject_id)

    async def lookup_primary_role(self, subject_id: str) -> str | None:
        roles = await self._role_lookup.lookup(subject_id)
        return roles.primary if roles is not None else None

    async def require_role(self, principal: Principal | None, level: Role | str) -> str | None:
        """Require the caller to hold ``level`` or a higher role.

        Returns the caller's primary role so call sites can make secondary
        decisions without a second lookup.
        """
        roles = await self.authorize(principal, level)
        return roles.primary

    async def authorize(self, principal: Principal | None, level: Role | str) -> RoleSet:
        """Same check as ``require_role`` but returns the full RoleSet.

        Call sites that go on to compare authority (``can_manage_user``) use
        this so the decision stays membership based.
        """
        principal = self.require_authenticated(principal)
        try:
            required = Role(level)
        except ValueError:
            raise InvalidArgument(f"Unknown role level: {level!r}") from None
        roles = await self._role_lookup.lookup(principal.subject_id)
        resolved = roles if roles is not None else RoleSet()

        if not resolved.has_at_least(required):
            logger.warning(
                "Permission denied for %s: requires %s, holds %s",
                principal.subject_id,
                required.value,
                list(resolved.tags),
            )
            raise PermissionDenied(_DENIAL_MESSAGES[required])
        return resolved

    async def require_operator(self, principal: Principal | None) -> str | None:
        return await self.require_role(principal, Role.OPERATOR)

    async def require_admin(self, principal: Principal | None) -> str | None:
        return await self.require_role(principal, Role.ADMIN)

    async def require_super_user(self, principal: Principal | None) -> str | None:
        return await self.require_role(principal, Role.SUPERUSER)
