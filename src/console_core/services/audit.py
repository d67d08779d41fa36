"""Gated entry points over the audit core."""

from __future__ import annotations

from typing import Any

from console_core.audit.models import AuditAction, AuditEntry, AuditFilters
from console_core.audit.query import AuditQueryService
from console_core.audit.recorder import AuditRecorder
from console_core.audit.retention import RetentionSweeper
from console_core.auth.context import Principal
from console_core.auth.gate import PermissionGate
from console_core.auth.roles import Role


class AuditService:
    """Audit reads require admin, purges require superuser, and any signed-in
    user may log an entry for their own action."""

    def __init__(
        self,
        gate: PermissionGate,
        recorder: AuditRecorder,
        queries: AuditQueryService,
        sweeper: RetentionSweeper,
        retention_days: int = 90,
    ) -> None:
        self._gate = gate
        self._recorder = recorder
        self._queries = queries
        self._sweeper = sweeper
        self._retention_days = retention_days

    async def entity_logs(
        self, principal: Principal | None, entity_type: str, entity_id: str, limit: int = 50
    ) -> list[AuditEntry]:
        await self._gate.authorize(principal, Role.ADMIN)
        return await self._queries.by_entity(entity_type, entity_id, limit)

    async def user_logs(
        self, principal: Principal | None, actor_id: str, limit: int = 50
    ) -> list[AuditEntry]:
        await self._gate.authorize(principal, Role.ADMIN)
        return await self._queries.by_actor(actor_id, limit)

    async def search(
        self, principal: Principal | None, filters: AuditFilters | None = None
    ) -> list[AuditEntry]:
        await self._gate.authorize(principal, Role.ADMIN)
        return await self._queries.search(filters)

    async def create_entry(
        self,
        principal: Principal | None,
        *,
        entity_type: str,
        entity_id: str,
        action: AuditAction | str,
        before: Any = None,
        after: Any = None,
        metadata: dict[str, Any] | None = None,
        details: str | None = None,
    ) -> str:
        # The actor is always the caller; a supplied actor is never trusted.
        principal = self._gate.require_authenticated(principal)
        return await self._recorder.record_action(
            principal,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            before=before,
            after=after,
            metadata=metadata,
            details=details,
        )

    async def purge(self, principal: Principal | None, days_to_keep: int | None = None) -> int:
        await self._gate.authorize(principal, Role.SUPERUSER)
        days = self._retention_days if days_to_keep is None else days_to_keep
        return await self._sweeper.purge_older_than(days)
