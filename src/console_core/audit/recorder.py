"""Validate and persist audit entries.

Every call site records *after* its business mutation has been committed.
A failed audit write is raised to the caller but cannot undo that mutation,
so a transient store failure leaves the mutation under-logged. The core
accepts that window rather than making the primary operation's durability
depend on the audit store.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any

from console_core.auth.context import Principal
from console_core.errors import Internal, InvalidArgument, StoreError
from console_core.store.base import DocumentStore
from console_core.utils.masking import sanitize
from console_core.utils.time import utc_now

from .models import AUDIT_ACTIONS, AuditAction, AuditEntry

logger = logging.getLogger(__name__)


def _require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{name} is required.")
    return value


def validate_entry(entry: AuditEntry) -> str:
    """Check mandatory fields and return the normalized action tag."""
    _require_text(entry.entity_type, "entityType")
    _require_text(entry.entity_id, "entityId")
    action = entry.action.value if isinstance(entry.action, AuditAction) else entry.action
    _require_text(action, "action")
    if action not in AUDIT_ACTIONS:
        allowed = ", ".join(sorted(AUDIT_ACTIONS))
        raise InvalidArgument(f"Invalid action {action!r}. Use one of: {allowed}")
    if entry.metadata is not None and not isinstance(entry.metadata, Mapping):
        raise InvalidArgument("metadata must be an object.")
    return action


class AuditRecorder:
    def __init__(
        self,
        store: DocumentStore,
        collection: str = "audit_logs",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store = store
        self._collection = collection
        self._clock = clock

    async def record(self, entry: AuditEntry) -> str:
        """Persist ``entry`` and return the generated id.

        Raises InvalidArgument before any write when the entry is malformed,
        and Internal when the store rejects the write.
        """
        action = validate_entry(entry)
        stored = replace(
            entry,
            action=action,
            id=None,
            timestamp=self._clock(),
            before_state=sanitize(entry.before_state) if entry.before_state is not None else None,
            after_state=sanitize(entry.after_state) if entry.after_state is not None else None,
            metadata=dict(entry.metadata) if entry.metadata is not None else {},
        )

        try:
            entry_id = await asyncio.to_thread(
                self._store.insert, self._collection, stored.to_document()
            )
        except StoreError as exc:
            logger.error(
                "Failed to record audit entry %s on %s/%s: %s",
                action,
                entry.entity_type,
                entry.entity_id,
                exc,
            )
            raise Internal("Unable to record the audit entry.") from exc

        logger.info(
            "Audit entry %s recorded: %s on %s/%s",
            entry_id,
            action,
            entry.entity_type,
            entry.entity_id,
        )
        return entry_id

    async def record_action(
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
        """Record an action attributed to ``principal`` (None for system actions)."""
        return await self.record(
            AuditEntry(
                entity_type=entity_type,
                entity_id=entity_id,
                action=action,
                actor_id=principal.subject_id if principal else None,
                actor_email=principal.email if principal else None,
                before_state=before,
                after_state=after,
                metadata=metadata,
                source=principal.source if principal else None,
                details=details,
            )
        )
