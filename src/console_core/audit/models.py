"""Data models for audit entries and audit queries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from console_core.store.base import StoredDocument
from console_core.utils.time import parse_utc_iso, to_utc_iso


class AuditAction(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    # Legal value, not emitted by any current call site.
    READ = "read"


AUDIT_ACTIONS = frozenset(action.value for action in AuditAction)

DEFAULT_SOURCE = "unknown"


@dataclass
class AuditEntry:
    """One state-changing action.

    ``timestamp`` and ``id`` are assigned on write; values supplied by the
    caller for either are ignored by the recorder.
    """

    entity_type: str
    entity_id: str
    action: str
    actor_id: str | None = None
    actor_email: str | None = None
    before_state: Any = None
    after_state: Any = None
    metadata: dict[str, Any] | None = None
    source: str | None = None
    details: str | None = None
    timestamp: datetime | None = None
    id: str | None = None

    def to_document(self) -> dict[str, Any]:
        action = self.action.value if isinstance(self.action, AuditAction) else self.action
        return {
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "action": action,
            "actorId": self.actor_id,
            "actorEmail": self.actor_email,
            "timestamp": to_utc_iso(self.timestamp) if self.timestamp else None,
            "beforeState": self.before_state,
            "afterState": self.after_state,
            "metadata": self.metadata if self.metadata is not None else {},
            "source": self.source or DEFAULT_SOURCE,
            "details": self.details,
        }

    @classmethod
    def from_document(cls, doc: StoredDocument) -> "AuditEntry":
        data = doc.data
        raw_timestamp = data.get("timestamp")
        return cls(
            id=doc.id,
            entity_type=data.get("entityType", ""),
            entity_id=data.get("entityId", ""),
            action=data.get("action", ""),
            actor_id=data.get("actorId"),
            actor_email=data.get("actorEmail"),
            timestamp=parse_utc_iso(raw_timestamp) if raw_timestamp else None,
            before_state=data.get("beforeState"),
            after_state=data.get("afterState"),
            metadata=data.get("metadata") or {},
            source=data.get("source") or DEFAULT_SOURCE,
            details=data.get("details"),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation including the stored id."""
        return {"id": self.id, **self.to_document()}


@dataclass
class AuditFilters:
    """Optional constraints for ``AuditQueryService.search``.

    Every provided field narrows the result (logical AND). ``start_after`` is
    the id of the last entry of the previous page.
    """

    entity_type: str | None = None
    action: str | None = None
    actor_id: str | None = None
    timestamp_from: datetime | None = None
    timestamp_to: datetime | None = None
    limit: int = 100
    start_after: str | None = None
