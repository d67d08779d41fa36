"""Audit recording, querying and retention."""

from console_core.audit.models import AUDIT_ACTIONS, AuditAction, AuditEntry, AuditFilters
from console_core.audit.query import AuditQueryService
from console_core.audit.recorder import AuditRecorder
from console_core.audit.retention import RetentionSweeper

__all__ = [
    "AUDIT_ACTIONS",
    "AuditAction",
    "AuditEntry",
    "AuditFilters",
    "AuditQueryService",
    "AuditRecorder",
    "RetentionSweeper",
]
