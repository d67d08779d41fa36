"""Gated, audited operations behind the console's HTTP surface."""

from console_core.services.attachments import (
    AttachmentService,
    CleanupOutcome,
    DeletionResult,
)
from console_core.services.audit import AuditService
from console_core.services.records import DEFAULT_POLICIES, CollectionPolicy, RecordService
from console_core.services.users import UserAdminService

__all__ = [
    "AttachmentService",
    "AuditService",
    "CleanupOutcome",
    "CollectionPolicy",
    "DEFAULT_POLICIES",
    "DeletionResult",
    "RecordService",
    "UserAdminService",
]
