"""Application context assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from console_core.audit.query import AuditQueryService
from console_core.audit.recorder import AuditRecorder
from console_core.audit.retention import RetentionSweeper
from console_core.auth.gate import PermissionGate
from console_core.auth.role_lookup import RoleLookup
from console_core.config import Settings, load_settings
from console_core.services.attachments import AttachmentService
from console_core.services.audit import AuditService
from console_core.services.records import RecordService
from console_core.services.users import UserAdminService
from console_core.store.base import DocumentStore
from console_core.store.blobs import BlobStore, LocalBlobStore
from console_core.store.memory import MemoryDocumentStore
from console_core.store.sqlite import SqliteDocumentStore

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Application-wide dependency container.

    Built once at startup and handed to the HTTP factory and the CLI. Tests
    build their own with a memory store.
    """

    settings: Settings
    store: DocumentStore
    blobs: BlobStore
    gate: PermissionGate
    recorder: AuditRecorder
    queries: AuditQueryService
    sweeper: RetentionSweeper
    audit: AuditService
    users: UserAdminService
    records: RecordService
    attachments: AttachmentService

    def close(self) -> None:
        self.store.close()


def _open_store(settings: Settings) -> DocumentStore:
    if settings.storage.backend == "memory":
        logger.warning("Using the in-memory store; data is lost on exit")
        return MemoryDocumentStore()
    return SqliteDocumentStore(settings.storage.sqlite_path, wal=settings.storage.sqlite_wal)


def build_app_context(
    settings: Settings | None = None,
    *,
    store: DocumentStore | None = None,
    blobs: BlobStore | None = None,
) -> AppContext:
    """Wire every service against one store."""
    settings = settings or load_settings()
    store = store if store is not None else _open_store(settings)
    blobs = blobs if blobs is not None else LocalBlobStore(settings.blobs.root)
    storage = settings.storage

    gate = PermissionGate(RoleLookup(store, collection=storage.profiles_collection))
    recorder = AuditRecorder(store, collection=storage.audit_collection)
    queries = AuditQueryService(
        store,
        collection=storage.audit_collection,
        max_limit=settings.audit.max_query_limit,
    )
    sweeper = RetentionSweeper(
        store,
        collection=storage.audit_collection,
        batch_size=settings.audit.retention_batch_size,
    )

    return AppContext(
        settings=settings,
        store=store,
        blobs=blobs,
        gate=gate,
        recorder=recorder,
        queries=queries,
        sweeper=sweeper,
        audit=AuditService(
            gate, recorder, queries, sweeper, retention_days=settings.audit.retention_days
        ),
        users=UserAdminService(
            store,
            gate,
            recorder,
            collection=storage.profiles_collection,
            superuser_missing_target_fallback=settings.auth.superuser_missing_target_fallback,
        ),
        records=RecordService(store, gate, recorder),
        attachments=AttachmentService(
            store, blobs, gate, recorder, collection=storage.attachments_collection
        ),
    )
