"""Attachment records and the blobs behind them.

Deletion is two-phase: the metadata record goes first and must succeed;
removing the blob afterwards is best effort and its outcome is reported,
never raised.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any

from console_core.audit.changes import has_actual_changes
from console_core.audit.models import AuditAction
from console_core.audit.recorder import AuditRecorder
from console_core.auth.context import Principal
from console_core.auth.gate import PermissionGate
from console_core.auth.roles import Role
from console_core.errors import InvalidArgument, NotFound
from console_core.store.base import DocumentStore
from console_core.store.blobs import BlobStore
from console_core.utils.time import utc_now_iso

from .base import call_store, modification_stamp, require_id, require_mapping

logger = logging.getLogger(__name__)

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")

# Blob placement and ownership stay fixed after upload.
EDITABLE_FIELDS = frozenset({"fileName", "contentType", "description"})


@dataclass(frozen=True)
class CleanupOutcome:
    succeeded: bool
    error: str | None = None


@dataclass(frozen=True)
class DeletionResult:
    record_deleted: bool
    cleanup: CleanupOutcome
    audit_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "recordDeleted": self.record_deleted,
            "cleanup": {"succeeded": self.cleanup.succeeded, "error": self.cleanup.error},
            "auditId": self.audit_id,
        }


def _safe_filename(name: str) -> str:
    cleaned = _UNSAFE_NAME_RE.sub("_", name).strip("._")
    return cleaned or "file"


class AttachmentService:
    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        gate: PermissionGate,
        recorder: AuditRecorder,
        collection: str = "attachments",
    ) -> None:
        self._store = store
        self._blobs = blobs
        self._gate = gate
        self._recorder = recorder
        self._collection = collection

    async def create_attachment(
        self,
        principal: Principal | None,
        *,
        entity_collection: str,
        entity_id: str,
        file_name: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> dict[str, Any]:
        await self._gate.authorize(principal, Role.OPERATOR)
        entity_collection = require_id(entity_collection, "entityCollection")
        entity_id = require_id(entity_id, "entityId")
        file_name = require_id(file_name, "fileName")
        if not isinstance(content, bytes):
            raise InvalidArgument("content must be bytes.")

        storage_path = "/".join(
            (
                _safe_filename(entity_collection),
                _safe_filename(entity_id),
                f"{uuid.uuid4().hex}_{_safe_filename(file_name)}",
            )
        )
        await asyncio.to_thread(self._blobs.put, storage_path, content)

        record = {
            "fileName": file_name,
            "storagePath": storage_path,
            "contentType": content_type,
            "size": len(content),
            "metadata": {"entityCollection": entity_collection, "entityId": entity_id},
            "uploadedBy": principal.subject_id,
            "created": utc_now_iso(),
        }
        doc_id = await call_store(
            "save the attachment", self._store.insert, self._collection, record
        )
        await self._recorder.record_action(
            principal,
            entity_type=entity_collection,
            entity_id=entity_id,
            action=AuditAction.CREATE,
            after=record,
            metadata={"storagePath": storage_path, "attachmentId": doc_id},
            details=f"Uploaded attachment {file_name}",
        )
        return {"id": doc_id, **record}

    async def update_attachment(
        self, principal: Principal | None, doc_id: str, data: dict[str, Any]
    ) -> dict[str, Any]:
        await self._gate.authorize(principal, Role.ADMIN)
        doc_id = require_id(doc_id, "id")
        fields = dict(require_mapping(data))
        unknown = sorted(set(fields) - EDITABLE_FIELDS)
        if unknown:
            raise InvalidArgument(f"Unsupported fields: {', '.join(unknown)}")
        if "fileName" in fields:
            fields["fileName"] = require_id(fields["fileName"], "fileName")

        existing = await call_store(
            "read the attachment", self._store.get, self._collection, doc_id
        )
        if existing is None:
            raise NotFound("Attachment not found.")

        before = existing.data
        after = {**before, **fields}
        if not has_actual_changes(before, after):
            return {"id": doc_id, **before}

        stamp = modification_stamp(principal)
        after.update(stamp)
        await call_store(
            "update the attachment",
            self._store.set,
            self._collection,
            doc_id,
            {**fields, **stamp},
            merge=True,
        )
        parent = before.get("metadata") or {}
        await self._recorder.record_action(
            principal,
            entity_type=parent.get("entityCollection") or self._collection,
            entity_id=parent.get("entityId") or doc_id,
            action=AuditAction.UPDATE,
            before=before,
            after=after,
            metadata={"attachmentId": doc_id},
            details=f"Updated attachment {after.get('fileName') or doc_id}",
        )
        return {"id": doc_id, **after}

    async def delete_attachment(
        self,
        principal: Principal | None,
        doc_id: str,
        storage_path: str | None = None,
    ) -> DeletionResult:
        """Delete an attachment record, then its blob.

        A record that is already gone does not stop the cleanup. The blob
        path is the one stored on the record; ``storage_path`` is only used
        for a record that no longer exists.
        """
        await self._gate.authorize(principal, Role.ADMIN)
        doc_id = require_id(doc_id, "id")

        existing = await call_store(
            "read the attachment", self._store.get, self._collection, doc_id
        )
        record = existing.data if existing is not None else {}
        path = record.get("storagePath") if existing is not None else storage_path
        if existing is not None and storage_path and storage_path != path:
            logger.warning(
                "Ignoring storage path %s for attachment %s; the record stores %s",
                storage_path,
                doc_id,
                path,
            )

        record_deleted = await call_store(
            "delete the attachment", self._store.delete, self._collection, doc_id
        )
        if not record_deleted:
            logger.info("Attachment record %s was already absent", doc_id)

        cleanup = await self._cleanup_blob(path)

        parent = record.get("metadata") or {}
        file_name = record.get("fileName") or doc_id
        audit_id = await self._recorder.record_action(
            principal,
            entity_type=parent.get("entityCollection") or self._collection,
            entity_id=parent.get("entityId") or doc_id,
            action=AuditAction.DELETE,
            before=record or None,
            metadata={"storagePath": path},
            details=f"Deleted attachment {file_name}",
        )
        return DeletionResult(record_deleted=record_deleted, cleanup=cleanup, audit_id=audit_id)

    async def _cleanup_blob(self, path: str | None) -> CleanupOutcome:
        if not path:
            return CleanupOutcome(succeeded=True)
        try:
            await asyncio.to_thread(self._blobs.delete, path)
        except (OSError, ValueError) as exc:
            logger.warning("Blob cleanup failed for %s: %s", path, exc)
            return CleanupOutcome(succeeded=False, error=str(exc))
        return CleanupOutcome(succeeded=True)
