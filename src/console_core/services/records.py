"""Gated, audited CRUD over the console's business collections."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from console_core.audit.changes import has_actual_changes
from console_core.audit.models import AuditAction
from console_core.audit.recorder import AuditRecorder
from console_core.auth.context import Principal
from console_core.auth.gate import PermissionGate
from console_core.auth.roles import Role
from console_core.errors import InvalidArgument, NotFound, PermissionDenied
from console_core.store.base import DocumentStore, Query
from console_core.utils.time import utc_now_iso

from .base import call_store, modification_stamp, require_id, require_mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionPolicy:
    """Minimum role per operation on one collection.

    ``owner_field`` names a field holding the creator's subject id; the
    creator may delete their own document without holding ``delete_level``.
    ``explicit_ids`` lets callers choose document ids (configuration keys)
    and makes ``update`` create a missing document.
    """

    collection: str
    entity_type: str
    read_level: Role = Role.OPERATOR
    create_level: Role = Role.OPERATOR
    update_level: Role = Role.OPERATOR
    delete_level: Role = Role.ADMIN
    owner_field: str | None = None
    explicit_ids: bool = False


DEFAULT_POLICIES: tuple[CollectionPolicy, ...] = (
    CollectionPolicy(collection="clients", entity_type="clients"),
    CollectionPolicy(collection="comments", entity_type="comments", owner_field="createdBy"),
    CollectionPolicy(
        collection="config",
        entity_type="config",
        read_level=Role.ADMIN,
        create_level=Role.SUPERUSER,
        update_level=Role.SUPERUSER,
        delete_level=Role.SUPERUSER,
        explicit_ids=True,
    ),
)

_RESERVED_FIELDS = frozenset({"id", "created", "createdBy"})


class RecordService:
    def __init__(
        self,
        store: DocumentStore,
        gate: PermissionGate,
        recorder: AuditRecorder,
        policies: tuple[CollectionPolicy, ...] = DEFAULT_POLICIES,
    ) -> None:
        self._store = store
        self._gate = gate
        self._recorder = recorder
        self._policies = {policy.collection: policy for policy in policies}

    @property
    def collections(self) -> tuple[str, ...]:
        return tuple(self._policies)

    def policy_for(self, collection: str) -> CollectionPolicy:
        try:
            return self._policies[collection]
        except KeyError:
            raise NotFound(f"Unknown collection: {collection}") from None

    @staticmethod
    def _clean(data: Any) -> dict[str, Any]:
        data = require_mapping(data)
        reserved = sorted(_RESERVED_FIELDS & set(data))
        if reserved:
            raise InvalidArgument(f"Fields are managed by the server: {', '.join(reserved)}")
        return dict(data)

    async def get(
        self, principal: Principal | None, collection: str, doc_id: str
    ) -> dict[str, Any]:
        policy = self.policy_for(collection)
        await self._gate.authorize(principal, policy.read_level)
        doc = await call_store(
            "read the record", self._store.get, policy.collection, require_id(doc_id, "id")
        )
        if doc is None:
            raise NotFound("Record not found.")
        return {"id": doc.id, **doc.data}

    async def list_records(
        self, principal: Principal | None, collection: str
    ) -> list[dict[str, Any]]:
        policy = self.policy_for(collection)
        await self._gate.authorize(principal, policy.read_level)
        docs = await call_store("list records", self._store.query, policy.collection, Query())
        return [{"id": doc.id, **doc.data} for doc in docs]

    async def create(
        self,
        principal: Principal | None,
        collection: str,
        data: dict[str, Any],
        doc_id: str | None = None,
    ) -> dict[str, Any]:
        policy = self.policy_for(collection)
        await self._gate.authorize(principal, policy.create_level)
        fields = self._clean(data)
        record = {
            **fields,
            "created": utc_now_iso(),
            "createdBy": principal.subject_id,
            **modification_stamp(principal),
        }

        if doc_id is not None:
            if not policy.explicit_ids:
                raise InvalidArgument(f"Document ids are assigned by the server in {collection}.")
            doc_id = require_id(doc_id, "id")
            existing = await call_store(
                "read the record", self._store.get, policy.collection, doc_id
            )
            if existing is not None:
                raise InvalidArgument(f"Record {doc_id} already exists.")
            await call_store(
                "create the record", self._store.set, policy.collection, doc_id, record
            )
        else:
            doc_id = await call_store(
                "create the record", self._store.insert, policy.collection, record
            )

        await self._recorder.record_action(
            principal,
            entity_type=policy.entity_type,
            entity_id=doc_id,
            action=AuditAction.CREATE,
            after=record,
        )
        return {"id": doc_id, **record}

    async def update(
        self,
        principal: Principal | None,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge ``data`` into the record.

        An update that changes nothing but bookkeeping fields is neither
        written nor audited.
        """
        policy = self.policy_for(collection)
        await self._gate.authorize(principal, policy.update_level)
        doc_id = require_id(doc_id, "id")
        fields = self._clean(data)

        existing = await call_store("read the record", self._store.get, policy.collection, doc_id)
        if existing is None and not policy.explicit_ids:
            raise NotFound("Record not found.")
        before = existing.data if existing is not None else None

        after = {**(before or {}), **fields}
        if before is not None and not has_actual_changes(before, after):
            return {"id": doc_id, **before}

        stamp = modification_stamp(principal)
        if before is None:
            stamp = {"created": utc_now_iso(), "createdBy": principal.subject_id, **stamp}
        after.update(stamp)
        await call_store(
            "update the record",
            self._store.set,
            policy.collection,
            doc_id,
            {**fields, **stamp},
            merge=True,
        )
        await self._recorder.record_action(
            principal,
            entity_type=policy.entity_type,
            entity_id=doc_id,
            action=AuditAction.UPDATE if before is not None else AuditAction.CREATE,
            before=before,
            after=after,
        )
        return {"id": doc_id, **after}

    async def delete(self, principal: Principal | None, collection: str, doc_id: str) -> None:
        policy = self.policy_for(collection)
        entry_level = Role.OPERATOR if policy.owner_field else policy.delete_level
        roles = await self._gate.authorize(principal, entry_level)
        doc_id = require_id(doc_id, "id")

        existing = await call_store("read the record", self._store.get, policy.collection, doc_id)
        if existing is None:
            raise NotFound("Record not found.")

        if not roles.has_at_least(policy.delete_level):
            owner = existing.data.get(policy.owner_field) if policy.owner_field else None
            if owner != principal.subject_id:
                logger.warning(
                    "Delete of %s/%s denied for non-owner %s",
                    policy.collection,
                    doc_id,
                    principal.subject_id,
                )
                raise PermissionDenied("You can only delete records you created.")

        await call_store("delete the record", self._store.delete, policy.collection, doc_id)
        await self._recorder.record_action(
            principal,
            entity_type=policy.entity_type,
            entity_id=doc_id,
            action=AuditAction.DELETE,
            before=existing.data,
        )
