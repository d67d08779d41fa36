"""Read paths over persisted audit entries. Results are always newest first."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from console_core.errors import Internal, InvalidArgument, StoreError
from console_core.store.base import DocumentStore, Query
from console_core.utils.time import parse_utc_iso

from .models import AuditEntry, AuditFilters

logger = logging.getLogger(__name__)


def _as_datetime(value: datetime | str, name: str) -> datetime:
    if isinstance(value, datetime):
        return value
    try:
        return parse_utc_iso(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{name} must be an ISO-8601 timestamp.") from None


class AuditQueryService:
    def __init__(
        self,
        store: DocumentStore,
        collection: str = "audit_logs",
        max_limit: int = 500,
    ) -> None:
        self._store = store
        self._collection = collection
        self._max_limit = max_limit

    def _limit(self, limit: int) -> int:
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise InvalidArgument("limit must be a positive integer.")
        return min(limit, self._max_limit)

    async def by_entity(
        self, entity_type: str, entity_id: str, limit: int = 50
    ) -> list[AuditEntry]:
        if not entity_type or not entity_id:
            raise InvalidArgument("entityType and entityId are required.")
        query = (
            Query()
            .where("entityType", "==", entity_type)
            .where("entityId", "==", entity_id)
            .order("timestamp", descending=True)
            .take(self._limit(limit))
        )
        return await self._run(query)

    async def by_actor(self, actor_id: str, limit: int = 50) -> list[AuditEntry]:
        if not actor_id:
            raise InvalidArgument("actorId is required.")
        query = (
            Query()
            .where("actorId", "==", actor_id)
            .order("timestamp", descending=True)
            .take(self._limit(limit))
        )
        return await self._run(query)

    async def search(self, filters: AuditFilters | None = None) -> list[AuditEntry]:
        """AND of every provided filter.

        An inverted time window is not rejected; it simply matches nothing.
        """
        filters = filters or AuditFilters()
        query = Query()
        if filters.entity_type:
            query = query.where("entityType", "==", filters.entity_type)
        if filters.action:
            query = query.where("action", "==", filters.action)
        if filters.actor_id:
            query = query.where("actorId", "==", filters.actor_id)
        if filters.timestamp_from is not None:
            query = query.where(
                "timestamp", ">=", _as_datetime(filters.timestamp_from, "timestampFrom")
            )
        if filters.timestamp_to is not None:
            query = query.where(
                "timestamp", "<=", _as_datetime(filters.timestamp_to, "timestampTo")
            )
        query = (
            query.order("timestamp", descending=True)
            .take(self._limit(filters.limit))
            .after(filters.start_after)
        )
        return await self._run(query)

    async def _run(self, query: Query) -> list[AuditEntry]:
        try:
            docs = await asyncio.to_thread(self._store.query, self._collection, query)
        except ValueError as exc:
            raise InvalidArgument(str(exc)) from exc
        except StoreError as exc:
            logger.error("Audit query failed: %s", exc)
            raise Internal("Unable to read audit entries.") from exc
        return [AuditEntry.from_document(doc) for doc in docs]
