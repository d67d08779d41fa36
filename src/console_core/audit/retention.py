"""Age-based deletion of audit history."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from console_core.errors import Internal, InvalidArgument, StoreError
from console_core.store.base import DocumentStore, Query
from console_core.utils.time import utc_now

logger = logging.getLogger(__name__)


class RetentionSweeper:
    """Delete entries older than a cutoff, one store batch at a time.

    Has no schedule of its own; the CLI or an external scheduler drives it.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str = "audit_logs",
        batch_size: int = 500,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self._store = store
        self._collection = collection
        self._batch_size = batch_size
        self._clock = clock

    async def purge_older_than(self, days_to_keep: int = 90) -> int:
        """Delete entries with ``timestamp < now - days_to_keep`` and return the count."""
        if isinstance(days_to_keep, bool) or not isinstance(days_to_keep, int) or days_to_keep < 0:
            raise InvalidArgument("daysToKeep must be a non-negative integer.")

        cutoff = self._clock() - timedelta(days=days_to_keep)
        query = (
            Query()
            .where("timestamp", "<", cutoff)
            .order("timestamp")
            .take(self._batch_size)
        )

        total = 0
        try:
            while True:
                batch = await asyncio.to_thread(self._store.query, self._collection, query)
                if not batch:
                    break
                total += await asyncio.to_thread(
                    self._store.delete_many, self._collection, [doc.id for doc in batch]
                )
                if len(batch) < self._batch_size:
                    break
        except StoreError as exc:
            logger.error("Audit retention sweep failed after %d deletions: %s", total, exc)
            raise Internal("Unable to purge audit entries.") from exc

        if total:
            logger.info("Deleted %d audit entries older than %d days", total, days_to_keep)
        else:
            logger.info("No audit entries older than %d days", days_to_keep)
        return total
