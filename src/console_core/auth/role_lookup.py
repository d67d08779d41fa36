"""Fresh reads of a principal's stored roles."""

from __future__ import annotations

import asyncio
import logging

from console_core.errors import Internal, StoreError
from console_core.store.base import DocumentStore

from .roles import RoleSet

logger = logging.getLogger(__name__)


class RoleLookup:
    """Read the ``roles`` field of a profile record keyed by subject id.

    Nothing is cached: a role change takes effect on the very next call.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str = "users",
        field: str = "roles",
    ) -> None:
        self._store = store
        self._collection = collection
        self._field = field

    async def lookup(self, subject_id: str) -> RoleSet | None:
        """Return the stored RoleSet, or None if no profile exists."""
        try:
            doc = await asyncio.to_thread(self._store.get, self._collection, subject_id)
        except StoreError as exc:
            logger.error("Role lookup failed for %s: %s", subject_id, exc)
            raise Internal("Unable to read the user profile.") from exc

        if doc is None:
            logger.warning("Profile %s not found in %s", subject_id, self._collection)
            return None
        return RoleSet.normalize(doc.data.get(self._field))
