"""In-process document store used for tests and local development."""

from __future__ import annotations

import copy
import threading
from typing import Any
from uuid import uuid4

from console_core.store.base import EQUALITY, Query, StoredDocument, lookup_path

_MISSING = object()


def _matches(data: dict[str, Any], query: Query) -> bool:
    for flt in query.filters:
        actual = lookup_path(data, flt.field, _MISSING)
        if flt.op == EQUALITY:
            if actual is _MISSING:
                actual = None
            if actual != flt.value:
                return False
            continue
        if actual is _MISSING or actual is None or flt.value is None:
            return False
        try:
            if flt.op == "<" and not actual < flt.value:
                return False
            if flt.op == "<=" and not actual <= flt.value:
                return False
            if flt.op == ">" and not actual > flt.value:
                return False
            if flt.op == ">=" and not actual >= flt.value:
                return False
        except TypeError:
            return False
    return True


class MemoryDocumentStore:
    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()

    def _bucket(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def insert(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid4().hex
        with self._lock:
            self._bucket(collection)[doc_id] = copy.deepcopy(data)
        return doc_id

    def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        with self._lock:
            data = self._bucket(collection).get(doc_id)
            if data is None:
                return None
            return StoredDocument(id=doc_id, data=copy.deepcopy(data))

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        with self._lock:
            bucket = self._bucket(collection)
            if merge and doc_id in bucket:
                bucket[doc_id].update(copy.deepcopy(data))
            else:
                bucket[doc_id] = copy.deepcopy(data)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            return self._bucket(collection).pop(doc_id, None) is not None

    def query(self, collection: str, query: Query) -> list[StoredDocument]:
        with self._lock:
            bucket = self._bucket(collection)
            rows = [(doc_id, data) for doc_id, data in bucket.items() if _matches(data, query)]

            if query.order_by:
                rows = [
                    row for row in rows if lookup_path(row[1], query.order_by) is not None
                ]

                def sort_key(row: tuple[str, dict[str, Any]]) -> tuple[Any, str]:
                    return (lookup_path(row[1], query.order_by), row[0])
            else:

                def sort_key(row: tuple[str, dict[str, Any]]) -> tuple[Any, str]:
                    return ("", row[0])

            rows.sort(key=sort_key, reverse=query.descending)

            if query.start_after is not None:
                cursor_data = bucket.get(query.start_after)
                if cursor_data is None:
                    raise ValueError(f"Unknown cursor document: {query.start_after}")
                cursor_key = sort_key((query.start_after, cursor_data))
                if query.descending:
                    rows = [row for row in rows if sort_key(row) < cursor_key]
                else:
                    rows = [row for row in rows if sort_key(row) > cursor_key]

            if query.limit is not None:
                rows = rows[: query.limit]

            return [StoredDocument(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in rows]

    def delete_many(self, collection: str, doc_ids: list[str]) -> int:
        with self._lock:
            bucket = self._bucket(collection)
            deleted = 0
            for doc_id in doc_ids:
                if bucket.pop(doc_id, None) is not None:
                    deleted += 1
            return deleted

    def close(self) -> None:
        return None
