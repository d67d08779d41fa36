"""SQLite-backed document store.

Every collection lives in one ``documents`` table keyed by
``(collection, doc_id)`` with the document body stored as JSON. Filters and
ordering go through ``json_extract`` so the store supports the same query
surface as the in-memory implementation.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path
from typing import Any
from uuid import uuid4

from console_core.errors import StoreError
from console_core.store.base import EQUALITY, Query, StoredDocument
from console_core.utils.serialization import dumps_document


def _json_path(field_name: str) -> str:
    return "$." + ".".join(f'"{part}"' for part in field_name.split("."))


class SqliteDocumentStore:
    def __init__(self, path: str, wal: bool = True) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS documents (
                collection TEXT NOT NULL,
                doc_id TEXT NOT NULL,
                data TEXT NOT NULL,
                PRIMARY KEY (collection, doc_id)
            );

            CREATE INDEX IF NOT EXISTS idx_documents_audit_timestamp
                ON documents(collection, json_extract(data, '$."timestamp"'));
            """
        )
        self._conn.commit()

    def _run(self, statements: list[tuple[str, tuple[Any, ...]]]) -> list[sqlite3.Cursor]:
        with self._lock:
            if self._closed:
                raise StoreError("Store is closed")
            try:
                cursors = [self._conn.execute(sql, params) for sql, params in statements]
                self._conn.commit()
                return cursors
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreError(str(exc)) from exc

    def _fetch(self, sql: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        with self._lock:
            if self._closed:
                raise StoreError("Store is closed")
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise StoreError(str(exc)) from exc

    def insert(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = uuid4().hex
        self._run(
            [
                (
                    "INSERT INTO documents (collection, doc_id, data) VALUES (?, ?, ?)",
                    (collection, doc_id, dumps_document(data)),
                )
            ]
        )
        return doc_id

    def get(self, collection: str, doc_id: str) -> StoredDocument | None:
        rows = self._fetch(
            "SELECT doc_id, data FROM documents WHERE collection = ? AND doc_id = ?",
            (collection, doc_id),
        )
        if not rows:
            return None
        return StoredDocument(id=rows[0]["doc_id"], data=json.loads(rows[0]["data"]))

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False
    ) -> None:
        sql = (
            "INSERT INTO documents (collection, doc_id, data) VALUES (?, ?, ?) "
            "ON CONFLICT(collection, doc_id) DO UPDATE SET data = excluded.data"
        )
        if not merge:
            self._run([(sql, (collection, doc_id, dumps_document(data)))])
            return

        # Top-level merge, read and write under one lock hold.
        with self._lock:
            if self._closed:
                raise StoreError("Store is closed")
            try:
                row = self._conn.execute(
                    "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                ).fetchone()
                merged = json.loads(row["data"]) if row is not None else {}
                merged.update(data)
                self._conn.execute(sql, (collection, doc_id, dumps_document(merged)))
                self._conn.commit()
            except sqlite3.Error as exc:
                self._conn.rollback()
                raise StoreError(str(exc)) from exc

    def delete(self, collection: str, doc_id: str) -> bool:
        (cursor,) = self._run(
            [
                (
                    "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                    (collection, doc_id),
                )
            ]
        )
        return cursor.rowcount == 1

    def query(self, collection: str, query: Query) -> list[StoredDocument]:
        clauses = ["collection = ?"]
        params: list[Any] = [collection]

        for flt in query.filters:
            path = _json_path(flt.field)
            if flt.op == EQUALITY:
                clauses.append(f"json_extract(data, '{path}') IS ?")
            else:
                clauses.append(f"json_extract(data, '{path}') {flt.op} ?")
            params.append(flt.value)

        direction = "DESC" if query.descending else "ASC"
        if query.order_by:
            order_path = _json_path(query.order_by)
            order_expr = f"json_extract(data, '{order_path}')"
            clauses.append(f"{order_expr} IS NOT NULL")
            order_sql = f"ORDER BY {order_expr} {direction}, doc_id {direction}"
        else:
            order_expr = None
            order_sql = f"ORDER BY doc_id {direction}"

        if query.start_after is not None:
            cursor_rows = self._fetch(
                "SELECT data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, query.start_after),
            )
            if not cursor_rows:
                raise ValueError(f"Unknown cursor document: {query.start_after}")
            cmp = "<" if query.descending else ">"
            if order_expr is not None:
                cursor_value = self._fetch(
                    f"SELECT json_extract(?, '{_json_path(query.order_by)}') AS value",
                    (cursor_rows[0]["data"],),
                )[0]["value"]
                clauses.append(
                    f"({order_expr} {cmp} ? OR ({order_expr} = ? AND doc_id {cmp} ?))"
                )
                params.extend([cursor_value, cursor_value, query.start_after])
            else:
                clauses.append(f"doc_id {cmp} ?")
                params.append(query.start_after)

        sql = f"SELECT doc_id, data FROM documents WHERE {' AND '.join(clauses)} {order_sql}"
        if query.limit is not None:
            sql += " LIMIT ?"
            params.append(query.limit)

        rows = self._fetch(sql, tuple(params))
        return [StoredDocument(id=row["doc_id"], data=json.loads(row["data"])) for row in rows]

    def delete_many(self, collection: str, doc_ids: list[str]) -> int:
        if not doc_ids:
            return 0
        placeholders = ",".join("?" for _ in doc_ids)
        (cursor,) = self._run(
            [
                (
                    f"DELETE FROM documents WHERE collection = ? AND doc_id IN ({placeholders})",
                    (collection, *doc_ids),
                )
            ]
        )
        return cursor.rowcount

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True
