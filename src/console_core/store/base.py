"""Document store protocol and query description."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from console_core.utils.time import to_utc_iso

EQUALITY = "=="
RANGE_OPERATORS = frozenset({"<", "<=", ">", ">="})
OPERATORS = RANGE_OPERATORS | {EQUALITY}

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


def validate_field_name(name: str) -> str:
    if not _FIELD_RE.match(name):
        raise ValueError(f"Invalid field name: {name!r}")
    return name


def coerce_value(value: Any) -> Any:
    """Normalize filter values to their stored representation."""
    if isinstance(value, datetime):
        return to_utc_iso(value)
    return value


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        validate_field_name(self.field)
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op!r}")
        object.__setattr__(self, "value", coerce_value(self.value))


@dataclass(frozen=True)
class Query:
    """Immutable query builder.

    Mirrors the capabilities the console relies on: equality filters, range
    filters, a single ordering field, a result limit and a ``start_after``
    cursor naming the last document of the previous page.
    """

    filters: tuple[FieldFilter, ...] = ()
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None
    start_after: str | None = None

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        return replace(self, filters=self.filters + (FieldFilter(field_name, op, value),))

    def order(self, field_name: str, *, descending: bool = False) -> "Query":
        return replace(self, order_by=validate_field_name(field_name), descending=descending)

    def take(self, limit: int) -> "Query":
        if limit < 1:
            raise ValueError("limit must be positive")
        return replace(self, limit=limit)

    def after(self, doc_id: str | None) -> "Query":
        return replace(self, start_after=doc_id)


@dataclass
class StoredDocument:
    id: str
    data: dict[str, Any] = field(default_factory=dict)


def lookup_path(data: dict[str, Any], path: str, default: Any = None) -> Any:
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return default
        current = current[part]
    return current


@runtime_checkable
class DocumentStore(Protocol):
    """Synchronous, thread-safe collection store.

    Implementations raise ``StoreError`` for backend failures and
    ``ValueError`` for malformed queries (unknown cursor, bad field name).
    """

    def insert(self, collection: str, data: dict[str, Any]) -> str: ...

    def get(self, collection: str, doc_id: str) -> StoredDocument | None: ...

    def set(
        self, collection: str, doc_id: str, data: dict[str, Any], *, merge: bool = False
    ) -> None: ...

    def delete(self, collection: str, doc_id: str) -> bool: ...

    def query(self, collection: str, query: Query) -> list[StoredDocument]: ...

    def delete_many(self, collection: str, doc_ids: list[str]) -> int: ...

    def close(self) -> None: ...
