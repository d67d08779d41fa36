"""Collection-scoped document storage."""

from console_core.store.base import (
    DocumentStore,
    FieldFilter,
    Query,
    StoredDocument,
)
from console_core.store.blobs import BlobStore, LocalBlobStore
from console_core.store.memory import MemoryDocumentStore
from console_core.store.sqlite import SqliteDocumentStore

__all__ = [
    "BlobStore",
    "DocumentStore",
    "FieldFilter",
    "LocalBlobStore",
    "MemoryDocumentStore",
    "Query",
    "SqliteDocumentStore",
    "StoredDocument",
]
