"""File blob storage for attachments."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class BlobStore(Protocol):
    def put(self, path: str, data: bytes) -> None: ...

    def exists(self, path: str) -> bool: ...

    def delete(self, path: str) -> None:
        """Delete ``path``; a missing blob is not an error."""
        ...


class LocalBlobStore:
    """Blobs kept under a root directory on the local filesystem."""

    def __init__(self, root: str) -> None:
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        if not path or not path.strip():
            raise ValueError("Blob path must not be empty")
        candidate = (self._root / path.lstrip("/")).resolve()
        if not candidate.is_relative_to(self._root):
            raise ValueError(f"Blob path is outside the storage root: {path}")
        return candidate

    def put(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()

    def delete(self, path: str) -> None:
        self._resolve(path).unlink(missing_ok=True)
