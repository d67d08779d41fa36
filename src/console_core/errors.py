"""Typed error taxonomy shared by the gate, the audit core and the services."""

from __future__ import annotations


class ConsoleError(Exception):
    """Base class for errors surfaced to callers with a category and message."""

    code = "internal"
    http_status = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code

    def to_dict(self) -> dict[str, str]:
        return {"error": self.code, "message": self.message}


class Unauthenticated(ConsoleError):
    code = "unauthenticated"
    http_status = 401


class PermissionDenied(ConsoleError):
    code = "permission-denied"
    http_status = 403


class InvalidArgument(ConsoleError):
    code = "invalid-argument"
    http_status = 400


class NotFound(ConsoleError):
    code = "not-found"
    http_status = 404


class FailedPrecondition(ConsoleError):
    code = "failed-precondition"
    http_status = 409


class Internal(ConsoleError):
    code = "internal"
    http_status = 500


class StoreError(RuntimeError):
    """Raised by document store implementations when the backend fails."""
