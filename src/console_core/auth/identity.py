"""Attach the authenticated principal to each request.

Authentication itself happens upstream: an identity-aware proxy verifies the
caller's token and forwards the subject identifier (and optionally the
email) in request headers. This module only turns those headers into a
Principal. Requests without identity headers continue unauthenticated; the
permission gate rejects them on any gated operation.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, Protocol

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .context import Principal, reset_principal, set_principal

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/health"})

_SUBJECT_RE = re.compile(r"^[A-Za-z0-9_\-.:@|]{1,128}$")


class IdentityVerifier(Protocol):
    def identify(self, headers: Mapping[str, str]) -> Principal | None: ...


class HeaderIdentityVerifier:
    """Build a Principal from headers set by a trusted proxy."""

    def __init__(self, subject_header: str, email_header: str) -> None:
        self._subject_header = subject_header.lower()
        self._email_header = email_header.lower()

    def identify(self, headers: Mapping[str, str]) -> Principal | None:
        subject_id = (headers.get(self._subject_header) or "").strip()
        if not subject_id:
            return None
        if not _SUBJECT_RE.match(subject_id):
            logger.warning("Rejected malformed subject header value")
            return None
        email = (headers.get(self._email_header) or "").strip() or None
        return Principal(subject_id=subject_id, email=email)


class IdentityMiddleware(BaseHTTPMiddleware):
    """Resolve the principal and expose it through the request context."""

    def __init__(self, app: Any, verifier: IdentityVerifier) -> None:
        super().__init__(app)
        self._verifier = verifier

    async def dispatch(self, request: Request, call_next: Any) -> Any:
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        principal = self._verifier.identify(request.headers)
        request.state.principal = principal
        if principal is None:
            return await call_next(request)

        context_token = set_principal(principal)
        try:
            return await call_next(request)
        finally:
            reset_principal(context_token)
