"""Request logging middleware with log-injection protection and masking."""

from __future__ import annotations

import logging
import re
import time
import uuid
from functools import lru_cache
from typing import Any, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from console_core.auth.context import get_principal_optional
from console_core.utils.masking import SENSITIVE_KEY_MARKERS, redact_sensitive_fields

logger = logging.getLogger(__name__)

# Control characters, tab excepted.
_CONTROL_CHAR_RE = re.compile(r"[\x00-\x08\x0a-\x1f\x7f]")


def _sanitize_log_value(value: str) -> str:
    """Replace control characters (newlines, etc.) to prevent log injection."""
    return _CONTROL_CHAR_RE.sub("_", value)


def _sanitize_ip(value: str) -> str:
    return "".join(c for c in value if 0x20 <= ord(c) < 0x7F)


def get_client_ip(request: Request, trust_forwarded_headers: bool = False) -> str:
    """Get client IP with optional trusted proxy header support."""
    if trust_forwarded_headers:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return _sanitize_ip(forwarded_for.split(",")[0].strip())
        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return _sanitize_ip(real_ip.strip())

    if request.client:
        return request.client.host
    return "unknown"


@lru_cache(maxsize=128)
def _get_mask_pattern(field: str) -> re.Pattern:
    return re.compile(
        rf'(["\']?\w*{re.escape(field)}\w*["\']?\s*[:=]\s*)["\']?[^"\'\s,}}]*["\']?',
        re.IGNORECASE,
    )


def mask_exception_message(message: str, mask_fields: frozenset[str]) -> str:
    """Mask ``key=value`` / ``"key": value`` pairs for sensitive keys."""
    masked = message
    for field in mask_fields:
        masked = _get_mask_pattern(field).sub(r"\1***MASKED***", masked)
    return masked


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Log REQUEST_START / REQUEST_END for every non-exempt request.

    The subject id comes from the request principal; query parameters and
    exception messages are masked before they reach the log.
    """

    EXEMPT_PATHS = frozenset({"/health"})

    def __init__(
        self,
        app: Callable,
        enabled: bool = True,
        trust_forwarded_headers: bool = False,
    ) -> None:
        super().__init__(app)
        self._enabled = enabled
        self._trust_forwarded_headers = trust_forwarded_headers
        self._mask_fields = frozenset(SENSITIVE_KEY_MARKERS)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not self._enabled or request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        request_id = _sanitize_log_value(request.headers.get("x-request-id", str(uuid.uuid4())))
        start_time = time.monotonic()
        safe_path = _sanitize_log_value(request.url.path)
        safe_ip = _sanitize_log_value(
            get_client_ip(request, trust_forwarded_headers=self._trust_forwarded_headers)
        )
        params: dict[str, Any] = redact_sensitive_fields(
            dict(request.query_params), mask="***MASKED***"
        )

        logger.info(
            "REQUEST_START request_id=%s method=%s path=%s client_ip=%s params=%s",
            request_id,
            request.method,
            safe_path,
            safe_ip,
            _sanitize_log_value(str(params)),
        )

        error_message: str | None = None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as exc:
            error_message = _sanitize_log_value(
                mask_exception_message(str(exc), self._mask_fields)
            )
            raise
        finally:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            principal = getattr(request.state, "principal", None) or get_principal_optional()
            user_id = _sanitize_log_value(principal.subject_id) if principal else "anonymous"

            if error_message:
                logger.error(
                    "REQUEST_END request_id=%s user_id=%s method=%s path=%s "
                    "status=%s duration_ms=%d error=%s",
                    request_id,
                    user_id,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                    error_message,
                )
            else:
                logger.info(
                    "REQUEST_END request_id=%s user_id=%s method=%s path=%s "
                    "status=%s duration_ms=%d",
                    request_id,
                    user_id,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                )
