"""Helpers shared by the service layer."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from typing import Any, TypeVar

from console_core.auth.context import Principal
from console_core.errors import Internal, InvalidArgument, StoreError
from console_core.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


async def call_store(operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Run a blocking store call in a worker thread.

    Store failures surface as ``Internal``; ``ValueError`` from a malformed
    query becomes ``InvalidArgument``.
    """
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except StoreError as exc:
        logger.error("Store call failed during %s: %s", operation, exc)
        raise Internal(f"Unable to {operation}.") from exc
    except ValueError as exc:
        raise InvalidArgument(str(exc)) from exc


def validate_email(value: Any) -> str:
    if not isinstance(value, str) or not _EMAIL_RE.match(value.strip()):
        raise InvalidArgument("A valid email address is required.")
    return value.strip()


def require_mapping(value: Any, name: str = "data") -> dict[str, Any]:
    if not isinstance(value, dict):
        raise InvalidArgument(f"{name} must be an object.")
    return value


def require_id(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgument(f"{name} is required.")
    return value.strip()


def modification_stamp(principal: Principal) -> dict[str, Any]:
    """Bookkeeping fields written with every mutation."""
    return {
        "changed": utc_now_iso(),
        "lastModifiedBy": principal.subject_id,
        "lastModifiedByEmail": principal.email,
    }
