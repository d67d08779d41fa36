"""Request-scoped principal."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class Principal:
    """
    Authenticated caller of an operation.

    ``subject_id`` is the opaque identifier issued by the identity provider.
    ``email`` is used for display and audit attribution only. ``claims``
    carries whatever else the identity provider asserted (including any
    embedded role claim); none of it takes part in authorization, which is
    always decided from the stored profile.
    """

    subject_id: str
    email: str | None = None
    source: str = "web"
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    claims: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "claims", MappingProxyType(dict(self.claims)))

    def __repr__(self) -> str:
        return (
            f"Principal("
            f"subject_id={self.subject_id!r}, "
            f"email={self.email!r}, "
            f"source={self.source!r}, "
            f"request_id={self.request_id!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


_current_principal: ContextVar[Principal | None] = ContextVar(
    "current_principal",
    default=None,
)


def set_principal(principal: Principal) -> Token[Principal | None]:
    """Set the principal and return the reset token."""
    return _current_principal.set(principal)


def reset_principal(token: Token[Principal | None]) -> None:
    """Reset the principal using the token from set_principal()."""
    _current_principal.reset(token)


def get_principal_optional() -> Principal | None:
    return _current_principal.get()
