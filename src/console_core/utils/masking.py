"""Sensitive-field redaction.

Two passes live here:

* ``sanitize``: the redaction applied to every audit payload before it is
  persisted. It walks the whole tree (no depth cap) and replaces values of
  sensitive keys with ``REDACTED``.
* ``redact_sensitive_fields``: the depth-limited masking used for log lines,
  where an unbounded walk over attacker-controlled input is not acceptable.
"""

from __future__ import annotations

from typing import Any

REDACTED = "***REDACTED***"

_MAX_REDACT_DEPTH = 20

# Audit payload markers (substring match on the lowercased key).
AUDIT_SENSITIVE_MARKERS: tuple[str, ...] = (
    "password",
    "passwordhash",
    "secret",
    "apikey",
    "token",
    "accesstoken",
    "refreshtoken",
    "privatekey",
    "creditcard",
    "cvv",
    "pin",
)

# Log-line markers (substring match, case-insensitive).
SENSITIVE_KEY_MARKERS: list[str] = [
    "password",
    "secret",
    "token",
    "apikey",
    "privatekey",
    "credential",
    "authorization",
    "cookie",
]


def is_sensitive_key(
    key: object, markers: tuple[str, ...] | list[str] = AUDIT_SENSITIVE_MARKERS
) -> bool:
    lowered = str(key).lower()
    return any(marker in lowered for marker in markers)


def sanitize(value: Any) -> Any:
    """Return a redacted deep copy of a JSON-like value.

    Scalars and ``None`` are returned unchanged. The input is never mutated.
    """
    if isinstance(value, dict):
        return {
            key: REDACTED if is_sensitive_key(key) else sanitize(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize(item) for item in value]
    return value


def redact_sensitive_fields(
    value: object,
    *,
    mask: str = "***",
    depth: int = 0,
    max_depth: int = _MAX_REDACT_DEPTH,
) -> object:
    """Recursively replace sensitive values in dicts/lists.

    Keys are matched by *substring* against ``SENSITIVE_KEY_MARKERS``
    (case-insensitive).  When ``max_depth`` is exceeded the entire
    sub-tree is replaced with *mask*.
    """
    if depth >= max_depth:
        return mask
    if isinstance(value, dict):
        redacted: dict[str, object] = {}
        for key, val in value.items():
            if is_sensitive_key(key, SENSITIVE_KEY_MARKERS):
                redacted[key] = mask
            else:
                redacted[key] = redact_sensitive_fields(
                    val, mask=mask, depth=depth + 1, max_depth=max_depth,
                )
        return redacted
    if isinstance(value, list):
        return [
            redact_sensitive_fields(
                item, mask=mask, depth=depth + 1, max_depth=max_depth,
            )
            for item in value
        ]
    return value
