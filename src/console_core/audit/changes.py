"""Detect whether an update changed anything beyond bookkeeping fields."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from console_core.utils.serialization import json_default

SYSTEM_FIELDS: frozenset[str] = frozenset(
    {"created", "changed", "timestamp", "lastModifiedBy", "lastModifiedByEmail"}
)


def _canonical(value: Any) -> str:
    return json.dumps(value, sort_keys=True, default=json_default)


def has_actual_changes(
    before: Mapping[str, Any] | None,
    after: Mapping[str, Any] | None,
    *,
    ignore: Iterable[str] = SYSTEM_FIELDS,
) -> bool:
    """True if any non-system field differs between ``before`` and ``after``.

    A field missing on one side counts as ``None``.
    """
    before = before or {}
    after = after or {}
    ignored = frozenset(ignore)
    for key in set(before) | set(after):
        if key in ignored:
            continue
        if _canonical(before.get(key)) != _canonical(after.get(key)):
            return True
    return False
