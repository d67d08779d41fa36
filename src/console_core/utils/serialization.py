"""JSON serialization utilities."""

from __future__ import annotations

import datetime
import decimal
import json
from typing import Any


def json_default(obj: object) -> object:
    """JSON serializer for objects not serializable by default json code."""
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, decimal.Decimal):
        # Integral decimals stay integers; others become floats unless that
        # would lose precision, in which case the string form is kept.
        if obj == obj.to_integral_value():
            return int(obj)
        f = float(obj)
        if decimal.Decimal(str(f)) != obj:
            return str(obj)
        return f
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


def dumps_document(data: dict[str, Any]) -> str:
    return json.dumps(data, ensure_ascii=False, sort_keys=True, default=json_default)
