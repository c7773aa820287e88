"""JSON encoding shared by the sinks and record snapshots.

Decimals are written as strings so settled amounts survive a JSON round
trip without float rounding, enums as their values and timestamps as ISO 8601.
"""

import json
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def serialize_value(value: Any) -> Any:
    """Convert a value to JSON-compatible types, recursing into containers."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: serialize_value(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, dict):
        return {str(k): serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(v) for v in value]
    return value


def to_dict(obj: Any) -> dict:
    """Convert an event, a record or a plain mapping to a JSON-ready dict."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    if is_dataclass(obj) or isinstance(obj, dict):
        return serialize_value(obj)
    return {"value": str(obj)}


def dumps(obj: Any, pretty: bool = False) -> str:
    """Encode ``obj`` as one JSON document."""
    return json.dumps(to_dict(obj), indent=2 if pretty else None, ensure_ascii=False, default=str)
