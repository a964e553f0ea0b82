from base64 import b64encode
from dataclasses import fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from time import struct_time
from typing import Any
from uuid import UUID

import orjson

TLiteral = bool | int | float | str | bytes
TComposite = (
    list[TLiteral] | dict[TLiteral, TLiteral] | set[TLiteral] | tuple[TLiteral, ...]
)
TPrimitive = None | TLiteral | TComposite | list[Any] | dict[str, Any]

# Same nesting limit as orjson, which also catches self-referencing values
MAX_DEPTH: int = 254


def fieldAlias(field: Any, tag: str = "json") -> str:
    """Returns the name under which the dataclass `field` is serialized,
    which is its `tag` metadata when present."""
    alias = field.metadata.get(tag) if field.metadata else None
    return alias.split(",", 1)[0] if alias else field.name


def asPrimitive(value: Any, *, currentDepth: int = 0) -> Any:
    """Converts the given value to a primitive value, that can be converted
    to JSON. Values that have no primitive equivalent are returned as-is,
    and the encoder is left to reject them."""
    if currentDepth > MAX_DEPTH:
        raise orjson.JSONEncodeError("Recursion limit reached")
    if value is None or type(value) in (bool, float, int, str):
        return value
    elif hasattr(value, "asPrimitive") and not isinstance(value, type):
        return value.asPrimitive()
    elif isinstance(value, tuple) and hasattr(value, "_fields"):
        return {
            k: asPrimitive(getattr(value, k), currentDepth=currentDepth + 1)
            for k in value._fields
        }
    elif isinstance(value, (bytes, bytearray)):
        # Same as Go and most JSON APIs: binary payloads travel as base64
        return b64encode(value).decode("ascii")
    elif isinstance(value, (list, tuple, set, frozenset)):
        return [asPrimitive(v, currentDepth=currentDepth + 1) for v in value]
    elif is_dataclass(value) and not isinstance(value, type):
        return {
            fieldAlias(f): asPrimitive(
                getattr(value, f.name), currentDepth=currentDepth + 1
            )
            for f in fields(value)
            if fieldAlias(f) != "-"
        }
    elif isinstance(value, Enum):
        return asPrimitive(value.value, currentDepth=currentDepth + 1)
    elif isinstance(value, dict):
        return {
            asPrimitive(k): asPrimitive(v, currentDepth=currentDepth + 1)
            for k, v in value.items()
        }
    elif isinstance(value, (Decimal, Path, UUID)):
        return str(value)
    elif isinstance(value, datetime) or isinstance(value, date):
        return value.isoformat()
    elif isinstance(value, struct_time):
        return tuple(value)
    else:
        return value


# EOF
