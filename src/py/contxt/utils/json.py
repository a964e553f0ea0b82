from typing import Any, TypeAlias, cast

import orjson

from .primitives import asPrimitive

TJSON: TypeAlias = None | int | float | bool | str | list[Any] | dict[str, Any]

# Alias for the encoder failure, a subclass of `TypeError`
JSONEncodeError = orjson.JSONEncodeError
# Alias for the decoder failure, a subclass of `ValueError`
JSONDecodeError = orjson.JSONDecodeError


def json(value: Any) -> bytes:
	"""Converts the value to compact JSON bytes, raising `JSONEncodeError`
	when it can't."""
	return orjson.dumps(asPrimitive(value), option=orjson.OPT_NON_STR_KEYS)


def unjson(value: bytes | bytearray | memoryview | str) -> TJSON:
	"""Converts JSON-encoded data to a value, raising `JSONDecodeError`
	when the data is not valid."""
	return cast(TJSON, orjson.loads(value))


# EOF
