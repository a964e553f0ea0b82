import dataclasses
import types
from enum import Enum
from functools import cache
from typing import Any, ClassVar, Mapping, NamedTuple, Union, get_args, get_origin, get_type_hints

from pydantic import PydanticUndefinedAnnotation, PydanticUserError, TypeAdapter

# --
# == Records
#
# The values that can be populated from headers, forms or JSON are
# "records": dataclass instances, or instances of classes declaring
# annotated attributes. Fields carry their tags as dataclass field
# metadata, like `field(metadata={"header": "X-Request-Id"})`.

IMMUTABLE_TYPES: tuple[type, ...] = (
	type(None),
	bool,
	int,
	float,
	complex,
	str,
	bytes,
	tuple,
	frozenset,
	range,
	type,
	Enum,
)

COLLECTION_TYPES: tuple[type, ...] = (list, dict, set, bytearray)


class RecordField(NamedTuple):
	name: str
	type: Any
	metadata: Mapping[str, Any]

	def tag(self, name: str) -> str | None:
		return self.metadata.get(name)


def isMutable(value: Any) -> bool:
	"""Tells if the value can be updated in place."""
	if isinstance(value, IMMUTABLE_TYPES):
		return False
	elif dataclasses.is_dataclass(value) and value.__dataclass_params__.frozen:  # type: ignore[union-attr]
		return False
	else:
		return True


def isRecord(value: Any) -> bool:
	if isinstance(value, COLLECTION_TYPES) or isinstance(value, IMMUTABLE_TYPES):
		return False
	elif dataclasses.is_dataclass(value):
		return True
	else:
		return bool(recordFields(type(value)))


def isRecordType(t: Any) -> bool:
	return isinstance(t, type) and get_origin(t) is None and (
		dataclasses.is_dataclass(t)
		or (not issubclass(t, COLLECTION_TYPES + IMMUTABLE_TYPES) and bool(recordFields(t)))
	)


def typeHints(t: type) -> dict[str, Any]:
	"""Returns the resolved annotations of `t`, or the raw ones when they
	reference names that can't be resolved."""
	try:
		return get_type_hints(t)
	except (NameError, TypeError):
		res: dict[str, Any] = {}
		for base in reversed(t.__mro__):
			res.update(getattr(base, "__annotations__", {}))
		return res


@cache
def recordFields(t: type) -> tuple[RecordField, ...]:
	"""Lists the fields of the record type `t`, in declaration order."""
	hints = typeHints(t)
	if dataclasses.is_dataclass(t):
		return tuple(
			RecordField(f.name, hints.get(f.name, f.type), f.metadata)
			for f in dataclasses.fields(t)
		)
	else:
		return tuple(
			RecordField(k, v, {})
			for k, v in hints.items()
			if not k.startswith("_") and get_origin(v) is not ClassVar and v is not ClassVar
		)


def unwrapOptional(t: Any) -> tuple[Any, bool]:
	"""Returns `(X, True)` for `X | None`, and `(t, False)` otherwise."""
	origin = get_origin(t)
	if origin is Union or origin is types.UnionType:
		args = [_ for _ in get_args(t) if _ is not type(None)]
		if len(args) == 1 and len(args) != len(get_args(t)):
			return args[0], True
	return t, False


def typeName(t: Any) -> str:
	return t.__name__ if isinstance(t, type) else str(t)


@cache
def typeAdapter(t: Any) -> TypeAdapter | None:
	"""Returns the pydantic adapter validating values of type `t`, or `None`
	when pydantic can't build a schema for it."""
	try:
		return TypeAdapter(t)
	except (PydanticUndefinedAnnotation, PydanticUserError):
		return None


# EOF
