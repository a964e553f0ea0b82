import dataclasses
from typing import Any, Callable, Iterator, Protocol, get_args, get_origin, runtime_checkable

from pydantic import ValidationError

from .http.model import DecodeError, InvalidArgument
from .utils.json import json
from .utils.primitives import fieldAlias
from .utils.records import (
	isMutable,
	isRecord,
	isRecordType,
	recordFields,
	typeAdapter,
	typeName,
	unwrapOptional,
)

HEADER_TAG: str = "header"
JSON_TAG: str = "json"

# -----------------------------------------------------------------------------
#
# TAGS
#
# -----------------------------------------------------------------------------


def tag(default: Any = dataclasses.MISSING, **tags: str) -> Any:
	"""A dataclass field carrying the given tags, for instance
	`tag(json="user_id", schema="uid")`."""
	return dataclasses.field(default=default, metadata=tags)


def header(name: str, default: str = "", **tags: str) -> Any:
	"""A dataclass field populated from the `name` request header by
	`Context.headers`."""
	return dataclasses.field(default=default, metadata={HEADER_TAG: name, **tags})


# -----------------------------------------------------------------------------
#
# HEADERS
#
# -----------------------------------------------------------------------------


@runtime_checkable
class HeaderBindable(Protocol):
	"""Values that know how to populate themselves from headers, given a
	function returning the first value of a header."""

	def bindHeaders(self, get: Callable[[str], str]) -> None: ...


def isStringField(t: Any) -> bool:
	t, _ = unwrapOptional(t)
	return t is str or t == "str" or t is Any


def bindHeaders(target: Any, get: Callable[[str], str]) -> Any:
	"""Sets every field of the `target` record to the value of the header
	named by its `header` tag. Fields without a tag map to the empty
	header name and are set to `""`."""
	if not isMutable(target):
		raise InvalidArgument("value should be a pointer")
	if isinstance(target, HeaderBindable):
		target.bindHeaders(get)
		return target
	if not isRecord(target):
		raise InvalidArgument("type of value should be a struct")
	fields = recordFields(type(target))
	for f in fields:
		if not isStringField(f.type):
			raise InvalidArgument(
				f"field {f.name} should be a string, got {typeName(f.type)}"
			)
	for f in fields:
		setattr(target, f.name, get(f.tag(HEADER_TAG) or ""))
	return target


# -----------------------------------------------------------------------------
#
# JSON
#
# -----------------------------------------------------------------------------


def jsonTypeName(value: Any) -> str:
	if isinstance(value, bool):
		return "bool"
	elif isinstance(value, (int, float)):
		return "number"
	elif isinstance(value, str):
		return "string"
	elif isinstance(value, list):
		return "array"
	elif isinstance(value, dict):
		return "object"
	else:
		return "null"


def describe(error: ValidationError) -> str:
	return "; ".join(
		f"{'.'.join(str(_) for _ in e['loc'])}: {e['msg']}" if e["loc"] else e["msg"]
		for e in error.errors(include_url=False)
	)


def mismatch(value: Any, t: Any, path: str, reason: str | None = None) -> DecodeError:
	return DecodeError(
		f"Cannot decode JSON {jsonTypeName(value)} into {path or 'value'} of type {typeName(t)}"
		+ (f": {reason}" if reason else ""),
		payload={"field": path or None},
	)


def jsonAliases(t: type) -> dict[str, str]:
	"""Maps the lowercased JSON key of each field of `t` to its name."""
	res: dict[str, str] = {}
	for f in recordFields(t):
		alias = fieldAlias(f, JSON_TAG)
		if alias != "-":
			res[alias.lower()] = f.name
	return res


def recordItems(t: type, value: dict[str, Any]) -> Iterator[tuple[str, Any, Any]]:
	"""Yields the `(name, type, value)` of the fields of `t` set by the
	JSON object `value`. Unknown keys are ignored, and nulls leave
	fields that can't be `None` as they are."""
	aliases = jsonAliases(t)
	types = {f.name: f.type for f in recordFields(t)}
	for k, v in value.items():
		name = aliases.get(k.lower()) if isinstance(k, str) else None
		if name is None or (v is None and not unwrapOptional(types[name])[1]):
			continue
		yield name, types[name], v


def normalizeJSON(t: Any, value: Any) -> Any:
	"""Renames the keys of the JSON objects bound to records after the
	fields they set, down the annotation `t`."""
	t, _ = unwrapOptional(t)
	origin = get_origin(t)
	args = get_args(t)
	if origin is list and args and isinstance(value, list):
		return [normalizeJSON(args[0], _) for _ in value]
	elif origin is dict and len(args) == 2 and isinstance(value, dict):
		return {k: normalizeJSON(args[1], v) for k, v in value.items()}
	elif isRecordType(t) and isinstance(value, dict):
		return {name: normalizeJSON(ft, v) for name, ft, v in recordItems(t, value)}
	else:
		return value


def coerceJSON(t: Any, value: Any, path: str = "") -> Any:
	"""Validates the decoded JSON `value` against the annotation `t`. The
	validation is strict: JSON strings are never taken for numbers, nor
	booleans for integers."""
	if t is Any or isinstance(t, str):
		return value
	adapter = typeAdapter(t)
	if adapter is None:
		raise mismatch(value, t, path)
	try:
		return adapter.validate_json(json(normalizeJSON(t, value)), strict=True)
	except ValidationError as e:
		raise mismatch(value, t, path, describe(e)) from e


def bindJSON(target: Any, value: Any) -> Any:
	"""Populates the `target` dict, list or record with the decoded JSON
	`value`. A `null` value leaves the target untouched."""
	if value is None:
		return target
	if isinstance(target, dict):
		if not isinstance(value, dict):
			raise mismatch(value, dict, "")
		target.update(value)
	elif isinstance(target, list):
		if not isinstance(value, list):
			raise mismatch(value, list, "")
		target[:] = value
	elif not isMutable(target):
		raise InvalidArgument("value should be a pointer")
	elif isRecord(target):
		if not isinstance(value, dict):
			raise mismatch(value, type(target), "")
		# Every field is validated before the target is updated
		values = {
			name: coerceJSON(t, v, name)
			for name, t, v in recordItems(type(target), value)
		}
		for k, v in values.items():
			setattr(target, k, v)
	else:
		raise InvalidArgument(f"Cannot decode JSON into {typeName(type(target))}")
	return target


# EOF
