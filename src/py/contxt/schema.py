import threading
from typing import Any, NamedTuple, get_args, get_origin

from pydantic import ValidationError

from .http.model import DecodeError, InvalidArgument, TFormValues
from .utils.records import (
	isMutable,
	isRecord,
	isRecordType,
	recordFields,
	typeAdapter,
	typeName,
	unwrapOptional,
)

# --
# == Schema
#
# Decodes form values (`dict[str, list[str]]`) into records. A decoder
# is configured once by the server setup and shared by all the contexts,
# the per-type field cache is guarded by a lock.

SCHEMA_TAG: str = "schema"

class FieldInfo(NamedTuple):
	name: str
	alias: str
	type: Any
	required: bool

	@property
	def isList(self) -> bool:
		t, _ = unwrapOptional(self.type)
		return t is list or get_origin(t) is list


class FormDecoder:
	"""Populates records from form values. Keys are matched to field
	aliases case-insensitively, the alias being the `schema` tag of the
	field (`"name"`, `"name,required"` or `"-"` to skip it) or the field
	name."""

	def __init__(
		self,
		*,
		tag: str = SCHEMA_TAG,
		ignoreUnknownKeys: bool = False,
		zeroEmpty: bool = False,
	) -> None:
		self.tag: str = tag
		self.ignoreUnknownKeys: bool = ignoreUnknownKeys
		self.zeroEmpty: bool = zeroEmpty
		self._cache: dict[type, dict[str, FieldInfo]] = {}
		self._lock = threading.Lock()

	def fields(self, t: type) -> dict[str, FieldInfo]:
		"""Returns the fields of `t` by lowercased alias."""
		res = self._cache.get(t)
		if res is None:
			res = {}
			for f in recordFields(t):
				alias, *options = (f.tag(self.tag) or f.name).split(",")
				if alias == "-":
					continue
				res[(alias or f.name).lower()] = FieldInfo(
					f.name, alias or f.name, f.type, "required" in options
				)
			with self._lock:
				self._cache[t] = res
		return res

	def decode(self, target: Any, values: TFormValues) -> Any:
		"""Decodes `values` into `target`, raising a `DecodeError` that
		lists every key that failed."""
		if isinstance(target, dict):
			target.update({k: v[0] if len(v) == 1 else list(v) for k, v in values.items()})
			return target
		if not isMutable(target) or not isRecord(target):
			raise InvalidArgument(
				f"Form values can only be decoded into a record, got {typeName(type(target))}"
			)
		errors: dict[str, str] = {}
		for key, items in values.items():
			try:
				self.decodeKey(target, key.split("."), items)
			except (DecodeError, ValueError, TypeError) as e:
				errors[key] = str(e)
		self.checkRequired(target, "", errors)
		if errors:
			raise DecodeError(
				"Could not decode form: "
				+ ", ".join(f"{k}: {v}" for k, v in sorted(errors.items())),
				payload=errors,
			)
		return target

	def decodeKey(self, target: Any, path: list[str], items: list[str]) -> None:
		info = self.fields(type(target)).get(path[0].lower())
		if info is None:
			if self.ignoreUnknownKeys:
				return
			raise DecodeError("invalid path")
		if len(path) > 1:
			t, _ = unwrapOptional(info.type)
			if not isRecordType(t):
				if self.ignoreUnknownKeys:
					return
				raise DecodeError("invalid path")
			child = getattr(target, info.name, None)
			if child is None:
				child = t()
				setattr(target, info.name, child)
			self.decodeKey(child, path[1:], items)
			return
		if info.isList:
			t, _ = unwrapOptional(info.type)
			args = get_args(t)
			item_type = args[0] if args else str
			setattr(
				target,
				info.name,
				[self.convert(item_type, _) for _ in items if _ or not self.skipEmpty(item_type)],
			)
			return
		# The last value wins for single-valued fields
		value: str = items[-1] if items else ""
		if value == "" and self.skipEmpty(info.type):
			if self.zeroEmpty:
				setattr(target, info.name, self.zero(info.type))
			return
		setattr(target, info.name, self.convert(info.type, value))

	def checkRequired(self, target: Any, prefix: str, errors: dict[str, str]) -> None:
		for info in self.fields(type(target)).values():
			key = f"{prefix}{info.alias}"
			value = getattr(target, info.name, None)
			if info.required and (value is None or value == "" or value == []):
				errors.setdefault(key, "field is required")
			elif value is not None and isRecordType(type(value)):
				self.checkRequired(value, f"{key}.", errors)

	def skipEmpty(self, t: Any) -> bool:
		"""Empty values are only meaningful for strings."""
		t, _ = unwrapOptional(t)
		return not (t is str or t is Any or isinstance(t, str))

	def zero(self, t: Any) -> Any:
		t, optional = unwrapOptional(t)
		if optional:
			return None
		elif t in (int, float, bool):
			return t()
		else:
			return None

	def convert(self, t: Any, value: str) -> Any:
		"""Converts the form `value` to `t`, the way pydantic parses strings
		in lax mode (`"on"` and `"yes"` are booleans, enums by value)."""
		t, _ = unwrapOptional(t)
		if t is str or t is Any or isinstance(t, str):
			return value
		adapter = typeAdapter(t)
		if adapter is None:
			raise DecodeError(f"no converter for type {typeName(t)}")
		try:
			return adapter.validate_python(value)
		except ValidationError as e:
			raise DecodeError(f"invalid {typeName(t)} {value!r}") from e


# EOF
