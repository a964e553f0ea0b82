"""Tests for binding request headers to records with `Context.headers`."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import pytest

from contxt import HeaderBindable, InvalidArgument, header, tag


@dataclass
class Foo:
	foo: str = header("X-Foo")


@dataclass
class Mixed:
	foo: str = header("X-Foo")
	untagged: str = "kept"


@dataclass
class Counted:
	count: int = tag(0, header="X-Count")


@dataclass(frozen=True)
class Frozen:
	foo: str = header("X-Foo")


@dataclass
class Auth:
	token: Optional[str] = header("Authorization")
	agent: str = header("User-Agent")


class Plain:
	request_id: str

	def __init__(self) -> None:
		self.request_id = "x"


class Bindable:
	def __init__(self) -> None:
		self.token: str | None = None

	def bindHeaders(self, get) -> None:
		self.token = get("Authorization").removeprefix("Bearer ")


class TestHeaders:
	def test_tagged_field(self, make_context):
		foo = make_context(headers={"X-Foo": "bar"}).headers(Foo())
		assert foo.foo == "bar"

	def test_missing_header_is_empty(self, make_context):
		target = Foo(foo="previous")
		make_context().headers(target)
		assert target.foo == ""

	def test_header_names_are_case_insensitive(self, make_context):
		foo = make_context(headers={"x-foo": "bar"}).headers(Foo())
		assert foo.foo == "bar"

	def test_first_value_wins(self, make_request, writer):
		from contxt import Context, HTTPHeaders

		request = make_request(headers=None)
		request.headers = HTTPHeaders.FromItems([("X-Foo", "one"), ("X-Foo", "two")])
		assert Context(request, writer).headers(Foo()).foo == "one"

	def test_untagged_fields_are_blanked(self, make_context):
		mixed = make_context(headers={"X-Foo": "bar"}).headers(Mixed())
		assert mixed.foo == "bar"
		assert mixed.untagged == ""

	def test_several_fields(self, make_context):
		auth = make_context(
			headers={"Authorization": "Bearer t", "User-Agent": "curl"}
		).headers(Auth())
		assert auth == Auth(token="Bearer t", agent="curl")

	def test_annotated_class(self, make_context):
		plain = make_context().headers(Plain())
		assert plain.request_id == ""

	def test_bindable(self, make_context):
		target = Bindable()
		assert isinstance(target, HeaderBindable)
		make_context(headers={"Authorization": "Bearer abc"}).headers(target)
		assert target.token == "abc"


class TestHeadersInvalidArgument:
	@pytest.mark.parametrize("value", [1, "text", None, (1, 2), Foo, Bindable])
	def test_not_a_pointer(self, make_context, value):
		with pytest.raises(InvalidArgument) as e:
			make_context().headers(value)
		assert str(e.value) == "value should be a pointer"

	def test_frozen_record(self, make_context):
		with pytest.raises(InvalidArgument):
			make_context().headers(Frozen())

	@pytest.mark.parametrize("value", [[], {}, set(), object()])
	def test_not_a_struct(self, make_context, value):
		with pytest.raises(InvalidArgument) as e:
			make_context().headers(value)
		assert str(e.value) == "type of value should be a struct"

	def test_non_string_field(self, make_context):
		target = Counted(count=3)
		with pytest.raises(InvalidArgument):
			make_context(headers={"X-Count": "1"}).headers(target)
		assert target.count == 3

	def test_is_a_type_error(self, make_context):
		with pytest.raises(TypeError):
			make_context().headers(1)
