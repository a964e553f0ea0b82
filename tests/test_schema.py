"""Tests for the form values decoder."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional

import pytest

from contxt import DecodeError, FormDecoder, InvalidArgument, tag


class Plan(Enum):
	Free = "free"
	Pro = "pro"


@dataclass
class Address:
	city: str = ""
	zip: str = tag("", schema="postcode")


@dataclass
class Signup:
	email: str = tag("", schema="email,required")
	age: int = 0
	ratio: float = 0.0
	newsletter: bool = False
	plan: Plan = Plan.Free
	scores: list[int] = field(default_factory=list)
	referrer: Optional[str] = None
	secret: str = tag("hidden", schema="-")
	address: Address = field(default_factory=Address)


class TestFormDecoder:
	def test_conversions(self):
		target = FormDecoder().decode(
			Signup(),
			{
				"email": ["a@b.c"],
				"age": ["30"],
				"ratio": ["0.5"],
				"newsletter": ["on"],
				"plan": ["pro"],
				"scores": ["1", "2"],
				"referrer": ["friend"],
			},
		)
		assert target.email == "a@b.c"
		assert target.age == 30
		assert target.ratio == 0.5
		assert target.newsletter is True
		assert target.plan is Plan.Pro
		assert target.scores == [1, 2]
		assert target.referrer == "friend"

	@pytest.mark.parametrize(
		"value,expected",
		[("1", True), ("true", True), ("yes", True), ("off", False), ("F", False)],
	)
	def test_booleans(self, value, expected):
		target = FormDecoder().decode(
			Signup(), {"email": ["x"], "newsletter": [value]}
		)
		assert target.newsletter is expected

	def test_last_value_wins(self):
		target = FormDecoder().decode(Signup(), {"email": ["x"], "age": ["1", "2"]})
		assert target.age == 2

	def test_nested_record(self):
		target = FormDecoder().decode(
			Signup(), {"email": ["x"], "address.city": ["Lyon"], "address.postcode": ["69001"]}
		)
		assert target.address == Address(city="Lyon", zip="69001")

	def test_skipped_field(self):
		with pytest.raises(DecodeError) as e:
			FormDecoder().decode(Signup(), {"email": ["x"], "secret": ["leak"]})
		assert e.value.payload == {"secret": "invalid path"}

	def test_required(self):
		with pytest.raises(DecodeError) as e:
			FormDecoder().decode(Signup(), {"age": ["3"]})
		assert e.value.payload == {"email": "field is required"}

	def test_errors_are_collected(self):
		with pytest.raises(DecodeError) as e:
			FormDecoder().decode(
				Signup(), {"email": ["x"], "age": ["old"], "newsletter": ["maybe"]}
			)
		assert set(e.value.payload) == {"age", "newsletter"}

	def test_empty_values_are_skipped(self):
		target = FormDecoder().decode(Signup(age=5), {"email": ["x"], "age": [""]})
		assert target.age == 5

	def test_zero_empty(self):
		target = FormDecoder(zeroEmpty=True).decode(
			Signup(age=5), {"email": ["x"], "age": [""]}
		)
		assert target.age == 0

	def test_empty_string_is_kept(self):
		target = FormDecoder().decode(
			Signup(referrer="x"), {"email": ["x"], "referrer": [""]}
		)
		assert target.referrer == ""

	def test_custom_tag(self):
		@dataclass
		class Search:
			text: str = tag("", q="q")

		target = FormDecoder(tag="q").decode(Search(), {"q": ["hello"]})
		assert target.text == "hello"

	def test_other_types(self):
		@dataclass
		class Booking:
			day: date = date(2000, 1, 1)

		target = FormDecoder().decode(Booking(), {"day": ["2026-10-19"]})
		assert target.day == date(2026, 10, 19)
		with pytest.raises(DecodeError) as e:
			FormDecoder().decode(Booking(), {"day": ["someday"]})
		assert set(e.value.payload) == {"day"}

	def test_dict_target(self):
		assert FormDecoder().decode({}, {"a": ["1"], "b": ["2", "3"]}) == {
			"a": "1",
			"b": ["2", "3"],
		}

	def test_invalid_target(self):
		with pytest.raises(InvalidArgument):
			FormDecoder().decode([], {"a": ["1"]})

	def test_shared_across_threads(self):
		decoder = FormDecoder()

		def decode(i: int) -> int:
			return decoder.decode(Signup(), {"email": ["x"], "age": [str(i)]}).age

		with ThreadPoolExecutor(max_workers=8) as pool:
			assert list(pool.map(decode, range(64))) == list(range(64))
