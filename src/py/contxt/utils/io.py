from typing import Any

from ..config import DEFAULT_ENCODING
from .json import json


def asWritable(value: Any) -> bytes:
	"""Strings and bytes are written as-is, anything else as JSON."""
	if isinstance(value, bytes) or isinstance(value, bytearray):
		return bytes(value)
	elif isinstance(value, str):
		return value.encode(DEFAULT_ENCODING)
	else:
		return json(value)


class LimitedReader:
	"""Reads at most `limit` bytes from `stream`, so that readers can't
	go past the end of a request body on a kept-alive connection."""

	__slots__ = ["stream", "remaining"]

	def __init__(self, stream: Any, limit: int) -> None:
		self.stream: Any = stream
		self.remaining: int = max(0, limit)

	def read(self, size: int | None = -1) -> bytes:
		if self.remaining <= 0:
			return b""
		n: int = self.remaining if size is None or size < 0 else min(size, self.remaining)
		data: bytes = self.stream.read(n)
		self.remaining -= len(data)
		return data


# EOF
