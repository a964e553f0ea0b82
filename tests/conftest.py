"""Shared fixtures building requests, writers and contexts."""

from __future__ import annotations

import pytest

from contxt import BufferedResponseWriter, Context, FormDecoder, HTTPRequest


def multipart(boundary: str, parts: list[tuple[str, str | None, bytes]]) -> bytes:
	"""Builds a `multipart/form-data` body out of `(name, filename, data)`."""
	res = bytearray()
	for name, filename, data in parts:
		res += f"--{boundary}\r\n".encode()
		disposition = f'form-data; name="{name}"'
		if filename is not None:
			disposition += f'; filename="{filename}"'
		res += f"Content-Disposition: {disposition}\r\n".encode()
		if filename is not None:
			res += b"Content-Type: text/plain\r\n"
		res += b"\r\n" + data + b"\r\n"
	res += f"--{boundary}--\r\n".encode()
	return bytes(res)


@pytest.fixture
def make_request():
	def factory(
		method: str = "GET",
		path: str = "/",
		query: str = "",
		headers: dict[str, str] | None = None,
		body: bytes | None = None,
	) -> HTTPRequest:
		return HTTPRequest(method, path, query, headers or {}, body)

	return factory


@pytest.fixture
def writer() -> BufferedResponseWriter:
	return BufferedResponseWriter()


@pytest.fixture
def make_context(make_request, writer):
	def factory(*args, decoder: FormDecoder | None = None, **kwargs) -> Context:
		return Context(make_request(*args, **kwargs), writer, decoder=decoder)

	return factory
