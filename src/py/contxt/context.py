from contextlib import suppress
from html import escape
from typing import Any
from urllib.parse import urljoin, urlsplit

from .binding import bindHeaders, bindJSON
from .config import MULTIPART_MAX_MEMORY
from .http.model import (
	DecodeError,
	HTTPRequest,
	HTTPResponseWriter,
	SerializationError,
	UnsupportedMediaType,
)
from .http.status import HTTP_STATUS
from .mimes import (
	MIMEApplicationForm,
	MIMEApplicationJSON,
	MIMEApplicationXML,
	MIMEMultipartForm,
	MIMETextHTML,
)
from .schema import FormDecoder
from .utils.io import asWritable
from .utils.json import JSONDecodeError, JSONEncodeError, json, unjson

# --
# == Context
#
# Wraps one request and one response writer for the handling of a single
# exchange. The only state is the pending response status, committed by
# the first writing operation.


class Context:
	__slots__ = ["responseStatus", "_request", "_writer", "_decoder"]

	def __init__(
		self,
		request: HTTPRequest,
		writer: HTTPResponseWriter,
		*,
		decoder: FormDecoder | None = None,
	):
		self.responseStatus: int = 0
		self._request: HTTPRequest = request
		self._writer: HTTPResponseWriter = writer
		self._decoder: FormDecoder | None = decoder

	@property
	def request(self) -> HTTPRequest:
		return self._request

	@property
	def writer(self) -> HTTPResponseWriter:
		return self._writer

	@property
	def decoder(self) -> FormDecoder:
		if self._decoder is None:
			self._decoder = FormDecoder()
		return self._decoder

	# =========================================================================
	# REQUEST
	# =========================================================================

	def bodyParser(self, target: Any) -> Any:
		"""Populates `target` from the request body, based on the request
		`Content-Type`:

		- `application/json` is decoded as JSON into the target dict, list
		  or record
		- `application/x-www-form-urlencoded` and `multipart/form-data`
		  are parsed as forms, and the values decoded into the target by
		  the form decoder. Multipart forms keep up to 32MiB in memory.

		Any other content type raises `UnsupportedMediaType`.
		"""
		ctype: str = self._request.header("Content-Type")
		# application/json
		if ctype.startswith(MIMEApplicationJSON):
			raw: bytes = self._request.read()
			try:
				value = unjson(raw)
			except JSONDecodeError as e:
				raise DecodeError(f"Invalid JSON body: {e}") from e
			return bindJSON(target, value)
		# application/x-www-form-urlencoded
		if ctype.startswith(MIMEApplicationForm):
			self._request.parseForm()
			return self.decoder.decode(target, self._request.postForm)
		# multipart/form-data
		if ctype.startswith(MIMEMultipartForm):
			self._request.parseMultipartForm(MULTIPART_MAX_MEMORY)
			return self.decoder.decode(target, self._request.form)
		raise UnsupportedMediaType(f"Cannot parse content-type: {ctype}")

	def get(self, key: str) -> str:
		"""Returns the first value of the `key` request header, or `""`."""
		return self._request.header(key)

	def headers(self, target: Any) -> Any:
		"""Sets the fields of the `target` record from the request headers
		named by their `header` tag."""
		return bindHeaders(target, self.get)

	def query(self, key: str) -> str:
		return self._request.param(key)

	# =========================================================================
	# RESPONSE
	# =========================================================================

	def status(self, code: int) -> "Context":
		"""Sets the status used by the next write, without writing it."""
		self.responseStatus = code
		return self

	def commit(self) -> "Context":
		if self.responseStatus == 0:
			self.responseStatus = 200
		self._writer.writeHeader(self.responseStatus)
		return self

	def json(self, value: Any) -> None:
		"""Writes `value` as a JSON response body."""
		self._writer.headers.set("Content-Type", MIMEApplicationJSON)
		self.commit()
		try:
			raw: bytes = json(value)
		except JSONEncodeError as e:
			# The primary error is what the caller needs
			with suppress(OSError):
				self._writer.write(b"")
			raise SerializationError(f"Cannot serialize value as JSON: {e}") from e
		self._writer.write(raw)

	def redirect(self, path: str, *status: int) -> None:
		"""Redirects to `path`, with a `302 Found` unless a status is given.
		Relative paths are resolved against the request path."""
		code: int = status[0] if status else 302
		url: str = path
		if not urlsplit(path).scheme and not path.startswith("/"):
			url = urljoin(self._request.path or "/", path)
		self._writer.headers.set("Location", url)
		write_body: bool = (
			self._request.method in ("GET", "HEAD")
			and "Content-Type" not in self._writer.headers
		)
		if write_body:
			self._writer.headers.set("Content-Type", f"{MIMETextHTML}; charset=utf-8")
		self._writer.writeHeader(code)
		if write_body and self._request.method == "GET":
			message: str = HTTP_STATUS.get(code, "Redirect")
			self._writer.write(
				f'<a href="{escape(url)}">{message}</a>.\n'.encode("utf8")
			)

	def send(self, *args: Any) -> None:
		"""Writes the first argument as the body: strings and bytes as-is,
		anything else as JSON. A value that can't be serialized produces an
		empty body."""
		self.commit()
		if not args:
			return
		try:
			payload: bytes = asWritable(args[0])
		except JSONEncodeError:
			return
		self._writer.write(payload)

	def xml(self, value: Any) -> None:
		"""Sets the `application/xml` content type and writes `value` as
		`send` does, without XML encoding."""
		self._writer.headers.set("Content-Type", MIMEApplicationXML)
		self.send(value)

	def __str__(self) -> str:
		return f"Context({self._request.method} {self._request.path} status={self.responseStatus})"


# EOF
