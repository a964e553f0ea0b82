from abc import ABC, abstractmethod
from functools import lru_cache
from io import BytesIO
from typing import BinaryIO, Iterable, Iterator, NamedTuple
from urllib.parse import parse_qs

from ..config import FORM_MAX_SIZE, MULTIPART_MAX_MEMORY
from ..mimes import MIMEApplicationForm, MIMEMultipartForm
from ..utils.logging import warning
from ..utils.primitives import TPrimitive
from .status import HTTP_NO_BODY

HEADER_NAMES_CACHE_SIZE: int = 512

# -----------------------------------------------------------------------------
#
# HELPERS
#
# -----------------------------------------------------------------------------


@lru_cache(maxsize=HEADER_NAMES_CACHE_SIZE)
def headername(name: str) -> str:
	"""Normalizes the header name as `Kebab-Case`. The cache is bounded
	as clients choose the names."""
	return "-".join(_.capitalize() for _ in name.split("-"))


# -----------------------------------------------------------------------------
#
# ERRORS
#
# -----------------------------------------------------------------------------


class HTTPRequestError(Exception):
	"""Base of the errors raised while handling an exchange, `status` is
	the HTTP status that best describes the failure."""

	STATUS: int = 500

	def __init__(
		self,
		message: str,
		status: int | None = None,
		contentType: str | None = None,
		payload: TPrimitive | None = None,
	):
		super().__init__(message)
		self.message: str = message
		self.status: int = self.STATUS if status is None else status
		self.contentType: str | None = contentType
		self.payload: TPrimitive | bytes | None = payload


class BodyReadError(HTTPRequestError, OSError):
	"""The request body stream could not be read."""

	STATUS = 400


class DecodeError(HTTPRequestError, ValueError):
	"""The request payload is malformed, or does not fit the target."""

	STATUS = 400


class UnsupportedMediaType(HTTPRequestError):
	"""The request content type can't be parsed."""

	STATUS = 415


class InvalidArgument(HTTPRequestError, TypeError):
	"""The value given to be populated has the wrong shape."""


class SerializationError(HTTPRequestError):
	"""A value can't be serialized for the response."""


# -----------------------------------------------------------------------------
#
# HEADERS
#
# -----------------------------------------------------------------------------


class HTTPHeaders:
	"""A multi-valued, case-insensitive header map. Names are stored
	normalized with `headername`."""

	__slots__ = ["values"]

	@staticmethod
	def FromItems(items: Iterable[tuple[str, str]]) -> "HTTPHeaders":
		headers = HTTPHeaders()
		for k, v in items:
			headers.add(k, v)
		return headers

	def __init__(self, values: dict[str, str] | None = None) -> None:
		self.values: dict[str, list[str]] = {}
		if values:
			for k, v in values.items():
				self.add(k, v)

	def get(self, name: str, default: str = "") -> str:
		"""Returns the first value of the header, or `default`."""
		values = self.values.get(headername(name))
		return values[0] if values else default

	def getAll(self, name: str) -> list[str]:
		return list(self.values.get(headername(name), ()))

	def set(self, name: str, value: str | int) -> "HTTPHeaders":
		self.values[headername(name)] = [str(value)]
		return self

	def add(self, name: str, value: str | int) -> "HTTPHeaders":
		self.values.setdefault(headername(name), []).append(str(value))
		return self

	def remove(self, name: str) -> "HTTPHeaders":
		self.values.pop(headername(name), None)
		return self

	def items(self) -> Iterator[tuple[str, str]]:
		for k, values in self.values.items():
			for v in values:
				yield k, v

	def copy(self) -> "HTTPHeaders":
		return HTTPHeaders.FromItems(self.items())

	def __contains__(self, name: str) -> bool:
		return headername(name) in self.values

	def __len__(self) -> int:
		return len(self.values)

	def __str__(self) -> str:
		return f"Headers({dict(self.items())})"


# -----------------------------------------------------------------------------
#
# FORMS
#
# -----------------------------------------------------------------------------


class FormFile(NamedTuple):
	"""A file part of a multipart form. `data` is positioned at the
	start of the content."""

	name: str
	filename: str
	contentType: str | None
	headers: HTTPHeaders
	data: BinaryIO
	size: int

	def read(self) -> bytes:
		self.data.seek(0)
		return self.data.read()


TFormValues = dict[str, list[str]]


def mergeValues(*sources: TFormValues) -> TFormValues:
	res: TFormValues = {}
	for source in sources:
		for k, v in source.items():
			res.setdefault(k, []).extend(v)
	return res


# -----------------------------------------------------------------------------
#
# REQUESTS
#
# -----------------------------------------------------------------------------


class HTTPRequest:
	"""An inbound HTTP request: headers, a body stream that can be
	consumed once, the path and query, and form parsing."""

	__slots__ = [
		"protocol",
		"method",
		"path",
		"query",
		"headers",
		"_body",
		"_consumed",
		"_queryArgs",
		"_form",
		"_postForm",
		"_files",
		"_multipart",
	]

	def __init__(
		self,
		method: str,
		path: str,
		query: str | None = None,
		headers: HTTPHeaders | dict[str, str] | None = None,
		body: BinaryIO | bytes | None = None,
		protocol: str = "HTTP/1.1",
	):
		self.method: str = method.upper()
		self.path: str = path
		self.query: str = query or ""
		self.protocol: str = protocol
		self.headers: HTTPHeaders = (
			headers if isinstance(headers, HTTPHeaders) else HTTPHeaders(headers)
		)
		self._body: BinaryIO | None = (
			BytesIO(body) if isinstance(body, bytes) else body
		)
		self._consumed: bool = False
		self._queryArgs: TFormValues | None = None
		self._form: TFormValues | None = None
		self._postForm: TFormValues | None = None
		self._files: dict[str, list[FormFile]] = {}
		self._multipart: bool = False

	def header(self, name: str) -> str:
		return self.headers.get(name)

	@property
	def contentType(self) -> str:
		return self.headers.get("Content-Type")

	@property
	def contentLength(self) -> int | None:
		value = self.headers.get("Content-Length")
		try:
			return int(value) if value else None
		except ValueError:
			return None

	@property
	def queryArgs(self) -> TFormValues:
		"""The parsed query string, malformed pairs are dropped."""
		if self._queryArgs is None:
			self._queryArgs = parse_qs(self.query, keep_blank_values=True)
		return self._queryArgs

	def param(self, name: str) -> str:
		values = self.queryArgs.get(name)
		return values[0] if values else ""

	@property
	def consumed(self) -> bool:
		return self._consumed

	@property
	def stream(self) -> BinaryIO:
		"""The body stream, which is empty when the request has no body."""
		if self._body is None:
			self._body = BytesIO()
		return self._body

	def read(self, limit: int | None = None) -> bytes:
		"""Reads the body, at most `limit` bytes. The body can only be
		consumed once, reading it again returns empty bytes."""
		if self._consumed or self._body is None:
			self._consumed = True
			return b""
		self._consumed = True
		size: int | None = self.contentLength
		if limit is not None:
			size = limit if size is None else min(size, limit)
		try:
			return self._body.read() if size is None else self._body.read(size)
		except (OSError, ValueError) as e:
			raise BodyReadError(f"Could not read request body: {e}") from e

	# =========================================================================
	# FORMS
	# =========================================================================

	@property
	def postForm(self) -> TFormValues:
		"""Values from the urlencoded or multipart body."""
		if self._postForm is None:
			self.parseForm()
		return self._postForm or {}

	@property
	def form(self) -> TFormValues:
		"""Values from the body and the query string."""
		if self._form is None:
			self.parseForm()
		return self._form or {}

	@property
	def files(self) -> dict[str, list[FormFile]]:
		return self._files

	def parseForm(self) -> "HTTPRequest":
		"""Parses the urlencoded body of `POST`, `PUT` and `PATCH` requests
		into `postForm`, and merges it with the query into `form`."""
		# NOTE: Imported here as the form module depends on this one
		from .form import Decode

		if self._postForm is None:
			self._postForm = {}
			if self.method in ("POST", "PUT", "PATCH") and self.contentType.startswith(
				MIMEApplicationForm
			):
				data = self.read(FORM_MAX_SIZE + 1)
				if len(data) > FORM_MAX_SIZE:
					raise DecodeError("Form body too large", status=413)
				self._postForm = Decode.FormEncoded(data)
		if self._form is None:
			self._form = mergeValues(self._postForm, self.queryArgs)
		return self

	def parseMultipartForm(self, maxMemory: int = MULTIPART_MAX_MEMORY) -> "HTTPRequest":
		"""Parses a `multipart/form-data` body, keeping up to `maxMemory`
		bytes of file parts in memory before spilling them to disk."""
		from .form import Decode, contentTypeParameters

		if self._multipart:
			return self
		self.parseForm()
		content_type, params = contentTypeParameters(self.contentType)
		if content_type != MIMEMultipartForm:
			raise DecodeError(
				f"Request Content-Type isn't {MIMEMultipartForm}: {self.contentType}"
			)
		boundary = params.get("boundary")
		if not boundary:
			raise DecodeError("No multipart boundary param in Content-Type")
		if self._consumed:
			raise DecodeError("Request body was already consumed")
		self._consumed = True
		values, files = Decode.Multipart(self.stream, boundary, maxMemory)
		self._postForm = mergeValues(self._postForm or {}, values)
		self._form = mergeValues(self._form or {}, values)
		self._files = files
		self._multipart = True
		return self

	def close(self) -> None:
		"""Releases the spooled multipart files."""
		for files in self._files.values():
			for f in files:
				f.data.close()
		self._files = {}

	def __str__(self) -> str:
		return f"Request({self.method} {self.path}{f'?{self.query}' if self.query else ''} {self.headers})"


# -----------------------------------------------------------------------------
#
# RESPONSE
#
# -----------------------------------------------------------------------------


class HTTPResponseWriter(ABC):
	"""The outbound side of an exchange. Headers can be changed up until
	the status is committed, either by `writeHeader` or by the first
	`write`, after which only body bytes can follow."""

	def __init__(self) -> None:
		self.headers: HTTPHeaders = HTTPHeaders()
		self.status: int | None = None
		self.written: int = 0

	@property
	def committed(self) -> bool:
		return self.status is not None

	def writeHeader(self, status: int) -> bool:
		"""Commits the status and headers, returns `False` when they were
		already committed."""
		if self.status is not None:
			warning(
				"Superfluous response status, already committed",
				Status=status,
				Committed=self.status,
			)
			return False
		if status < 100 or status > 999:
			raise ValueError(f"Invalid HTTP status code: {status}")
		self.status = status
		self._commit(status, self.headers.copy())
		return True

	def write(self, data: bytes) -> int:
		"""Writes body bytes, committing a `200` status if none was."""
		if self.status is None:
			self.writeHeader(200)
		if not data:
			return 0
		if self.status in HTTP_NO_BODY:
			warning("Response status does not allow a body", Status=self.status)
			return 0
		n = self._writeBytes(data)
		self.written += n
		return n

	@abstractmethod
	def _commit(self, status: int, headers: HTTPHeaders) -> None: ...

	@abstractmethod
	def _writeBytes(self, data: bytes) -> int: ...


class BufferedResponseWriter(HTTPResponseWriter):
	"""A response writer that keeps everything in memory."""

	def __init__(self) -> None:
		super().__init__()
		self.committedHeaders: HTTPHeaders | None = None
		self.buffer: bytearray = bytearray()

	@property
	def body(self) -> bytes:
		return bytes(self.buffer)

	def _commit(self, status: int, headers: HTTPHeaders) -> None:
		self.committedHeaders = headers

	def _writeBytes(self, data: bytes) -> int:
		self.buffer += data
		return len(data)

	def __str__(self) -> str:
		return f"Response({self.status} {self.committedHeaders} {len(self.buffer)}b)"


# EOF
