import re
import tempfile
from typing import BinaryIO, Iterator, Literal
from urllib.parse import unquote_to_bytes

from ..config import FORM_MAX_SIZE
from ..utils import unquote
from .model import DecodeError, FormFile, HTTPHeaders, TFormValues

# --
# == Form decoding
#
# Parses `application/x-www-form-urlencoded` and `multipart/form-data`
# bodies into values and files.

MULTIPART_BUFFER_SIZE: int = 64_000
MULTIPART_HEADER_MAX_SIZE: int = 16_000

RE_PERCENT_ESCAPE = re.compile(rb"%(?![0-9A-Fa-f]{2})")

TMultipartAtom = (
	tuple[Literal["b"], None] | tuple[Literal["h"], HTTPHeaders] | tuple[Literal["d"], bytes]
)


def contentTypeParameters(value: str) -> tuple[str, dict[str, str]]:
	"""Splits a header value like `multipart/mixed; boundary=inner` into
	`("multipart/mixed", {"boundary": "inner"})`. The type and parameter
	names are lowercased."""
	fields = value.split(";")
	main: str = fields[0].strip().lower()
	params: dict[str, str] = {}
	for field in fields[1:]:
		name, sep, param = field.partition("=")
		name = name.strip().lower()
		if name and sep:
			params[name] = unquote(param.strip())
	return main, params


def unescape(value: bytes) -> str:
	if RE_PERCENT_ESCAPE.search(value):
		raise DecodeError(f"Invalid URL escape in form value: {value!r}")
	try:
		return unquote_to_bytes(value.replace(b"+", b" ")).decode("utf8")
	except UnicodeDecodeError as e:
		raise DecodeError(f"Form value is not valid UTF-8: {value!r}") from e


class Decode:
	"""A collection of functions to process form data."""

	# NOTE: That's "application/x-www-form-urlencoded"
	@classmethod
	def FormEncoded(cls, data: bytes) -> TFormValues:
		"""Parses an urlencoded payload, keeping all the values of each key
		in order. Semicolons are not accepted as separators."""
		if len(data) > FORM_MAX_SIZE:
			raise DecodeError("Form body too large", status=413)
		res: TFormValues = {}
		for pair in data.split(b"&"):
			if not pair:
				continue
			if b";" in pair:
				raise DecodeError("Invalid semicolon separator in form body")
			key, _, value = pair.partition(b"=")
			res.setdefault(unescape(key), []).append(unescape(value))
		return res

	# http://stackoverflow.com/questions/4526273/what-does-enctype-multipart-form-data-mean
	@classmethod
	def MultipartChunks(
		cls,
		stream: BinaryIO,
		boundary: str,
		bufferSize: int = MULTIPART_BUFFER_SIZE,
	) -> Iterator[TMultipartAtom]:
		"""Iterates on a multipart stream with the given `boundary`, reading
		`bufferSize` bytes at a time. This yields:

		- `("h", headers)` with the headers of a part, as it starts
		- `("d", data)`    with some of the data of the current part
		- `("b", None)`    when the current part ends

		Any preamble before the first delimiter and any epilogue after the
		closing one are skipped. A stream that ends before the closing
		delimiter raises a `DecodeError`.
		"""
		# Every delimiter is preceded by a CRLF, but the first one may
		# start the body, so we seed the buffer with one.
		delimiter: bytes = b"\r\n--" + boundary.encode("latin1")
		delimiter_length: int = len(delimiter)
		buffer = bytearray(b"\r\n")
		state: str = "preamble"
		eof: bool = False

		def more() -> bool:
			nonlocal eof
			if eof:
				return False
			chunk = stream.read(bufferSize)
			if not chunk:
				eof = True
				return False
			buffer.extend(chunk)
			return True

		while True:
			if state == "preamble":
				i = buffer.find(delimiter)
				if i == -1:
					del buffer[: max(0, len(buffer) - delimiter_length + 1)]
					if not more():
						raise DecodeError("Multipart body has no boundary delimiter")
				else:
					del buffer[: i + delimiter_length]
					state = "delimiter"
			elif state == "delimiter":
				# After a delimiter comes `--` when it's the closing one,
				# or optional whitespace and a CRLF.
				stripped = buffer.lstrip(b" \t")
				if len(stripped) < 2:
					if not more():
						raise DecodeError("Multipart body ended unexpectedly")
				elif stripped.startswith(b"--"):
					return
				elif stripped.startswith(b"\r\n"):
					del buffer[: len(buffer) - len(stripped) + 2]
					state = "headers"
				else:
					raise DecodeError("Malformed multipart boundary delimiter")
			elif state == "headers":
				if buffer.startswith(b"\r\n"):
					del buffer[:2]
					yield ("h", HTTPHeaders())
					state = "data"
					continue
				i = buffer.find(b"\r\n\r\n")
				if i == -1:
					if len(buffer) > MULTIPART_HEADER_MAX_SIZE:
						raise DecodeError("Multipart part headers too large", status=413)
					if not more():
						raise DecodeError("Multipart body ended in part headers")
				else:
					yield ("h", cls.PartHeaders(bytes(buffer[:i])))
					del buffer[: i + 4]
					state = "data"
			else:
				i = buffer.find(delimiter)
				if i == -1:
					# We keep enough bytes to match a delimiter that would
					# be split across reads.
					n = len(buffer) - delimiter_length + 1
					if n > 0:
						yield ("d", bytes(buffer[:n]))
						del buffer[:n]
					if not more():
						raise DecodeError("Multipart body ended in part data")
				else:
					if i:
						yield ("d", bytes(buffer[:i]))
					del buffer[: i + delimiter_length]
					yield ("b", None)
					state = "delimiter"

	@classmethod
	def PartHeaders(cls, data: bytes) -> HTTPHeaders:
		headers = HTTPHeaders()
		for line in data.split(b"\r\n"):
			name, sep, value = line.partition(b":")
			if not sep:
				raise DecodeError(f"Malformed multipart header: {line!r}")
			headers.add(name.strip().decode("latin1"), value.strip().decode("utf8", "replace"))
		return headers

	@classmethod
	def Multipart(
		cls,
		stream: BinaryIO,
		boundary: str,
		maxMemory: int,
		bufferSize: int = MULTIPART_BUFFER_SIZE,
	) -> tuple[TFormValues, dict[str, list[FormFile]]]:
		"""Decodes the given multipart data into `(values, files)`. Value
		parts may use up to `maxMemory` plus `FORM_MAX_SIZE` bytes, file
		parts are kept in memory while they fit in what remains of
		`maxMemory` and spill to temporary files otherwise."""
		values: TFormValues = {}
		files: dict[str, list[FormFile]] = {}
		max_value_bytes: int = maxMemory + FORM_MAX_SIZE
		remaining_memory: int = maxMemory
		# State of the current part
		headers: HTTPHeaders | None = None
		name: str = ""
		filename: str | None = None
		value: bytearray = bytearray()
		spool: BinaryIO | None = None
		size: int = 0
		try:
			for atom, data in cls.MultipartChunks(stream, boundary, bufferSize):
				if atom == "h":
					headers = data
					_, disposition = contentTypeParameters(
						headers.get("Content-Disposition")
					)
					name = disposition.get("name", "")
					filename = disposition.get("filename")
					value = bytearray()
					size = 0
					spool = (
						None
						if not name or not filename
						else tempfile.SpooledTemporaryFile(max_size=remaining_memory)
						if remaining_memory > 0
						else tempfile.TemporaryFile()
					)
				elif atom == "d":
					if not name:
						# Parts without a form name are skipped
						continue
					size += len(data)
					if spool is not None:
						spool.write(data)
					else:
						if size > max_value_bytes:
							raise DecodeError("Multipart message too large", status=413)
						value += data
				elif headers is not None and name:
					if spool is not None:
						spool.seek(0)
						files.setdefault(name, []).append(
							FormFile(
								name=name,
								filename=filename or "",
								contentType=headers.get("Content-Type") or None,
								headers=headers,
								data=spool,
								size=size,
							)
						)
						if size <= remaining_memory:
							remaining_memory -= size
						spool = None
					else:
						try:
							values.setdefault(name, []).append(value.decode("utf8"))
						except UnicodeDecodeError as e:
							raise DecodeError(
								f"Multipart value is not valid UTF-8: {name}"
							) from e
						max_value_bytes -= size
					headers = None
		except (DecodeError, OSError) as e:
			if spool is not None:
				spool.close()
			for part in files.values():
				for f in part:
					f.data.close()
			if isinstance(e, DecodeError):
				raise
			raise DecodeError(f"Could not read multipart body: {e}") from e
		return values, files


# EOF
