import time
from typing import Any, BinaryIO, Callable, Iterable, cast

from ..config import LOG_REQUESTS
from ..context import Context
from ..http.model import HTTPHeaders, HTTPRequest, HTTPRequestError, HTTPResponseWriter
from ..http.status import HTTP_STATUS
from ..mimes import MIMETextPlain
from ..schema import FormDecoder
from ..utils.io import LimitedReader
from ..utils.logging import LogOrigin, error, exception, info

# --
# ## WSGI Bridge
#
# Exposes context handlers through the WSGI gateway, the WSGI server
# being the external HTTP stack.

# SEE: https://peps.python.org/pep-3333/

TEnviron = dict[str, Any]
TStartResponse = Callable[..., Any]
THandler = Callable[[Context], Any]


class WSGIRequest:
	"""Creates requests out of WSGI environments."""

	@staticmethod
	def Headers(environ: TEnviron) -> HTTPHeaders:
		headers = HTTPHeaders()
		for k, v in environ.items():
			if k.startswith("HTTP_"):
				headers.add(k[5:].replace("_", "-"), v)
		# These two are not prefixed with HTTP_
		for k in ("CONTENT_TYPE", "CONTENT_LENGTH"):
			if environ.get(k):
				headers.set(k.replace("_", "-"), environ[k])
		return headers

	@staticmethod
	def FromEnviron(environ: TEnviron) -> HTTPRequest:
		headers = WSGIRequest.Headers(environ)
		# PEP-3333 gives us the path as latin1-decoded bytes
		path: str = (environ.get("SCRIPT_NAME", "") + environ.get("PATH_INFO", "")) or "/"
		path = path.encode("latin1").decode("utf8", "replace")
		stream = environ.get("wsgi.input")
		body: Any = None
		if stream is not None:
			if environ.get("wsgi.input_terminated"):
				body = stream
			else:
				try:
					length = int(environ.get("CONTENT_LENGTH") or 0)
				except ValueError:
					length = 0
				body = LimitedReader(stream, length)
		return HTTPRequest(
			method=environ.get("REQUEST_METHOD", "GET"),
			path=path,
			query=environ.get("QUERY_STRING", ""),
			headers=headers,
			body=cast(BinaryIO, body),
			protocol=environ.get("SERVER_PROTOCOL", "HTTP/1.1"),
		)


class WSGIResponseWriter(HTTPResponseWriter):
	"""Commits the status through `start_response` and buffers the body
	chunks, returned to the server as the response iterable."""

	def __init__(self, startResponse: TStartResponse) -> None:
		super().__init__()
		self.startResponse: TStartResponse = startResponse
		self.chunks: list[bytes] = []

	def _commit(self, status: int, headers: HTTPHeaders) -> None:
		self.startResponse(
			f"{status} {HTTP_STATUS.get(status, 'Unknown')}", list(headers.items())
		)

	def _writeBytes(self, data: bytes) -> int:
		self.chunks.append(data)
		return len(data)


def failed(writer: HTTPResponseWriter, status: int, message: str) -> None:
	if writer.committed:
		return
	writer.headers.set("Content-Type", f"{MIMETextPlain}; charset=utf-8")
	writer.writeHeader(status)
	writer.write(message.encode("utf8"))


def wsgi(
	handler: THandler, *, decoder: FormDecoder | None = None
) -> Callable[[TEnviron, TStartResponse], Iterable[bytes]]:
	"""Returns a WSGI application that creates a `Context` for each
	request and passes it to `handler`. The form decoder is shared by
	all the requests."""
	shared: FormDecoder = decoder or FormDecoder()

	def application(environ: TEnviron, startResponse: TStartResponse) -> Iterable[bytes]:
		token = LogOrigin.set("contxt.wsgi")
		started: float = time.monotonic()
		request: HTTPRequest = WSGIRequest.FromEnviron(environ)
		writer = WSGIResponseWriter(startResponse)
		try:
			handler(Context(request, writer, decoder=shared))
		except HTTPRequestError as e:
			error(e.message, e.status, Method=request.method, Path=request.path)
			failed(writer, e.status, e.message)
		except Exception as e:
			exception(e, f"Handler failed for {request.method} {request.path}")
			failed(writer, 500, HTTP_STATUS[500])
		finally:
			request.close()
			LogOrigin.reset(token)
		# A handler that wrote nothing still answers
		if not writer.committed:
			writer.writeHeader(200)
		if LOG_REQUESTS:
			info(
				f"{request.method} {request.path}",
				origin="contxt.wsgi",
				Status=writer.status,
				Bytes=writer.written,
				Duration=time.monotonic() - started,
			)
		return writer.chunks

	return application


# EOF
