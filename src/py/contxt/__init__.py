from .http.model import (
	HTTPHeaders,
	HTTPRequest,
	HTTPResponseWriter,
	BufferedResponseWriter,
	HTTPRequestError,
	BodyReadError,
	DecodeError,
	UnsupportedMediaType,
	InvalidArgument,
	SerializationError,
)  # NOQA: F401
from .binding import HeaderBindable, header, tag  # NOQA: F401
from .schema import FormDecoder  # NOQA: F401
from .context import Context  # NOQA: F401
from .mimes import *  # NOQA: F401,F403


def New(writer: HTTPResponseWriter, request: HTTPRequest) -> Context:
	"""Creates the context for one exchange."""
	return Context(request, writer)


# EOF
