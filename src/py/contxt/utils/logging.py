import os
import sys
import time
from contextvars import ContextVar
from enum import Enum
from typing import Any, ClassVar, NamedTuple

from ..config import LOG_LEVEL
from .primitives import TPrimitive

ERR = sys.stderr

# SEE: https://no-color.org/
NO_COLOR: bool = "NO_COLOR" in os.environ
FORCE_COLOR: bool = "FORCE_COLOR" in os.environ
COLOR: bool = FORCE_COLOR or NO_COLOR is False


LogOrigin: ContextVar[str] = ContextVar("LogOrigin", default="contxt")


class Term:
	BOLD: ClassVar[str] = "" if NO_COLOR else "\033[1m"
	NORMAL: ClassVar[str] = "" if NO_COLOR else "\033[0m"
	RESET: ClassVar[str] = "" if NO_COLOR else "\033[0m"

	@staticmethod
	def Color(color: int, bold: bool = False) -> str:
		return f"\033[{'1' if bold else '0'};38;5;{color}m" if COLOR else ""


class LogLevel(Enum):
	Debug = 0
	Info = 10
	Warning = 30
	Error = 40  # A managed error
	Exception = 50  # An un-managed error


LOG_LEVEL_COLOR = {
	LogLevel.Debug: 31,
	LogLevel.Info: 75,
	LogLevel.Warning: 202,
	LogLevel.Error: 160,
	LogLevel.Exception: 124,
}


class LogEntry(NamedTuple):
	origin: str
	time: float
	level: LogLevel = LogLevel.Info
	message: str | None = None
	value: TPrimitive | None = None
	context: dict[str, TPrimitive] | None = None


def threshold(level: str | None = None) -> LogLevel:
	"""Returns the minimum level for `level`, which defaults to the
	configured `CONTXT_LOG_LEVEL`."""
	name: str = (level or LOG_LEVEL).capitalize()
	return LogLevel[name] if name in LogLevel.__members__ else LogLevel.Info


THRESHOLD: LogLevel = threshold()


def formatData(value: Any) -> str:
	if value is None or value == () or value == [] or value == {}:
		return "◌"
	elif isinstance(value, dict):
		return " ".join(
			f"{Term.BOLD}{k}{Term.NORMAL}={formatData(v)}" for k, v in value.items()
		)
	elif isinstance(value, list) or isinstance(value, tuple):
		return ",".join(formatData(v) for v in value)
	elif isinstance(value, str):
		return repr(value) if " " in value else value
	elif isinstance(value, bool):
		return "✓" if value else "✗"
	elif isinstance(value, float):
		return f"{value:0.2f}"
	else:
		return str(value)


def send(entry: LogEntry) -> LogEntry:
	if entry.level.value < THRESHOLD.value:
		return entry
	clr: str = Term.Color(LOG_LEVEL_COLOR[entry.level])
	# Error entries carry their code as the value
	code: str = "" if entry.value is None else f" [{formatData(entry.value)}]"
	ERR.write(
		f"{clr}{Term.BOLD}[{entry.origin}]{code}{Term.RESET} {entry.message} {formatData(entry.context)}{Term.RESET}\n"
	)
	ERR.flush()
	return entry


def entry(
	*,
	origin: str | None = None,
	at: float | None = None,
	level: LogLevel = LogLevel.Info,
	message: str | None = None,
	value: TPrimitive | None = None,
	context: dict[str, TPrimitive],
) -> LogEntry:
	return LogEntry(
		origin=origin or LogOrigin.get(),
		time=time.time() if at is None else at,
		level=level,
		message=message,
		value=value,
		context=context,
	)


def debug(
	message: str,
	*,
	origin: str | None = None,
	at: float | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return send(
		entry(
			message=message,
			level=LogLevel.Debug,
			origin=origin,
			at=at,
			context=context,
		)
	)


def info(
	message: str,
	*,
	origin: str | None = None,
	at: float | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return send(entry(message=message, origin=origin, at=at, context=context))


def warning(
	message: str,
	*,
	origin: str | None = None,
	at: float | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return send(
		entry(
			message=message,
			level=LogLevel.Warning,
			origin=origin,
			at=at,
			context=context,
		)
	)


def error(
	message: str,
	code: int | str | None,
	*,
	origin: str | None = None,
	at: float | None = None,
	**context: TPrimitive,
) -> LogEntry:
	return send(
		entry(
			message=message,
			value=code,
			level=LogLevel.Error,
			origin=origin,
			at=at,
			context=context,
		)
	)


def exception(
	exception: BaseException,
	message: str | None = None,
) -> BaseException:
	try:
		stream = ERR
		stream.write(
			f"!!! EXCP {f'{message}: [{exception.__class__.__name__}] {exception}' if message else f'[{exception.__class__.__name__}] {exception}'}\n"
		)
		tb = exception.__traceback__
		while tb:
			code = tb.tb_frame.f_code
			stream.write(
				f"... in {code.co_name:15s} at {tb.tb_lineno:4d} in {code.co_filename}\n",
			)
			tb = tb.tb_next
		stream.flush()
	except Exception:  # nosec: B110
		# Swallow all exceptions so that this function can be called from an exception
		# handler safely, such as in the implementation of logging/logging sinks.
		pass

	# Return the exception so that this function can be called like:
	#   raise exception(error)
	return exception


# EOF
