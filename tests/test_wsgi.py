"""Tests for serving context handlers through WSGI."""

from __future__ import annotations

import io
from dataclasses import dataclass
from wsgiref.util import setup_testing_defaults

import orjson
import pytest

from contxt import Context, FormDecoder, UnsupportedMediaType, header
from contxt.bridge import WSGIRequest, wsgi
from contxt.utils import logging


@dataclass
class Login:
	user: str = ""
	remember: bool = False


@dataclass
class Auth:
	token: str = header("Authorization")


@pytest.fixture(autouse=True)
def log(monkeypatch) -> io.StringIO:
	stream = io.StringIO()
	monkeypatch.setattr(logging, "ERR", stream)
	return stream


def call(app, method="GET", path="/", query="", body=b"", **extra):
	environ: dict = {
		"REQUEST_METHOD": method,
		"PATH_INFO": path,
		"QUERY_STRING": query,
		"CONTENT_LENGTH": str(len(body)) if body else "",
		"wsgi.input": io.BytesIO(body),
	}
	environ.update(extra)
	setup_testing_defaults(environ)
	started: dict = {}

	def start_response(status, headers, exc_info=None):
		started["status"] = status
		started["headers"] = dict(headers)

	chunks = app(environ, start_response)
	return started["status"], started["headers"], b"".join(chunks)


class TestWSGIRequest:
	def test_from_environ(self):
		environ = {
			"REQUEST_METHOD": "POST",
			"SCRIPT_NAME": "/api",
			"PATH_INFO": "/caf\xc3\xa9",
			"QUERY_STRING": "a=1",
			"CONTENT_TYPE": "application/json",
			"CONTENT_LENGTH": "2",
			"HTTP_X_REQUEST_ID": "r1",
			"wsgi.input": io.BytesIO(b"{}trailing"),
		}
		request = WSGIRequest.FromEnviron(environ)
		assert request.method == "POST"
		assert request.path == "/api/café"
		assert request.param("a") == "1"
		assert request.header("X-Request-Id") == "r1"
		assert request.contentType == "application/json"
		assert request.read() == b"{}"


class TestWSGIApplication:
	def test_json_handler(self):
		def handler(ctx: Context) -> None:
			login = ctx.bodyParser(Login())
			auth = ctx.headers(Auth())
			ctx.status(201).json({"user": login.user, "token": auth.token})

		status, headers, body = call(
			wsgi(handler),
			"POST",
			body=b"user=ana&remember=on",
			CONTENT_TYPE="application/x-www-form-urlencoded",
			HTTP_AUTHORIZATION="Bearer t",
		)
		assert status == "201 Created"
		assert headers["Content-Type"] == "application/json"
		assert orjson.loads(body) == {"user": "ana", "token": "Bearer t"}

	def test_empty_handler(self):
		status, _, body = call(wsgi(lambda ctx: None))
		assert status == "200 OK"
		assert body == b""

	def test_request_error(self, log):
		def handler(ctx: Context) -> None:
			ctx.bodyParser({})

		status, headers, body = call(
			wsgi(handler), "POST", body=b"x", CONTENT_TYPE="text/plain"
		)
		assert status == "415 Unsupported Media Type"
		assert headers["Content-Type"] == "text/plain; charset=utf-8"
		assert b"text/plain" in body
		assert "Cannot parse content-type" in log.getvalue()
		assert "[415]" in log.getvalue()

	def test_unexpected_error(self, log):
		def handler(ctx: Context) -> None:
			raise RuntimeError("boom")

		status, _, body = call(wsgi(handler))
		assert status == "500 Internal Server Error"
		assert body == b"Internal Server Error"
		assert "boom" in log.getvalue()

	def test_error_after_commit_keeps_response(self):
		def handler(ctx: Context) -> None:
			ctx.send("partial")
			raise UnsupportedMediaType("late")

		status, _, body = call(wsgi(handler))
		assert status == "200 OK"
		assert body == b"partial"

	def test_shared_decoder(self):
		decoder = FormDecoder(ignoreUnknownKeys=True)
		seen: list[FormDecoder] = []

		def handler(ctx: Context) -> None:
			seen.append(ctx.decoder)
			ctx.json(ctx.bodyParser(Login()))

		app = wsgi(handler, decoder=decoder)
		for _ in range(2):
			_, _, body = call(
				app,
				"POST",
				body=b"user=bo&extra=1",
				CONTENT_TYPE="application/x-www-form-urlencoded",
			)
			assert orjson.loads(body) == {"user": "bo", "remember": False}
		assert seen == [decoder, decoder]

	def test_redirect(self):
		status, headers, _ = call(wsgi(lambda ctx: ctx.redirect("/login")), path="/home")
		assert status == "302 Found"
		assert headers["Location"] == "/login"
