from .wsgi import WSGIRequest, WSGIResponseWriter, wsgi  # NOQA: F401

# EOF
