# --
# == MIME types
#
# Content types recognized by the context, `bodyParser` matches them
# as prefixes of the request `Content-Type`.

MIMEApplicationJSON: str = "application/json"
MIMEApplicationJavaScript: str = "application/javascript"
MIMEApplicationXML: str = "application/xml"
MIMETextXML: str = "text/xml"
MIMEApplicationForm: str = "application/x-www-form-urlencoded"
MIMEApplicationProtobuf: str = "application/protobuf"
MIMEApplicationMsgpack: str = "application/msgpack"
MIMETextHTML: str = "text/html"
MIMETextPlain: str = "text/plain"
MIMEMultipartForm: str = "multipart/form-data"
MIMEOctetStream: str = "application/octet-stream"

# EOF
