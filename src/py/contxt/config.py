from os import getenv

DEFAULT_ENCODING: str = getenv("CONTXT_ENCODING", "utf8")

# Minimum level for the `contxt.utils.logging` functions, by `LogLevel` name
LOG_LEVEL: str = getenv("CONTXT_LOG_LEVEL", "Info")

LOG_REQUESTS: bool = getenv("CONTXT_LOG_REQUESTS", "0") == "1"

# Memory kept for multipart parts before file parts spill to temporary files
MULTIPART_MAX_MEMORY: int = 32 << 20

# Upper bound for urlencoded bodies, and the extra room given to multipart
# value parts on top of `MULTIPART_MAX_MEMORY`.
FORM_MAX_SIZE: int = 10 << 20

# EOF
