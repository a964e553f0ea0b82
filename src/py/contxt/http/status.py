from http import HTTPStatus

HTTP_STATUS: dict[int, str] = {_.value: _.phrase for _ in HTTPStatus}

# Statuses that can't carry a body
HTTP_NO_BODY: frozenset[int] = frozenset((204, 304))

# EOF
