def unquote(text: str) -> str:
	"""Strips a matching pair of single or double quotes around `text`."""
	text = text.strip() if text else text
	if not text:
		return text
	if len(text) > 1 and text[0] == text[-1] and text[0] in "\"'":
		return text[1:-1]
	else:
		return text


# EOF
