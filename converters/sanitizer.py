import re

_LEADING_INVALID = re.compile(r"^[^A-Za-z_]+")
_INVALID_CHAR = re.compile(r"[^A-Za-z0-9_:.-]")


def sanitize(raw: str) -> str:
    """
    Turn arbitrary text into something usable as an XML element name.

    Leading characters that are not an ASCII letter or underscore are dropped,
    then every remaining character outside ``[A-Za-z0-9_:.-]`` becomes ``_``.
    The result may be empty; callers treat that as a valid (degenerate) tag.

    Args:
        raw: Text to sanitize, typically a JSON key or a file name

    Returns:
        str: Sanitized identifier
    """
    stripped = _LEADING_INVALID.sub("", str(raw))
    return _INVALID_CHAR.sub("_", stripped)
