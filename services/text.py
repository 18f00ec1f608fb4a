# Copyright (c) Microsoft. All rights reserved.

"""Input validation and log-safe formatting helpers."""

import re

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_HTML_TAGS = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")


def mask_for_logging(value: str | None) -> str:
    """
    Mask an identifier or token so it can be written to logs.

    Keeps the first and last four characters and replaces up to six
    characters in between with asterisks.

    Examples:
        >>> mask_for_logging("")
        '[empty]'
        >>> mask_for_logging("short")
        '***'
        >>> mask_for_logging("8:acs:1234567890abcdef")
        '8:ac******cdef'
    """
    if not value or not value.strip():
        return "[empty]"
    if len(value) <= 8:
        return "***"
    stars = "*" * min(len(value) - 8, 6)
    return f"{value[:4]}{stars}{value[-4:]}"


def require(value: str | None, name: str) -> str:
    """Return the stripped value or raise ValueError when it is blank."""
    if value is None or not str(value).strip():
        raise ValueError(f"{name} is required")
    return str(value).strip()


def sanitize(text: str | None, allow_html: bool = False) -> str:
    """Strip control characters and collapse whitespace; drop markup unless allowed."""
    if not text or not text.strip():
        return ""
    cleaned = text.strip()
    if not allow_html:
        cleaned = _HTML_TAGS.sub("", cleaned)
        cleaned = re.sub(r"[<>\"]", "", cleaned)
    cleaned = _CONTROL_CHARS.sub("", cleaned)
    cleaned = _WHITESPACE.sub(" ", cleaned)
    return cleaned.strip()
