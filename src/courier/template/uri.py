"""Percent-encoding helpers (RFC 3986)."""

from __future__ import annotations

import re
from urllib.parse import quote, unquote

PATH_RESERVED_CHARACTERS = "/=@:!$&'(),;~"
QUERY_RESERVED_CHARACTERS = "?/,="

PCT_ENCODED_PATTERN = re.compile(r"%[0-9A-Fa-f]{2}")


def is_encoded(value: str) -> bool:
    """True when ``value`` is a single percent-encoded triplet."""
    return PCT_ENCODED_PATTERN.fullmatch(value) is not None


def is_absolute(uri: str | None) -> bool:
    return bool(uri) and uri.startswith("http")


def encode(value: str, charset: str = "utf-8") -> str:
    """Encode everything except unreserved characters.

    ``%`` is encoded as well, so the result decodes back to ``value`` exactly.
    """
    return quote(value, safe="", encoding=charset)


def encode_reserved(value: str, reserved: str = "", charset: str = "utf-8") -> str:
    """Encode ``value`` keeping ``reserved`` characters and existing ``%XX`` triplets."""
    parts = []
    index = 0
    for match in PCT_ENCODED_PATTERN.finditer(value):
        parts.append(quote(value[index : match.start()], safe=reserved, encoding=charset))
        parts.append(match.group())
        index = match.end()
    parts.append(quote(value[index:], safe=reserved, encoding=charset))
    return "".join(parts)


def path_encode(value: str, charset: str = "utf-8") -> str:
    return encode_reserved(value, PATH_RESERVED_CHARACTERS, charset)


def query_encode(value: str, charset: str = "utf-8") -> str:
    return encode_reserved(value, QUERY_RESERVED_CHARACTERS, charset)


def decode(value: str, charset: str = "utf-8") -> str:
    return unquote(value, encoding=charset)
