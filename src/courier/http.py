"""Immutable HTTP request and response values exchanged with Clients.

A Request is produced once per attempt by a Target; a Response is produced
once per attempt by a Client. Neither is retained after the call returns.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable

from .errors import BodyConsumedError

_CHARSET_PATTERN = re.compile(r".*charset=([^\s;]+)", re.IGNORECASE)


class HttpMethod(str, Enum):
    """HTTP request methods."""

    GET = "GET"
    HEAD = "HEAD"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    CONNECT = "CONNECT"
    OPTIONS = "OPTIONS"
    TRACE = "TRACE"
    PATCH = "PATCH"

    def __str__(self) -> str:
        return self.value

    def __format__(self, spec: str) -> str:
        return format(self.value, spec)


class Headers(Mapping[str, tuple[str, ...]]):
    """Read-only, case-insensitive, multi-valued header mapping.

    Original header name casing is preserved for iteration; lookups ignore
    case. Values are always tuples, in the order they were added.
    """

    __slots__ = ("_names", "_values")

    def __init__(self, headers: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None):
        self._names: dict[str, str] = {}
        self._values: dict[str, list[str]] = {}
        if headers is None:
            return
        items = headers.items() if isinstance(headers, Mapping) else headers
        for name, value in items:
            key = name.lower()
            if key not in self._names:
                self._names[key] = name
                self._values[key] = []
            if value is None:
                continue
            if isinstance(value, (str, bytes)):
                self._values[key].append(_text(value))
            else:
                self._values[key].extend(_text(v) for v in value if v is not None)

    def __getitem__(self, name: str) -> tuple[str, ...]:
        return tuple(self._values[name.lower()])

    def __iter__(self) -> Iterator[str]:
        return iter(self._names.values())

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._names

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        other_headers = other if isinstance(other, Headers) else Headers(other)
        return {k: tuple(v) for k, v in self._values.items()} == {
            k: tuple(v) for k, v in other_headers._values.items()
        }

    __hash__ = None  # type: ignore[assignment]

    def first(self, name: str) -> str | None:
        """First value of a header, or None."""
        values = self._values.get(name.lower())
        return values[0] if values else None

    def items_flat(self) -> list[tuple[str, str]]:
        """(name, value) pairs, one per value."""
        return [(self._names[key], value) for key, values in self._values.items() for value in values]

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("latin-1")
    return str(value)


def charset_of(headers: Mapping[str, tuple[str, ...]], default: str = "utf-8") -> str:
    """Charset declared in a Content-Type header, or ``default``."""
    if not isinstance(headers, Headers):
        headers = Headers(headers)
    content_type = headers.first("content-type")
    if content_type:
        match = _CHARSET_PATTERN.match(content_type)
        if match:
            return match.group(1).strip('"')
    return default


class Body(ABC):
    """Lazily readable response body.

    Attributes:
        length: Body size in bytes when known up front, otherwise None
    """

    length: int | None = None

    @property
    @abstractmethod
    def repeatable(self) -> bool:
        """Whether ``read()`` may be called more than once."""

    @abstractmethod
    def read(self) -> bytes:
        """Read the whole body."""

    def text(self, charset: str = "utf-8") -> str:
        return self.read().decode(charset, errors="replace")

    def close(self) -> None:
        pass


class ByteBody(Body):
    """In-memory body; may be read any number of times."""

    def __init__(self, data: bytes):
        self._data = data
        self.length = len(data)

    @property
    def repeatable(self) -> bool:
        return True

    def read(self) -> bytes:
        return self._data

    def __repr__(self) -> str:
        return f"ByteBody({self.length} bytes)"


class StreamBody(Body):
    """Single-consumption body backed by a chunk iterator."""

    def __init__(
        self,
        chunks: Iterable[bytes],
        length: int | None = None,
        on_close: Callable[[], None] | None = None,
    ):
        self._chunks = chunks
        self._on_close = on_close
        self._consumed = False
        self._closed = False
        self.length = length

    @property
    def repeatable(self) -> bool:
        return False

    def read(self) -> bytes:
        if self._consumed:
            raise BodyConsumedError("response body has already been consumed")
        self._consumed = True
        try:
            return b"".join(self._chunks)
        finally:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            self._on_close()


def _as_body(body: Body | bytes | str | None, charset: str = "utf-8") -> Body | None:
    if body is None or isinstance(body, Body):
        return body
    if isinstance(body, str):
        return ByteBody(body.encode(charset))
    return ByteBody(bytes(body))


@dataclass(frozen=True)
class Request:
    """A fully resolved HTTP request.

    Attributes:
        method: HTTP method
        url: Absolute URL, query string included
        headers: Multi-valued headers
        body: Raw body bytes, if any
        charset: Charset of the body
        config_key: Key of the interface method that produced this request
    """

    method: HttpMethod
    url: str
    headers: Headers = field(default_factory=Headers)
    body: bytes | None = None
    charset: str | None = "utf-8"
    config_key: str | None = None

    @classmethod
    def create(
        cls,
        method: HttpMethod | str,
        url: str,
        headers: Mapping[str, Any] | None = None,
        body: bytes | str | None = None,
        charset: str | None = "utf-8",
        config_key: str | None = None,
    ) -> Request:
        if isinstance(body, str):
            body = body.encode(charset or "utf-8")
        return cls(HttpMethod(str(method).upper()), url, Headers(headers), body, charset, config_key)

    def body_text(self) -> str | None:
        if self.body is None:
            return None
        return self.body.decode(self.charset or "utf-8", errors="replace")

    def __str__(self) -> str:
        lines = [f"{self.method} {self.url} HTTP/1.1"]
        lines.extend(f"{name}: {value}" for name, value in self.headers.items_flat())
        if self.body is not None:
            lines.append("")
            lines.append(self.body_text() or "")
        return "\n".join(lines)


@dataclass(frozen=True)
class Response:
    """An HTTP response.

    The body is lazily readable and, unless it is a ByteBody, can only be read
    once. Use ``rebuffer()`` to get a copy whose body may be inspected
    repeatedly.
    """

    status: int
    reason: str | None = None
    headers: Headers = field(default_factory=Headers)
    body: Body | None = None
    request: Request | None = None

    @classmethod
    def create(
        cls,
        status: int,
        body: Body | bytes | str | None = None,
        headers: Mapping[str, Any] | Iterable[tuple[str, Any]] | None = None,
        reason: str | None = None,
        request: Request | None = None,
    ) -> Response:
        normalized = headers if isinstance(headers, Headers) else Headers(headers)
        return cls(status, reason, normalized, _as_body(body, charset_of(normalized)), request)

    @property
    def charset(self) -> str:
        return charset_of(self.headers)

    def header(self, name: str) -> tuple[str, ...]:
        return self.headers.get(name, ())

    def with_request(self, request: Request) -> Response:
        return replace(self, request=request)

    def with_body(self, body: Body | bytes | str | None) -> Response:
        return replace(self, body=_as_body(body, self.charset))

    def rebuffer(self) -> Response:
        """Return a response whose body is held in memory."""
        if self.body is None or self.body.repeatable:
            return self
        return replace(self, body=ByteBody(self.body.read()))

    def text(self) -> str:
        if self.body is None:
            return ""
        return self.body.text(self.charset)

    def close(self) -> None:
        if self.body is not None:
            self.body.close()

    def __enter__(self) -> Response:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
