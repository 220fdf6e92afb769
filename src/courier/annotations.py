"""Decorators and parameter markers that declare an HTTP interface.

Decorators record small declaration objects on the decorated function or
class; nothing is validated until a Contract parses the interface, so all
mistakes surface together when the client is built.

Example:
    >>> from typing import Annotated
    >>> from courier import get, headers, Param
    >>>
    >>> @headers("Accept: application/json")
    ... class GitHub:
    ...     @get("/repos/{owner}/{repo}/contributors")
    ...     def contributors(self, owner: str, repo: str) -> list[Contributor]: ...
    ...
    ...     @get("/search/repositories?q={query}&page={page}")
    ...     def search(
    ...         self,
    ...         query: Annotated[str, Param("query")],
    ...         page: Annotated[int | None, Param(default=1)] = None,
    ...     ) -> SearchResult: ...
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from .template import CollectionFormat

T = TypeVar("T")

ANNOTATIONS_ATTR = "__courier_annotations__"


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Any = _Missing()


# Declarations -------------------------------------------------------------


@dataclass(frozen=True)
class RequestLine:
    """``METHOD /path?query`` declared on a method."""

    value: str
    decode_slash: bool = True
    collection_format: CollectionFormat = CollectionFormat.EXPLODED


@dataclass(frozen=True)
class HeadersDecl:
    values: tuple[str, ...]


@dataclass(frozen=True)
class BodyDecl:
    template: str


@dataclass(frozen=True)
class DefaultsDecl:
    values: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BasePathDecl:
    path: str


@dataclass(frozen=True)
class ErrorHandlingDecl:
    codes: Mapping[int, type[Exception]] = field(default_factory=dict)
    default: type[Exception] | None = None


@dataclass(frozen=True)
class DefaultMethodDecl:
    pass


def declarations_of(obj: Any) -> list[Any]:
    """Declarations made directly on ``obj`` (never inherited from a base class)."""
    return list(vars(obj).get(ANNOTATIONS_ATTR, ()))


def _declare(decl: Any) -> Callable[[T], T]:
    def decorator(obj: T) -> T:
        existing = vars(obj).get(ANNOTATIONS_ATTR)
        if existing is None:
            existing = []
            setattr(obj, ANNOTATIONS_ATTR, existing)
        # Decorators apply bottom-up; keep them in the order they are written.
        existing.insert(0, decl)
        return obj

    return decorator


# Method and class decorators ------------------------------------------------


def request_line(
    value: str,
    *,
    decode_slash: bool = True,
    collection_format: CollectionFormat = CollectionFormat.EXPLODED,
) -> Callable[[T], T]:
    """Declare the HTTP method and path, e.g. ``@request_line("GET /users/{id}")``."""
    return _declare(RequestLine(value, decode_slash, collection_format))


def _verb(method: str) -> Callable[..., Callable[[T], T]]:
    def verb(
        path: str = "",
        *,
        decode_slash: bool = True,
        collection_format: CollectionFormat = CollectionFormat.EXPLODED,
    ) -> Callable[[T], T]:
        line = f"{method} {path}" if path else method
        return request_line(line, decode_slash=decode_slash, collection_format=collection_format)

    verb.__name__ = method.lower()
    verb.__doc__ = f"Shortcut for ``@request_line(\"{method} <path>\")``."
    return verb


get = _verb("GET")
post = _verb("POST")
put = _verb("PUT")
patch = _verb("PATCH")
delete = _verb("DELETE")
head = _verb("HEAD")
options = _verb("OPTIONS")


def headers(*values: str) -> Callable[[T], T]:
    """Declare ``Name: value`` headers; values may contain placeholders."""
    return _declare(HeadersDecl(tuple(values)))


def body(template: str) -> Callable[[T], T]:
    """Declare a body template such as ``'{"user": "{user}"}'``."""
    return _declare(BodyDecl(template))


def defaults(**values: Any) -> Callable[[T], T]:
    """Static values for placeholders that are not bound or bound to None."""
    return _declare(DefaultsDecl(dict(values)))


def base_path(path: str) -> Callable[[T], T]:
    """Path prefix for every method of an interface."""
    return _declare(BasePathDecl(path))


def error_handling(
    codes: Mapping[int, type[Exception]] | None = None,
    default: type[Exception] | None = None,
) -> Callable[[T], T]:
    """Map response status codes to exception classes.

    Honoured by :class:`courier.ext.error_handling.AnnotationErrorDecoder`.
    """
    return _declare(ErrorHandlingDecl(dict(codes or {}), default))


def default_method(func: T) -> T:
    """Mark an interface method as implemented locally rather than over HTTP."""
    return _declare(DefaultMethodDecl())(func)


# Parameter markers ------------------------------------------------------------


@dataclass(frozen=True)
class Param:
    """Bind a parameter to a named placeholder.

    Attributes:
        name: Placeholder name, defaults to the parameter name
        expander: Callable turning the argument into its string form
        encoded: The argument is already percent-encoded
        default: Value used when the argument is None
    """

    name: str | None = None
    expander: Callable[[Any], Any] | None = field(default=None, kw_only=True)
    encoded: bool = field(default=False, kw_only=True)
    default: Any = field(default=MISSING, kw_only=True)


@dataclass(frozen=True)
class QueryMap:
    """Parameter whose mapping (or model) entries become query parameters."""

    encoded: bool = False


@dataclass(frozen=True)
class HeaderMap:
    """Parameter whose mapping entries become headers."""


@dataclass(frozen=True)
class Url:
    """Parameter that replaces the Target's base URL for this call."""


@dataclass(frozen=True)
class Body:
    """Parameter sent as the request body."""
