"""Mutable request builder with ``{name}`` placeholders.

A RequestTemplate starts life as the shape of a request declared on an
interface method. Every call works on a copy: argument values are bound with
``resolve()``, which returns a new, resolved template, interceptors may then
add headers or queries, and a Target finally inserts the base URL and turns
it into an immutable :class:`~courier.http.Request`.

Example:
    >>> template = RequestTemplate()
    >>> template.method = "GET"
    >>> template.uri("/users/{id}?active={active}")
    >>> resolved = template.resolve({"id": "42", "active": None})
    >>> resolved.target("http://host")
    >>> resolved.url()
    'http://host/users/42'
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .errors import ConfigurationError
from .http import Headers, HttpMethod, Request
from .template import (
    BodyTemplate,
    CollectionFormat,
    HeaderTemplate,
    QueryTemplate,
    Template,
    UriTemplate,
    is_absolute,
    query_encode,
)


class RequestTemplate:
    """Builder for a single HTTP request.

    Attributes:
        config_key: Key of the method this template was declared on
        collection_format: How multi-valued queries are written
    """

    def __init__(self, charset: str = "utf-8", decode_slash: bool = True):
        self._method: HttpMethod | None = None
        self._target: str | None = None
        self._uri: Template | None = None
        self._queries: dict[str, QueryTemplate] = {}
        self._headers: dict[str, HeaderTemplate] = {}
        self._body: bytes | None = None
        self._body_template: BodyTemplate | None = None
        self._charset = charset
        self._decode_slash = decode_slash
        self._resolved = False
        self.collection_format = CollectionFormat.EXPLODED
        self.config_key: str | None = None

    # -- request line --------------------------------------------------

    @property
    def method(self) -> HttpMethod | None:
        return self._method

    @method.setter
    def method(self, value: HttpMethod | str) -> None:
        try:
            self._method = HttpMethod(str(value).upper())
        except ValueError:
            raise ConfigurationError(f"Invalid HTTP method: {value}", self.config_key) from None

    @property
    def resolved(self) -> bool:
        return self._resolved

    @property
    def charset(self) -> str:
        return self._charset

    @property
    def decode_slash(self) -> bool:
        return self._decode_slash

    @decode_slash.setter
    def decode_slash(self, value: bool) -> None:
        self._decode_slash = value
        if self._uri is not None and not self._resolved:
            self._uri = UriTemplate(str(self._uri), value, self._charset)

    def uri(self, value: str, append: bool = False) -> RequestTemplate:
        """Set (or append to) the path, moving any query string into the query map."""
        if value is None:
            value = ""
        path, _, query = value.partition("?")
        if self._resolved and Template(path).variables:
            raise ConfigurationError(
                f"Cannot set a templated uri on a resolved request: {value}", self.config_key
            )
        if append and self._uri is not None:
            path = str(self._uri) + path
        elif path and not is_absolute(path) and not path.startswith(("/", "{")):
            path = "/" + path
        if self._resolved:
            self._uri = Template.literal(path)
        else:
            self._uri = UriTemplate(path, self._decode_slash, self._charset)
        if query:
            self._parse_query_line(query)
        return self

    def target(self, url: str | None) -> RequestTemplate:
        """Set the base URL; a query string on it is merged into the queries."""
        if not url:
            self._target = None
            return self
        base, _, query = url.partition("?")
        self._target = base.rstrip("/")
        if query:
            self._parse_query_line(query)
        return self

    def _parse_query_line(self, line: str) -> None:
        for pair in line.split("&"):
            if not pair:
                continue
            name, sep, value = pair.partition("=")
            if sep:
                self.add_query(name, value)
            else:
                self.add_query(name)

    # -- queries and headers --------------------------------------------

    def add_query(self, name: str, *values: Any) -> RequestTemplate:
        """Add query values; with no values the query is a bare ``name``.

        Values added to a resolved template are percent-encoded immediately
        and never treated as placeholders.
        """
        items = [str(v) for v in _flatten(values)]
        if self._resolved:
            name = query_encode(name, self._charset)
            items = [query_encode(v, self._charset) for v in items]
            parts = QueryTemplate.resolved(name, items, self._charset)
        else:
            parts = QueryTemplate(name, items, self._charset)
        existing = self._queries.get(name)
        if existing is not None:
            parts = existing.append(parts.values)
        self._queries[name] = parts
        return self

    def remove_query(self, name: str) -> RequestTemplate:
        self._queries.pop(name, None)
        return self

    def add_header(self, name: str, *values: Any) -> RequestTemplate:
        items = [str(v) for v in _flatten(values)]
        if self._resolved:
            parts = HeaderTemplate.resolved(name, items)
        else:
            parts = HeaderTemplate(name, items)
        existing = self._headers.get(name.lower())
        if existing is not None:
            parts = existing.append(parts.values)
        self._headers[name.lower()] = parts
        return self

    def remove_header(self, name: str) -> RequestTemplate:
        self._headers.pop(name.lower(), None)
        return self

    @property
    def queries(self) -> dict[str, list[str]]:
        return {name: [str(v) for v in q.values] for name, q in self._queries.items()}

    @property
    def headers(self) -> Headers:
        return Headers([(h.name, [str(v) for v in h.values]) for h in self._headers.values()])

    # -- body -------------------------------------------------------------

    def set_body(self, data: bytes | str | None, charset: str | None = None) -> RequestTemplate:
        if charset is not None:
            self._charset = charset
        if isinstance(data, str):
            data = data.encode(self._charset)
        self._body = data
        self._body_template = None
        return self

    def set_body_template(self, template: str, charset: str | None = None) -> RequestTemplate:
        if charset is not None:
            self._charset = charset
        self._body_template = BodyTemplate(template)
        self._body = None
        return self

    @property
    def body(self) -> bytes | None:
        return self._body

    @property
    def body_template(self) -> str | None:
        return str(self._body_template) if self._body_template is not None else None

    # -- placeholders and resolution ----------------------------------------

    def variables(self) -> list[str]:
        """Placeholder names, in declaration order, without duplicates."""
        names: list[str] = []
        if self._uri is not None:
            names.extend(self._uri.variables)
        for query in self._queries.values():
            names.extend(query.variables)
        for header in self._headers.values():
            names.extend(header.variables)
        if self._body_template is not None:
            names.extend(self._body_template.variables)
        return list(dict.fromkeys(names))

    def has_request_variable(self, name: str) -> bool:
        return name in self.variables()

    def resolve(
        self,
        variables: Mapping[str, Any],
        encoded: Iterable[str] = frozenset(),
        config_key: str | None = None,
    ) -> RequestTemplate:
        """Return a resolved copy with every placeholder substituted.

        A placeholder bound to None is dropped: empty in the path, omitted
        from queries and headers. A placeholder missing from ``variables``
        altogether is a configuration error.
        """
        config_key = config_key or self.config_key
        missing = [name for name in self.variables() if name not in variables]
        if missing:
            raise ConfigurationError(
                f"{config_key}: no value bound for placeholder '{missing[0]}'", config_key
            )
        encoded = frozenset(encoded)

        resolved = self.copy()
        if self._uri is not None and not self._uri.verbatim:
            uri = self._uri if isinstance(self._uri, UriTemplate) else UriTemplate(str(self._uri))
            resolved._uri = Template.literal(uri.expand_path(variables, encoded))

        resolved._queries = {}
        for query in self._queries.values():
            expanded = query.expand(variables, encoded)
            if expanded is None:
                continue
            name = str(expanded.name)
            existing = resolved._queries.get(name)
            resolved._queries[name] = existing.append(expanded.values) if existing else expanded

        resolved._headers = {}
        for header in self._headers.values():
            expanded = header.expand(variables)
            if expanded is not None:
                resolved._headers[header.name.lower()] = expanded

        if self._body_template is not None:
            resolved._body = self._body_template.expand_body(variables).encode(self._charset)
            resolved._body_template = None

        resolved._resolved = True
        resolved.config_key = config_key
        return resolved

    # -- rendering --------------------------------------------------------

    def path(self) -> str:
        return str(self._uri) if self._uri is not None else ""

    def query_line(self) -> str:
        return "&".join(q.to_query_string(self.collection_format) for q in self._queries.values())

    def url(self) -> str:
        url = (self._target or "") + self.path()
        query = self.query_line()
        if query:
            url += "?" + query
        return url

    def request(self) -> Request:
        """Finalize into an immutable Request. Only valid once resolved."""
        if not self._resolved:
            raise ConfigurationError("template has not been resolved", self.config_key)
        if self._method is None:
            raise ConfigurationError("template has no HTTP method", self.config_key)
        return Request.create(
            self._method,
            self.url(),
            self.headers,
            self._body,
            self._charset,
            self.config_key,
        )

    def copy(self) -> RequestTemplate:
        other = RequestTemplate.__new__(RequestTemplate)
        other.__dict__.update(self.__dict__)
        other._queries = dict(self._queries)
        other._headers = dict(self._headers)
        return other

    def _state(self) -> tuple:
        return (
            self._method,
            self._target,
            self._uri,
            self._queries,
            self._headers,
            self._body,
            self._body_template,
            self._charset,
            self._decode_slash,
            self.collection_format,
            self._resolved,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RequestTemplate):
            return NotImplemented
        return self._state() == other._state()

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"RequestTemplate({self._method} {self.url()})"


def _flatten(values: Iterable[Any]) -> list[Any]:
    flat: list[Any] = []
    for value in values:
        if value is None:
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            flat.extend(v for v in value if v is not None)
        else:
            flat.append(value)
    return flat
