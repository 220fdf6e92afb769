"""Path, query, header and body templates."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Any, Callable

from .expressions import Expression, Template, format_value, is_multi_valued
from .uri import (
    PATH_RESERVED_CHARACTERS,
    QUERY_RESERVED_CHARACTERS,
    encode,
    encode_reserved,
    path_encode,
    query_encode,
)


class CollectionFormat(Enum):
    """How multiple values for one query name are written.

    EXPLODED repeats the name (``foo=bar&foo=baz``); the others join values
    with a separator (``foo=bar,baz`` for CSV).
    """

    EXPLODED = None
    CSV = ","
    SSV = "%20"
    TSV = "%09"
    PIPES = "%7C"

    def join(self, name: str, values: list[str]) -> str:
        if not values:
            return name
        if self.value is None:
            return "&".join(f"{name}={value}" for value in values)
        return f"{name}={self.value.join(values)}"


def _value_encoder(encoded: frozenset[str], reserved: str, charset: str) -> Callable:
    def encode_value(expression: Expression, value: Any) -> str:
        if expression.name in encoded:
            return expression.render(value, lambda s: encode_reserved(s, reserved, charset))
        return expression.render(value, lambda s: encode(s, charset))

    return encode_value


def _raw_value(expression: Expression, value: Any) -> str:
    return expression.render(value, lambda s: s)


class UriTemplate(Template):
    """Path template; unresolved placeholders expand to empty strings."""

    def __init__(self, text: str, decode_slash: bool = True, charset: str = "utf-8"):
        super().__init__(text)
        self.decode_slash = decode_slash
        self.charset = charset

    def expand_path(self, variables: Mapping[str, Any], encoded: frozenset[str] = frozenset()) -> str:
        encoder = _value_encoder(encoded, PATH_RESERVED_CHARACTERS, self.charset)

        def encode_segment(expression: Expression, value: Any) -> str:
            rendered = encoder(expression, value)
            if self.decode_slash:
                rendered = rendered.replace("%2F", "/").replace("%2f", "/")
            return rendered

        return self.expand(
            variables,
            encode_segment,
            lambda s: path_encode(s, self.charset),
        ) or ""


def _expand_values(
    templates: Iterable[Template],
    variables: Mapping[str, Any],
    value_encoder: Callable,
    literal_encoder: Callable[[str], str] | None,
) -> list[str]:
    expanded: list[str] = []
    for template in templates:
        expression = template.single_expression()
        if expression is not None:
            value = variables.get(expression.name)
            if value is None:
                continue
            if is_multi_valued(value):
                expanded.extend(value_encoder(expression, item) for item in value if item is not None)
            else:
                expanded.append(value_encoder(expression, value))
            continue
        result = template.expand(variables, value_encoder, literal_encoder, required=True)
        if result is not None:
            expanded.append(result)
    return expanded


class QueryTemplate:
    """One query parameter name with zero or more value templates.

    A query declared without values (``?flag``) is "pure" and is written as
    the bare name. Otherwise the parameter is omitted entirely when none of
    its values resolve.
    """

    def __init__(self, name: str | Template, values: Iterable[str | Template] = (), charset: str = "utf-8"):
        self.name = name if isinstance(name, Template) else Template(name)
        self.values = [v if isinstance(v, Template) else Template(v) for v in values]
        self.pure = not self.values
        self.charset = charset

    @classmethod
    def resolved(cls, name: str, values: Iterable[str], charset: str = "utf-8") -> QueryTemplate:
        """A query whose name and values are already encoded."""
        return cls(Template.literal(name), [Template.literal(v) for v in values], charset)

    def append(self, values: Iterable[str | Template]) -> QueryTemplate:
        combined = [*self.values, *values]
        query = QueryTemplate(self.name, combined, self.charset)
        query.pure = self.pure and not combined
        return query

    @property
    def variables(self) -> list[str]:
        names = list(self.name.variables)
        for value in self.values:
            names.extend(value.variables)
        return names

    def expand(self, variables: Mapping[str, Any], encoded: frozenset[str] = frozenset()) -> QueryTemplate | None:
        """Resolve into a literal QueryTemplate, or None when it should be omitted."""
        encoder = _value_encoder(encoded, QUERY_RESERVED_CHARACTERS, self.charset)
        literal = lambda s: query_encode(s, self.charset)  # noqa: E731
        name = self.name.expand(variables, encoder, literal, required=True)
        if not name:
            return None
        if self.pure:
            return QueryTemplate.resolved(name, (), self.charset)
        values = _expand_values(self.values, variables, encoder, literal)
        if not values:
            return None
        return QueryTemplate.resolved(name, values, self.charset)

    def to_query_string(self, collection_format: CollectionFormat = CollectionFormat.EXPLODED) -> str:
        return collection_format.join(str(self.name), [str(v) for v in self.values])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, QueryTemplate):
            return NotImplemented
        return (self.name, self.values, self.pure) == (other.name, other.values, other.pure)

    def __repr__(self) -> str:
        return f"QueryTemplate({str(self.name)!r}, {[str(v) for v in self.values]!r})"


class HeaderTemplate:
    """One header name with value templates; values are never percent-encoded."""

    def __init__(self, name: str, values: Iterable[str | Template] = ()):
        self.name = name
        self.values = [v if isinstance(v, Template) else Template(v) for v in values]

    @classmethod
    def resolved(cls, name: str, values: Iterable[str]) -> HeaderTemplate:
        return cls(name, [Template.literal(v) for v in values])

    def append(self, values: Iterable[str | Template]) -> HeaderTemplate:
        return HeaderTemplate(self.name, [*self.values, *values])

    @property
    def variables(self) -> list[str]:
        return [name for value in self.values for name in value.variables]

    def expand(self, variables: Mapping[str, Any]) -> HeaderTemplate | None:
        values = _expand_values(self.values, variables, _raw_value, None)
        if not values:
            return None
        return HeaderTemplate.resolved(self.name, values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HeaderTemplate):
            return NotImplemented
        return self.name.lower() == other.name.lower() and self.values == other.values

    def __repr__(self) -> str:
        return f"HeaderTemplate({self.name!r}, {[str(v) for v in self.values]!r})"


class BodyTemplate(Template):
    """Body template; ``%7B``/``%7D`` in literal text stand for braces."""

    def expand_body(self, variables: Mapping[str, Any]) -> str:
        return self.expand(
            variables,
            lambda expression, value: expression.check(format_value(value))
            if not is_multi_valued(value)
            else _raw_value(expression, value),
            lambda s: s.replace("%7B", "{").replace("%7D", "}"),
        ) or ""
