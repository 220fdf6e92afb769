"""Template strings with ``{name}`` placeholders.

A template is parsed once into literal chunks and expressions. Expansion
substitutes variables and lets the caller decide how literals and values are
encoded, so the same machinery serves paths, query strings, headers and
bodies.

Placeholders look like ``{name}`` or ``{name:regex}``; when a regex is given,
every substituted value must match it. Braces that do not form a valid
placeholder (JSON bodies, for instance) are kept as literal text.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Callable

from ..errors import EncodeError

EXPRESSION_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_.\-]*)(?::([^{}]+))?\}")

ValueEncoder = Callable[["Expression", Any], str]
LiteralEncoder = Callable[[str], str]


def format_value(value: Any) -> str:
    """String form of a single template value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def is_multi_valued(value: Any) -> bool:
    """True for lists, tuples, sets and other non-string iterables."""
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes, bytearray, Mapping))


@dataclass(frozen=True)
class Literal:
    value: str


@dataclass(frozen=True)
class Expression:
    """A ``{name}`` or ``{name:pattern}`` placeholder."""

    name: str
    pattern: str | None = None

    def check(self, value: str) -> str:
        if self.pattern is not None and re.fullmatch(self.pattern, value) is None:
            raise EncodeError(
                f"Value {value!r} does not match the expression pattern: {self.pattern}"
            )
        return value

    def render(self, value: Any, encode: Callable[[str], str], separator: str = ",") -> str:
        """Render ``value`` with ``encode`` applied to each scalar piece."""
        if isinstance(value, Mapping):
            return separator.join(
                f"{encode(format_value(k))}={encode(self.check(format_value(v)))}"
                for k, v in value.items()
                if v is not None
            )
        if is_multi_valued(value):
            return separator.join(
                encode(self.check(format_value(v))) for v in value if v is not None
            )
        return encode(self.check(format_value(value)))

    def __str__(self) -> str:
        if self.pattern:
            return f"{{{self.name}:{self.pattern}}}"
        return f"{{{self.name}}}"


def parse(template: str) -> tuple[Literal | Expression, ...]:
    chunks: list[Literal | Expression] = []
    index = 0
    for match in EXPRESSION_PATTERN.finditer(template):
        if match.start() > index:
            chunks.append(Literal(template[index : match.start()]))
        chunks.append(Expression(match.group(1), match.group(2)))
        index = match.end()
    if index < len(template):
        chunks.append(Literal(template[index:]))
    return tuple(chunks)


class Template:
    """A parsed template string.

    ``Template.literal(text)`` builds a template that is never parsed and
    whose text is emitted verbatim; resolved request parts are stored that
    way so they are not encoded twice.
    """

    __slots__ = ("_text", "_chunks", "_verbatim")

    def __init__(self, text: str):
        self._text = text
        self._chunks = parse(text)
        self._verbatim = False

    @classmethod
    def literal(cls, text: str) -> Template:
        template = cls.__new__(cls)
        template._text = text
        template._chunks = (Literal(text),) if text else ()
        template._verbatim = True
        return template

    @property
    def chunks(self) -> tuple[Literal | Expression, ...]:
        return self._chunks

    @property
    def verbatim(self) -> bool:
        return self._verbatim

    @property
    def variables(self) -> list[str]:
        return [chunk.name for chunk in self._chunks if isinstance(chunk, Expression)]

    def single_expression(self) -> Expression | None:
        """The expression if this template is exactly one placeholder."""
        if len(self._chunks) == 1 and isinstance(self._chunks[0], Expression):
            return self._chunks[0]
        return None

    def expand(
        self,
        variables: Mapping[str, Any],
        value_encoder: ValueEncoder,
        literal_encoder: LiteralEncoder | None = None,
        required: bool = False,
    ) -> str | None:
        """Substitute ``variables``.

        Placeholders whose value is None are dropped; with ``required`` the
        whole expansion is abandoned instead and None is returned.
        """
        if self._verbatim:
            return self._text
        expanded: list[str] = []
        for chunk in self._chunks:
            if isinstance(chunk, Expression):
                value = variables.get(chunk.name)
                if value is None:
                    if required:
                        return None
                    continue
                expanded.append(value_encoder(chunk, value))
            elif literal_encoder is not None:
                expanded.append(literal_encoder(chunk.value))
            else:
                expanded.append(chunk.value)
        return "".join(expanded)

    def __str__(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return f"Template({self._text!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Template):
            return NotImplemented
        return self._text == other._text and self._verbatim == other._verbatim

    def __hash__(self) -> int:
        return hash((self._text, self._verbatim))
