"""Canonical per-method request description produced by a Contract."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from .request_template import RequestTemplate


class CallStyle(Enum):
    """How a generated method returns its result.

    SYNC blocks and returns the value, FUTURE returns a
    ``concurrent.futures.Future`` and COROUTINE is an ``async def`` method.
    """

    SYNC = "sync"
    FUTURE = "future"
    COROUTINE = "coroutine"


@dataclass(frozen=True)
class MethodMetadata:
    """Everything needed to turn a call of one interface method into a request.

    Parameter indices count the declared parameters after ``self``.

    Attributes:
        config_key: Unique key such as ``GitHub#contributors(str,str)``
        target_type: The interface the method was declared on
        method_name: Name of the interface method
        signature: Method signature without ``self``
        return_type: Declared return type after unwrapping (``Future[T]`` -> ``T``)
        raw_return_type: Declared return type as written
        call_style: Selected from the declaration shape at parse time
        template: Request shape with unresolved placeholders
        body_index: Parameter sent as the body, or None
        body_type: Declared type of the body (or ``dict`` for form params)
        url_index: Parameter overriding the base URL, or None
        options_index: Parameter supplying per-call Options, or None
        header_map_index: Parameter whose mapping becomes headers, or None
        query_map_index: Parameter whose mapping becomes queries, or None
        index_to_name: Placeholder names bound by each parameter
        index_to_expander: Custom string conversion per parameter
        index_to_encoded: Parameters whose values are already encoded
        defaults: Static placeholder values used when nothing is bound
        form_params: Placeholder-free ``Param`` names collected into the body
        error_handling: Status code to exception class mapping
    """

    config_key: str
    target_type: type
    method_name: str
    signature: inspect.Signature
    return_type: Any
    raw_return_type: Any
    call_style: CallStyle
    template: RequestTemplate
    body_index: int | None = None
    body_type: Any = None
    url_index: int | None = None
    options_index: int | None = None
    header_map_index: int | None = None
    query_map_index: int | None = None
    query_map_encoded: bool = False
    index_to_name: dict[int, list[str]] = field(default_factory=dict)
    index_to_expander: dict[int, Callable[[Any], Any]] = field(default_factory=dict)
    index_to_encoded: frozenset[int] = frozenset()
    index_to_type: dict[int, Any] = field(default_factory=dict)
    defaults: dict[str, Any] = field(default_factory=dict)
    form_params: tuple[str, ...] = ()
    error_handling: dict[int, type[Exception]] = field(default_factory=dict)
    default_error: type[Exception] | None = None
    is_default_method: bool = False
    warnings: tuple[str, ...] = field(default=(), compare=False)

    def __hash__(self) -> int:
        return hash(self.config_key)

    @property
    def is_async(self) -> bool:
        return self.call_style is CallStyle.COROUTINE

    @property
    def placeholder_names(self) -> set[str]:
        return {name for names in self.index_to_name.values() for name in names}

    def __repr__(self) -> str:
        return f"MethodMetadata({self.config_key!r}, {self.call_style.name})"
