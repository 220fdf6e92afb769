"""Contracts turn a declared interface into MethodMetadata.

A Contract reads the declarations recorded by :mod:`courier.annotations`
once, at build time, and validates them. Parsing performs no I/O and is
deterministic: parsing the same interface twice yields equal metadata.

The default contract is a :class:`DeclarativeContract` with a processor
registered per declaration type, so alternative declaration styles can be
supported by registering different processors. A :class:`DelegatingContract`
wraps another contract to post-process what it produces.
"""

from __future__ import annotations

import concurrent.futures
import inspect
import types
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from dataclasses import dataclass, field, replace
from typing import Annotated, Any, Callable, Union, get_args, get_origin, get_type_hints

from loguru import logger

from .annotations import (
    MISSING,
    BasePathDecl,
    Body,
    BodyDecl,
    DefaultMethodDecl,
    DefaultsDecl,
    ErrorHandlingDecl,
    HeaderMap,
    HeadersDecl,
    Param,
    QueryMap,
    RequestLine,
    Url,
    declarations_of,
)
from .errors import ConfigurationError
from .http import HttpMethod
from .metadata import CallStyle, MethodMetadata
from .request_template import RequestTemplate
from .template import is_absolute
from .types import Options

PARAMETER_MARKERS = (Param, QueryMap, HeaderMap, Url, Body)


class Contract(ABC):
    """Parses an interface into one MethodMetadata per declared method."""

    @abstractmethod
    def parse(self, target_type: type) -> list[MethodMetadata]:
        """Parse and validate ``target_type``.

        Raises:
            ConfigurationError: If any method declaration is invalid
        """


@dataclass
class MethodData:
    """Mutable state collected while parsing one method."""

    target_type: type
    func: Callable[..., Any]
    config_key: str
    template: RequestTemplate = field(default_factory=RequestTemplate)
    request_line: RequestLine | None = None
    base_path: str | None = None
    headers: dict[str, tuple[str, list[str]]] = field(default_factory=dict)
    body_template: str | None = None
    defaults: dict[str, Any] = field(default_factory=dict)
    error_handling: dict[int, type[Exception]] = field(default_factory=dict)
    default_error: type[Exception] | None = None
    is_default_method: bool = False
    body_index: int | None = None
    body_type: Any = None
    url_index: int | None = None
    options_index: int | None = None
    header_map_index: int | None = None
    query_map_index: int | None = None
    query_map_encoded: bool = False
    index_to_name: dict[int, list[str]] = field(default_factory=dict)
    index_to_expander: dict[int, Callable[[Any], Any]] = field(default_factory=dict)
    index_to_encoded: set[int] = field(default_factory=set)
    index_to_type: dict[int, Any] = field(default_factory=dict)
    form_params: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def error(self, message: str) -> ConfigurationError:
        return ConfigurationError(f"{message} ({self.config_key})", self.config_key)

    def bind_name(self, index: int, name: str) -> None:
        self.index_to_name.setdefault(index, []).append(name)


ClassProcessor = Callable[[Any, MethodData], None]
MethodProcessor = Callable[[Any, MethodData], None]
ParameterProcessor = Callable[[Any, MethodData, int, inspect.Parameter, Any], None]


class DeclarativeContract(Contract):
    """Contract driven by processors registered per declaration type.

    Class-level declarations are applied first (base classes before
    subclasses), then method-level ones, so method declarations override
    class ones per header name, default key and status code.
    """

    def __init__(self):
        self._class_processors: dict[type, ClassProcessor] = {}
        self._method_processors: dict[type, MethodProcessor] = {}
        self._parameter_processors: dict[type, ParameterProcessor] = {}

    def register_class_declaration(self, decl_type: type, processor: ClassProcessor) -> None:
        self._class_processors[decl_type] = processor

    def register_method_declaration(self, decl_type: type, processor: MethodProcessor) -> None:
        self._method_processors[decl_type] = processor

    def register_parameter_marker(self, marker_type: type, processor: ParameterProcessor) -> None:
        self._parameter_processors[marker_type] = processor

    def parse(self, target_type: type) -> list[MethodMetadata]:
        if not inspect.isclass(target_type):
            raise ConfigurationError(f"{target_type!r} is not a class")
        if getattr(target_type, "__parameters__", ()):
            raise ConfigurationError(
                f"Parameterized types unsupported: {target_type.__name__}"
            )

        methods: dict[str, Callable[..., Any]] = {}
        for cls in reversed(target_type.__mro__):
            if cls is object:
                continue
            for name, value in vars(cls).items():
                if name.startswith("_") or not inspect.isfunction(value):
                    continue
                methods[name] = value

        results = [self.parse_method(target_type, func) for func in methods.values()]

        seen: set[str] = set()
        for metadata in results:
            if metadata.config_key in seen:
                raise ConfigurationError(
                    f"Overrides unsupported: {metadata.config_key}", metadata.config_key
                )
            seen.add(metadata.config_key)

        logger.debug(f"Parsed {len(results)} methods of {target_type.__name__}")
        return results

    def parse_method(self, target_type: type, func: Callable[..., Any]) -> MethodMetadata:
        if inspect.isasyncgenfunction(func):
            raise ConfigurationError(
                f"Async generator methods are not supported: {target_type.__name__}.{func.__name__}"
            )

        try:
            hints = get_type_hints(func, include_extras=True)
        except (NameError, TypeError) as e:
            raise ConfigurationError(
                f"Cannot resolve type hints of {target_type.__name__}.{func.__name__}: {e}"
            ) from e

        signature = inspect.signature(func)
        params = list(signature.parameters.values())[1:]
        types_ = [_strip_annotated(hints.get(p.name, Any)) for p in params]
        config_key = config_key_of(target_type, func.__name__, types_)

        data = MethodData(target_type, func, config_key)
        for param in params:
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                raise data.error(f"Variadic parameter '{param.name}' is not supported")

        for cls in reversed(target_type.__mro__):
            for decl in declarations_of(cls) if cls is not object else ():
                processor = self._class_processors.get(type(decl))
                if processor is None:
                    raise data.error(f"{type(decl).__name__} is not supported on a class")
                processor(decl, data)

        for decl in declarations_of(func):
            processor = self._method_processors.get(type(decl))
            if processor is None:
                raise data.error(f"{type(decl).__name__} is not supported on a method")
            processor(decl, data)

        return_hint = hints.get("return", Any)
        if return_hint is type(None):
            return_hint = None
        return_hint = _strip_annotated(return_hint)
        call_style = CallStyle.COROUTINE if inspect.iscoroutinefunction(func) else CallStyle.SYNC
        bare_signature = signature.replace(parameters=params)

        if data.is_default_method:
            return MethodMetadata(
                config_key=config_key,
                target_type=target_type,
                method_name=func.__name__,
                signature=bare_signature,
                return_type=return_hint,
                raw_return_type=return_hint,
                call_style=call_style,
                template=data.template,
                is_default_method=True,
            )

        if data.request_line is None:
            raise data.error("Method is not annotated with an HTTP method type (ex. GET, POST)")
        self._apply_request_line(data)

        for index, param in enumerate(params):
            hint = hints.get(param.name, Any)
            self._process_parameter(data, index, param, hint)

        self._validate(data)

        body_type = data.body_type
        if data.form_params:
            body_type = dict[str, Any]

        return MethodMetadata(
            config_key=config_key,
            target_type=target_type,
            method_name=func.__name__,
            signature=bare_signature,
            return_type=return_hint,
            raw_return_type=return_hint,
            call_style=call_style,
            template=data.template,
            body_index=data.body_index,
            body_type=body_type,
            url_index=data.url_index,
            options_index=data.options_index,
            header_map_index=data.header_map_index,
            query_map_index=data.query_map_index,
            query_map_encoded=data.query_map_encoded,
            index_to_name=data.index_to_name,
            index_to_expander=data.index_to_expander,
            index_to_encoded=frozenset(data.index_to_encoded),
            index_to_type=data.index_to_type,
            defaults=data.defaults,
            form_params=tuple(data.form_params),
            error_handling=data.error_handling,
            default_error=data.default_error,
            warnings=tuple(data.warnings),
        )

    def _apply_request_line(self, data: MethodData) -> None:
        line = data.request_line
        method, _, path = line.value.strip().partition(" ")
        try:
            data.template.method = HttpMethod(method.upper())
        except ValueError:
            raise data.error(f"Invalid HTTP method '{method}' in request line") from None
        path = path.strip()
        if data.base_path:
            if is_absolute(path):
                raise data.error(
                    f"base path '{data.base_path}' cannot be combined with absolute url '{path}'"
                )
            if path and not path.startswith(("/", "?")):
                path = "/" + path
            path = data.base_path.rstrip("/") + path
        data.template.decode_slash = line.decode_slash
        data.template.collection_format = line.collection_format
        data.template.uri(path)
        for name, values in data.headers.values():
            data.template.add_header(name, *values)
        if data.body_template is not None:
            data.template.set_body_template(data.body_template)

    def _process_parameter(
        self, data: MethodData, index: int, param: inspect.Parameter, hint: Any
    ) -> None:
        base_type, extras = _split_annotated(hint)
        data.index_to_type[index] = base_type
        markers = [m for m in extras if isinstance(m, PARAMETER_MARKERS)]
        if len(markers) > 1:
            raise data.error(f"Parameter '{param.name}' has more than one binding marker")
        if markers:
            marker = markers[0]
            self._parameter_processors[type(marker)](marker, data, index, param, base_type)
            return

        if _unwrap_optional(base_type) is Options:
            data.options_index = index
        elif data.template.has_request_variable(param.name):
            data.bind_name(index, param.name)
        else:
            _set_body(data, index, param, base_type)

    def _validate(self, data: MethodData) -> None:
        if data.form_params and data.body_index is not None:
            raise data.error("Body parameters cannot be used with form parameters")
        if data.body_index is not None and data.template.body_template is not None:
            raise data.error("Body parameters cannot be used with a body template")

        bound = {name for names in data.index_to_name.values() for name in names}
        for name in data.template.variables():
            if name not in bound and name not in data.defaults:
                raise data.error(f"Placeholder '{name}' is not bound to a parameter and has no default")

        types_by_name: dict[str, Any] = {}
        for index, names in data.index_to_name.items():
            declared = _unwrap_optional(data.index_to_type.get(index, Any))
            for name in names:
                previous = types_by_name.setdefault(name, declared)
                if previous is Any or declared is Any:
                    continue
                if previous != declared:
                    raise data.error(
                        f"Placeholder '{name}' is bound to incompatible types "
                        f"{_type_name(previous)} and {_type_name(declared)}"
                    )


def _set_body(data: MethodData, index: int, param: inspect.Parameter, base_type: Any) -> None:
    if data.body_index is not None:
        raise data.error(f"Method has too many Body parameters: '{param.name}'")
    data.body_index = index
    data.body_type = base_type


# Processors ---------------------------------------------------------------


def _process_request_line(decl: RequestLine, data: MethodData) -> None:
    if data.request_line is not None:
        raise data.error("Method declares more than one request line")
    data.request_line = decl


def _process_headers(decl: HeadersDecl, data: MethodData) -> None:
    collected: dict[str, tuple[str, list[str]]] = {}
    for header in decl.values:
        name, sep, value = header.partition(":")
        if not sep or not name.strip():
            raise data.error(f"Header '{header}' is not formatted as 'Name: value'")
        name = name.strip()
        entry = collected.setdefault(name.lower(), (name, []))
        entry[1].append(value.strip())
    data.headers.update(collected)


def _process_body(decl: BodyDecl, data: MethodData) -> None:
    data.body_template = decl.template


def _process_defaults(decl: DefaultsDecl, data: MethodData) -> None:
    data.defaults.update(decl.values)


def _process_base_path(decl: BasePathDecl, data: MethodData) -> None:
    path = decl.path.strip()
    if path and not path.startswith("/"):
        path = "/" + path
    data.base_path = path


def _process_error_handling(decl: ErrorHandlingDecl, data: MethodData) -> None:
    data.error_handling.update(decl.codes)
    if decl.default is not None:
        data.default_error = decl.default


def _process_default_method(decl: DefaultMethodDecl, data: MethodData) -> None:
    data.is_default_method = True


def _process_param(marker: Param, data: MethodData, index: int, param: inspect.Parameter, base_type: Any) -> None:
    name = marker.name or param.name
    data.bind_name(index, name)
    if not data.template.has_request_variable(name):
        data.form_params.append(name)
    if marker.expander is not None:
        data.index_to_expander[index] = marker.expander
    if marker.encoded:
        data.index_to_encoded.add(index)
    if marker.default is not MISSING:
        data.defaults[name] = marker.default


def _process_query_map(marker: QueryMap, data: MethodData, index: int, param: inspect.Parameter, base_type: Any) -> None:
    if data.query_map_index is not None:
        raise data.error("QueryMap annotation was present on multiple parameters")
    data.query_map_index = index
    data.query_map_encoded = marker.encoded


def _process_header_map(marker: HeaderMap, data: MethodData, index: int, param: inspect.Parameter, base_type: Any) -> None:
    if data.header_map_index is not None:
        raise data.error("HeaderMap annotation was present on multiple parameters")
    declared = _unwrap_optional(base_type)
    origin = get_origin(declared) or declared
    if declared is not Any and not (inspect.isclass(origin) and issubclass(origin, Mapping)):
        raise data.error(f"HeaderMap parameter '{param.name}' must be a Mapping")
    data.header_map_index = index


def _process_url(marker: Url, data: MethodData, index: int, param: inspect.Parameter, base_type: Any) -> None:
    if data.url_index is not None:
        raise data.error("Url annotation was present on multiple parameters")
    data.url_index = index


def _process_body_marker(marker: Body, data: MethodData, index: int, param: inspect.Parameter, base_type: Any) -> None:
    _set_body(data, index, param, base_type)


class DefaultContract(DeclarativeContract):
    """Contract for interfaces declared with :mod:`courier.annotations`."""

    def __init__(self):
        super().__init__()
        self.register_class_declaration(HeadersDecl, _process_headers)
        self.register_class_declaration(DefaultsDecl, _process_defaults)
        self.register_class_declaration(BasePathDecl, _process_base_path)
        self.register_class_declaration(ErrorHandlingDecl, _process_error_handling)

        self.register_method_declaration(RequestLine, _process_request_line)
        self.register_method_declaration(HeadersDecl, _process_headers)
        self.register_method_declaration(BodyDecl, _process_body)
        self.register_method_declaration(DefaultsDecl, _process_defaults)
        self.register_method_declaration(ErrorHandlingDecl, _process_error_handling)
        self.register_method_declaration(DefaultMethodDecl, _process_default_method)

        self.register_parameter_marker(Param, _process_param)
        self.register_parameter_marker(QueryMap, _process_query_map)
        self.register_parameter_marker(HeaderMap, _process_header_map)
        self.register_parameter_marker(Url, _process_url)
        self.register_parameter_marker(Body, _process_body_marker)


class DelegatingContract(Contract):
    """Wraps a Contract and post-processes each MethodMetadata it returns.

    Wrappers compose: a contract wrapped twice sees the metadata already
    transformed by the inner wrapper.
    """

    def __init__(self, delegate: Contract):
        self.delegate = delegate

    def parse(self, target_type: type) -> list[MethodMetadata]:
        return [self.process(metadata) for metadata in self.delegate.parse(target_type)]

    def process(self, metadata: MethodMetadata) -> MethodMetadata:
        return metadata


class FutureReturnContract(DelegatingContract):
    """Unwraps ``concurrent.futures.Future[T]`` returns and selects FUTURE dispatch."""

    def process(self, metadata: MethodMetadata) -> MethodMetadata:
        return_type = metadata.return_type
        origin = get_origin(return_type) or return_type
        if origin in (AsyncIterator, AsyncIterable):
            raise ConfigurationError(
                f"Streaming return types are not supported: {metadata.config_key}",
                metadata.config_key,
            )
        if origin is not concurrent.futures.Future:
            return metadata
        if metadata.call_style is CallStyle.COROUTINE:
            raise ConfigurationError(
                f"async methods cannot return a Future: {metadata.config_key}", metadata.config_key
            )
        args = get_args(return_type)
        return replace(
            metadata,
            return_type=args[0] if args else Any,
            call_style=CallStyle.FUTURE,
        )


# Type helpers ---------------------------------------------------------------


def _strip_annotated(hint: Any) -> Any:
    return _split_annotated(hint)[0]


def _split_annotated(hint: Any) -> tuple[Any, tuple[Any, ...]]:
    if get_origin(hint) is Annotated:
        args = get_args(hint)
        return args[0], tuple(args[1:])
    return hint, ()


def _unwrap_optional(hint: Any) -> Any:
    if get_origin(hint) in (Union, types.UnionType):
        args = [a for a in get_args(hint) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return hint


def _type_name(hint: Any) -> str:
    if inspect.isclass(hint) and not get_args(hint):
        return hint.__name__
    return repr(hint).replace("typing.", "")


def config_key_of(target_type: type, method_name: str, parameter_types: list[Any]) -> str:
    """``Interface#method(type1,type2)``."""
    names = ",".join(_type_name(t) for t in parameter_types)
    return f"{target_type.__name__}#{method_name}({names})"
