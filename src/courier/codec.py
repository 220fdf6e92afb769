"""Encoders, decoders and error decoders.

Encoders write a request body into a RequestTemplate, Decoders turn a 2xx
Response into the declared return type, and ErrorDecoders turn any other
Response into an exception, retryable or terminal.

Classes:
    Encoder / Decoder / ErrorDecoder: Collaborator interfaces
    DefaultEncoder: str, bytes and form (mapping) bodies
    DefaultDecoder: str, bytes and untyped bodies
    JsonEncoder / JsonDecoder: JSON through pydantic ``TypeAdapter``
    OptionalDecoder: 404 and 204 become None
    DefaultErrorDecoder: Status-specific errors honouring ``Retry-After``
"""

from __future__ import annotations

import collections.abc
import functools
import re
import time
import types
from abc import ABC, abstractmethod
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any, Callable, Union, get_args, get_origin
from urllib.parse import urlencode

from pydantic import TypeAdapter, ValidationError

from .errors import DecodeError, EncodeError, HTTPStatusError, RetryableError, error_status
from .http import Response
from .template import format_value, is_multi_valued

if TYPE_CHECKING:
    from .request_template import RequestTemplate


class Encoder(ABC):
    """Writes a body object into a template."""

    @abstractmethod
    def encode(self, obj: Any, body_type: Any, template: RequestTemplate) -> None:
        """Set the body (and any content headers) of ``template``.

        Raises:
            EncodeError: If ``obj`` cannot be encoded
        """


class Decoder(ABC):
    """Turns a response into the declared return type."""

    @abstractmethod
    def decode(self, response: Response, type_: Any) -> Any:
        """Decode ``response``.

        Raises:
            DecodeError: If the body cannot be decoded into ``type_``
        """


class ErrorDecoder(ABC):
    """Maps a non-2xx response to the exception raised to the caller."""

    @abstractmethod
    def decode(self, config_key: str, response: Response) -> Exception:
        """Return (not raise) the exception for ``response``.

        Returning a :class:`~courier.errors.RetryableError` lets the Retryer
        decide whether the call is attempted again.
        """


def empty_value_of(type_: Any) -> Any:
    """The empty value of a collection type, None for anything else."""
    origin = get_origin(type_) or type_
    if origin in (list, collections.abc.Sequence, collections.abc.Iterable, collections.abc.Collection):
        return []
    if origin in (dict, collections.abc.Mapping, collections.abc.MutableMapping):
        return {}
    if origin in (set, collections.abc.Set, collections.abc.MutableSet):
        return set()
    if origin is frozenset:
        return frozenset()
    if origin is tuple:
        return ()
    return None


def _is_void(type_: Any) -> bool:
    return type_ is None or type_ is type(None)


class DefaultEncoder(Encoder):
    """Encodes ``str`` and ``bytes`` as-is and mappings as an urlencoded form."""

    def encode(self, obj: Any, body_type: Any, template: RequestTemplate) -> None:
        if isinstance(obj, str):
            template.set_body(obj)
        elif isinstance(obj, (bytes, bytearray)):
            template.set_body(bytes(obj))
        elif isinstance(obj, collections.abc.Mapping):
            pairs = []
            for name, value in obj.items():
                values = value if is_multi_valued(value) else [value]
                pairs.extend((str(name), format_value(v)) for v in values if v is not None)
            template.set_body(urlencode(pairs))
            if "content-type" not in template.headers:
                template.add_header("Content-Type", "application/x-www-form-urlencoded")
        else:
            raise EncodeError(f"{type(obj).__name__} is not a type supported by this encoder.")


class DefaultDecoder(Decoder):
    """Decodes ``str``, ``bytes`` and untyped (``Any``) returns."""

    def decode(self, response: Response, type_: Any) -> Any:
        if _is_void(type_):
            return None
        if response.status in (204, 404):
            return empty_value_of(type_)
        if response.body is None:
            return None
        if type_ is bytes:
            return response.body.read()
        if type_ in (str, Any, object):
            return response.text()
        raise DecodeError(
            f"{type_} is not a type supported by this decoder.", status=response.status, request=response.request
        )


@functools.lru_cache(maxsize=512)
def _cached_adapter(type_: Any) -> TypeAdapter:
    return TypeAdapter(type_)


def type_adapter(type_: Any) -> TypeAdapter:
    """A (cached where possible) pydantic TypeAdapter for ``type_``."""
    try:
        return _cached_adapter(type_)
    except TypeError:
        return TypeAdapter(type_)


class JsonEncoder(Encoder):
    """Serializes bodies to JSON with pydantic."""

    def __init__(self, content_type: str = "application/json", **dump_options: Any):
        self.content_type = content_type
        self.dump_options = dump_options

    def encode(self, obj: Any, body_type: Any, template: RequestTemplate) -> None:
        adapter = type_adapter(Any if body_type is None else body_type)
        try:
            data = adapter.dump_json(obj, **self.dump_options)
        except Exception as e:
            raise EncodeError(f"Cannot serialize {type(obj).__name__} as JSON: {e}") from e
        template.set_body(data, "utf-8")
        if "content-type" not in template.headers:
            template.add_header("Content-Type", self.content_type)


class JsonDecoder(Decoder):
    """Validates JSON bodies into the declared type with pydantic.

    204 and 404 responses, as well as empty bodies, decode to the empty value
    of the declared type (``[]`` for lists, None for models).
    """

    def decode(self, response: Response, type_: Any) -> Any:
        if _is_void(type_):
            return None
        if response.status in (204, 404) or response.body is None:
            return empty_value_of(type_)
        data = response.body.read()
        if not data.strip():
            return empty_value_of(type_)
        if type_ is bytes:
            return data
        try:
            return type_adapter(type_).validate_json(data)
        except ValidationError as e:
            raise DecodeError(
                f"Cannot decode response of {response.request.url if response.request else 'request'} "
                f"as {getattr(type_, '__name__', type_)}: {e}",
                status=response.status,
                request=response.request,
            ) from e


class OptionalDecoder(Decoder):
    """Decodes 404 and 204 responses as None and unwraps ``Optional`` types."""

    def __init__(self, delegate: Decoder):
        self.delegate = delegate

    def decode(self, response: Response, type_: Any) -> Any:
        if response.status in (204, 404):
            return None
        if get_origin(type_) in (Union, types.UnionType):
            args = [a for a in get_args(type_) if a is not type(None)]
            if len(args) == 1:
                type_ = args[0]
        return self.delegate.decode(response, type_)


class RetryAfterDecoder:
    """Parses a ``Retry-After`` header into epoch seconds.

    Accepts delta-seconds (``120``) or an RFC 1123 date; anything else is
    ignored and None returned.
    """

    DELTA_SECONDS = re.compile(r"^[0-9]+\.?0*$")

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock

    def __call__(self, value: str | None) -> float | None:
        if value is None:
            return None
        value = value.strip()
        if self.DELTA_SECONDS.match(value):
            return self.clock() + float(value)
        try:
            return parsedate_to_datetime(value).timestamp()
        except (TypeError, ValueError, IndexError):
            return None


class DefaultErrorDecoder(ErrorDecoder):
    """Status-specific errors; responses with a usable ``Retry-After`` are retryable.

    Example:
        >>> decoder = DefaultErrorDecoder(clock=lambda: 1000.0)
        >>> error = decoder.decode("Api#get()", Response.create(503, headers={"Retry-After": "1"}))
        >>> error.retry_after
        1001.0
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        max_body_bytes: int | None = None,
        max_body_chars: int | None = None,
    ):
        self.retry_after_decoder = RetryAfterDecoder(clock)
        self.max_body_bytes = max_body_bytes
        self.max_body_chars = max_body_chars

    def decode(self, config_key: str, response: Response) -> Exception:
        error: HTTPStatusError = error_status(
            config_key, response, self.max_body_bytes, self.max_body_chars
        )
        retry_after = self.retry_after_decoder(response.headers.first("Retry-After"))
        if retry_after is None:
            return error
        request = response.request
        return RetryableError(
            response.status,
            str(error),
            method=str(request.method) if request is not None else None,
            retry_after=retry_after,
            request=request,
            body=error.response_body,
            headers=response.headers,
        )
