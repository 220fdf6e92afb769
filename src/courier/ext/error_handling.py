"""Status-code to exception mapping declared on the interface.

Interfaces declare the exceptions they expect with
:func:`courier.annotations.error_handling`, on the class or on a method.
Method mappings win over class mappings per status code; ``default`` applies
to any other non-2xx status. Statuses without a mapping fall through to the
wrapped ErrorDecoder.

Exception constructors are inspected when the interface is registered. A
constructor may take any of ``message``, ``status``, ``body``, ``headers``,
``request`` and ``response``; a required parameter outside that set makes the
constructor ambiguous and is reported as a ConfigurationError.

Example:
    >>> @error_handling(codes={404: UserMissing}, default=ApiFailure)
    ... class Users:
    ...     @get("/users/{id}")
    ...     def get_user(self, id: str) -> User: ...
    >>> users = Courier.builder().add_capability(ErrorHandlingCapability()).target(Users, url)
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from ..capability import Capability
from ..codec import DefaultErrorDecoder, ErrorDecoder
from ..contract import Contract, DefaultContract, DelegatingContract
from ..errors import ConfigurationError, HTTPStatusError, RetryableError, error_status
from ..http import Response
from ..metadata import MethodMetadata

CONSTRUCTOR_ARGUMENTS = frozenset({"message", "status", "body", "headers", "request", "response"})

ExceptionFactory = Callable[[dict[str, Any]], Exception]


def exception_factory(exc_type: type[Exception], config_key: str | None = None) -> ExceptionFactory:
    """Return a function building ``exc_type`` from the response context.

    Raises:
        ConfigurationError: If the constructor needs values that cannot be supplied
    """
    if not (inspect.isclass(exc_type) and issubclass(exc_type, Exception)):
        raise ConfigurationError(f"{config_key}: {exc_type!r} is not an exception class", config_key)

    if exc_type.__init__ in (HTTPStatusError.__init__, RetryableError.__init__):
        return lambda ctx: exc_type(
            ctx["status"],
            ctx["message"],
            request=ctx["request"],
            body=ctx["body"],
            headers=ctx["headers"],
        )

    try:
        signature = inspect.signature(exc_type)
    except (TypeError, ValueError):
        return lambda ctx: exc_type(ctx["message"])

    positional: list[str] = []
    keywords: list[str] = []
    takes_args = False
    for param in signature.parameters.values():
        if param.kind is param.VAR_POSITIONAL:
            takes_args = True
            continue
        if param.kind is param.VAR_KEYWORD:
            continue
        if param.name not in CONSTRUCTOR_ARGUMENTS:
            if param.default is param.empty:
                raise ConfigurationError(
                    f"{config_key}: cannot construct {exc_type.__name__}, "
                    f"unknown required parameter '{param.name}'",
                    config_key,
                )
            continue
        if param.kind is param.POSITIONAL_ONLY:
            positional.append(param.name)
        else:
            keywords.append(param.name)

    if takes_args and not positional and not keywords:
        return lambda ctx: exc_type(ctx["message"])

    def build(ctx: dict[str, Any]) -> Exception:
        return exc_type(*(ctx[name] for name in positional), **{name: ctx[name] for name in keywords})

    return build


@dataclass(frozen=True)
class _MethodErrors:
    codes: dict[int, ExceptionFactory]
    default: ExceptionFactory | None


class AnnotationErrorDecoder(ErrorDecoder):
    """ErrorDecoder honouring ``error_handling`` declarations.

    Methods are registered with :meth:`register` (or all at once with
    :meth:`for_interface`); responses of unregistered methods and unmapped
    statuses go to ``delegate``.
    """

    def __init__(self, delegate: ErrorDecoder | None = None, registry: dict[str, _MethodErrors] | None = None):
        self.delegate = delegate or DefaultErrorDecoder()
        self.registry = registry if registry is not None else {}

    @classmethod
    def for_interface(
        cls,
        interface: type,
        contract: Contract | None = None,
        delegate: ErrorDecoder | None = None,
    ) -> AnnotationErrorDecoder:
        decoder = cls(delegate)
        for metadata in (contract or DefaultContract()).parse(interface):
            decoder.register(metadata)
        return decoder

    def register(self, metadata: MethodMetadata) -> None:
        if not metadata.error_handling and metadata.default_error is None:
            return
        key = metadata.config_key
        codes = {status: exception_factory(exc, key) for status, exc in metadata.error_handling.items()}
        default = exception_factory(metadata.default_error, key) if metadata.default_error else None
        self.registry[key] = _MethodErrors(codes, default)
        logger.debug(f"Registered error handling for {key}: {sorted(codes)}")

    def decode(self, config_key: str, response: Response) -> Exception:
        errors = self.registry.get(config_key)
        if errors is None:
            return self.delegate.decode(config_key, response)
        factory = errors.codes.get(response.status, errors.default)
        if factory is None:
            return self.delegate.decode(config_key, response)

        fallback = error_status(config_key, response)
        context = {
            "message": str(fallback),
            "status": response.status,
            "body": fallback.response_body,
            "headers": response.headers,
            "request": response.request,
            "response": response.with_body(fallback.response_body),
        }
        return factory(context)


class _RegisteringContract(DelegatingContract):
    def __init__(self, delegate: Contract, registry: AnnotationErrorDecoder):
        super().__init__(delegate)
        self.registry = registry

    def process(self, metadata: MethodMetadata) -> MethodMetadata:
        self.registry.register(metadata)
        return metadata


class ErrorHandlingCapability(Capability):
    """Registers every parsed interface with an AnnotationErrorDecoder.

    Mappings are validated while the client is built, so an ambiguous
    exception constructor fails before any request is made.
    """

    def __init__(self):
        self.registry: dict[str, _MethodErrors] = {}
        self._collector = AnnotationErrorDecoder(registry=self.registry)

    def enrich_contract(self, contract: Contract) -> Contract:
        return _RegisteringContract(contract, self._collector)

    def enrich_error_decoder(self, error_decoder: ErrorDecoder) -> ErrorDecoder:
        return AnnotationErrorDecoder(error_decoder, self.registry)
