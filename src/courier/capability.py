"""Build-time decoration of client components.

A Capability gets one chance, while a client is built, to wrap each
pluggable component (Client, Encoder, Decoder, ErrorDecoder, Retryer,
Contract, interceptors, logger, Options and the invocation handler factory).
Wrappers must delegate whatever they do not change.

Capabilities are applied in reverse registration order, so the first one
registered ends up outermost: with ``add_capability(a).add_capability(b)``
a call passes through ``a``'s wrapper, then ``b``'s, then the real Client.

Example:
    >>> class Timing(Capability):
    ...     def enrich_client(self, client):
    ...         return TimedClient(client)
    >>>
    >>> api = Courier.builder().add_capability(Timing()).target(GitHub, "https://api.github.com")
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Callable

from loguru import logger

COMPONENT_KINDS = (
    "client",
    "async_client",
    "encoder",
    "decoder",
    "error_decoder",
    "retryer",
    "contract",
    "request_interceptor",
    "logger",
    "options",
    "invocation_handler_factory",
)


class Capability:
    """Base class for capabilities; every hook returns its argument unchanged."""

    def enrich_client(self, client: Any) -> Any:
        return client

    def enrich_async_client(self, client: Any) -> Any:
        return client

    def enrich_encoder(self, encoder: Any) -> Any:
        return encoder

    def enrich_decoder(self, decoder: Any) -> Any:
        return decoder

    def enrich_error_decoder(self, error_decoder: Any) -> Any:
        return error_decoder

    def enrich_retryer(self, retryer: Any) -> Any:
        return retryer

    def enrich_contract(self, contract: Any) -> Any:
        return contract

    def enrich_request_interceptor(self, interceptor: Any) -> Any:
        return interceptor

    def enrich_logger(self, logger: Any) -> Any:
        return logger

    def enrich_options(self, options: Any) -> Any:
        return options

    def enrich_invocation_handler_factory(self, factory: Any) -> Any:
        return factory


class FunctionCapability(Capability):
    """Capability assembled from plain functions, one per component kind.

    Example:
        >>> FunctionCapability(client=lambda c: CountingClient(c))
    """

    def __init__(self, **enrichers: Callable[[Any], Any]):
        unknown = set(enrichers) - set(COMPONENT_KINDS)
        if unknown:
            raise TypeError(f"Unknown component kinds: {', '.join(sorted(unknown))}")
        for kind, enricher in enrichers.items():
            setattr(self, f"enrich_{kind}", enricher)


def enrich(component: Any, kind: str, capabilities: Sequence[Capability]) -> Any:
    """Apply every capability's ``enrich_<kind>`` hook to ``component``."""
    if kind not in COMPONENT_KINDS:
        raise ValueError(f"Unknown component kind: {kind}")
    enriched = component
    for capability in reversed(capabilities):
        enriched = getattr(capability, f"enrich_{kind}")(enriched)
    if enriched is not component:
        logger.debug(f"Enriched {kind} {type(component).__name__} -> {type(enriched).__name__}")
    return enriched
