"""Fluent builders that assemble clients from their collaborators.

:class:`Courier` builds blocking clients (methods returning values or
``concurrent.futures.Future``); :class:`AsyncCourier` builds clients whose
methods are ``async def``. Both share the same configuration surface.

Examples:
    Basic client:

    >>> github = Courier.builder() \\
    ...     .encoder(JsonEncoder()) \\
    ...     .decoder(JsonDecoder()) \\
    ...     .target(GitHub, "https://api.github.com")

    Retries, logging and a capability:

    >>> github = Courier.builder() \\
    ...     .retryer(DefaultRetryer(period=0.2, max_attempts=3)) \\
    ...     .log_level("full") \\
    ...     .add_capability(MetricsCapability()) \\
    ...     .target(GitHub, "https://api.github.com")

    From configuration:

    >>> config = ClientConfig.from_env("github")
    >>> github = AsyncCourier.builder().configure(config).target(GitHub)
"""

from __future__ import annotations

from concurrent.futures import Executor
from typing import Any, Callable, Generic, TypeVar

from loguru import logger

from .capability import Capability, enrich
from .client import AsyncHttpxClient, HttpxClient
from .codec import DefaultDecoder, DefaultEncoder, DefaultErrorDecoder, Decoder, Encoder, ErrorDecoder
from .contract import Contract, DefaultContract, FutureReturnContract
from .errors import ConfigurationError
from .handler import MethodHandlerFactory, ResponseHandler
from .logger import HttpLogger, LogLevel
from .proxy import InvocationHandlerFactory, new_proxy
from .request_template import RequestTemplate
from .retryer import DefaultRetryer, Retryer
from .target import Target, target_of
from .types import (
    AsyncClient,
    Client,
    ClientConfig,
    ExceptionPropagationPolicy,
    Options,
    RequestInterceptor,
)

T = TypeVar("T")
B = TypeVar("B", bound="BaseBuilder")


class FunctionInterceptor:
    """Adapts a plain ``fn(template)`` callable to a RequestInterceptor."""

    def __init__(self, func: Callable[[RequestTemplate], Any]):
        self.func = func

    def apply(self, template: RequestTemplate) -> None:
        self.func(template)

    def __repr__(self) -> str:
        return f"FunctionInterceptor({getattr(self.func, '__name__', self.func)!r})"


class DefaultHeadersInterceptor:
    """Adds headers to every request that does not already carry them."""

    def __init__(self, headers: dict[str, str]):
        self.headers = dict(headers)

    def apply(self, template: RequestTemplate) -> None:
        existing = template.headers
        for name, value in self.headers.items():
            if name not in existing:
                template.add_header(name, value)


class BaseBuilder:
    """Configuration shared by the synchronous and asynchronous builders."""

    def __init__(self):
        self._encoder: Encoder = DefaultEncoder()
        self._decoder: Decoder = DefaultDecoder()
        self._error_decoder: ErrorDecoder = DefaultErrorDecoder()
        self._retryer: Retryer = DefaultRetryer()
        self._contract: Contract = DefaultContract()
        self._options = Options()
        self._logger = HttpLogger()
        self._log_level = LogLevel.NONE
        self._interceptors: list[RequestInterceptor] = []
        self._capabilities: list[Capability] = []
        self._dismiss_404 = False
        self._close_after_decode = True
        self._propagation_policy = ExceptionPropagationPolicy.NONE
        self._invocation_handler_factory = InvocationHandlerFactory()
        self._config: ClientConfig | None = None

    def encoder(self: B, encoder: Encoder) -> B:
        self._encoder = encoder
        return self

    def decoder(self: B, decoder: Decoder) -> B:
        self._decoder = decoder
        return self

    def error_decoder(self: B, error_decoder: ErrorDecoder) -> B:
        self._error_decoder = error_decoder
        return self

    def retryer(self: B, retryer: Retryer) -> B:
        self._retryer = retryer
        return self

    def contract(self: B, contract: Contract) -> B:
        self._contract = contract
        return self

    def options(self: B, options: Options) -> B:
        self._options = options
        return self

    def logger(self: B, http_logger: HttpLogger) -> B:
        self._logger = http_logger
        return self

    def log_level(self: B, level: LogLevel | str) -> B:
        self._log_level = LogLevel.parse(level)
        return self

    def request_interceptor(self: B, interceptor: RequestInterceptor | Callable[[RequestTemplate], Any]) -> B:
        """Add an interceptor; plain callables taking the template are accepted."""
        if not isinstance(interceptor, RequestInterceptor):
            if not callable(interceptor):
                raise ConfigurationError(f"{interceptor!r} is not a request interceptor")
            interceptor = FunctionInterceptor(interceptor)
        self._interceptors.append(interceptor)
        return self

    def request_interceptors(self: B, interceptors: list[RequestInterceptor]) -> B:
        self._interceptors = []
        for interceptor in interceptors:
            self.request_interceptor(interceptor)
        return self

    def add_capability(self: B, capability: Capability) -> B:
        self._capabilities.append(capability)
        return self

    def dismiss_404(self: B, enabled: bool = True) -> B:
        """Decode 404 responses as the empty value of the return type."""
        self._dismiss_404 = enabled
        return self

    def close_after_decode(self: B, enabled: bool = True) -> B:
        self._close_after_decode = enabled
        return self

    def exception_propagation_policy(self: B, policy: ExceptionPropagationPolicy) -> B:
        self._propagation_policy = policy
        return self

    def invocation_handler_factory(self: B, factory: InvocationHandlerFactory) -> B:
        self._invocation_handler_factory = factory
        return self

    def configure(self: B, config: ClientConfig) -> B:
        """Apply a ClientConfig: options, headers, retries and logging."""
        self._config = config
        self._options = config.options
        self._log_level = LogLevel.parse(config.log_level)
        self._dismiss_404 = config.dismiss_404
        if config.headers:
            self._interceptors.append(DefaultHeadersInterceptor(config.headers))
        if config.retry is not None:
            self._retryer = DefaultRetryer.from_config(config.retry)
        return self

    def _resolve_target(self, type_or_target: type | Target, url: str | None, name: str | None) -> Target:
        if isinstance(type_or_target, Target):
            return type_or_target
        if url is None and self._config is not None:
            url = self._config.url
            name = name or self._config.name
        return target_of(type_or_target, url, name)

    def _components(self) -> dict[str, Any]:
        caps = self._capabilities
        return {
            "contract": enrich(FutureReturnContract(self._contract), "contract", caps),
            "encoder": enrich(self._encoder, "encoder", caps),
            "decoder": enrich(self._decoder, "decoder", caps),
            "error_decoder": enrich(self._error_decoder, "error_decoder", caps),
            "retryer": enrich(self._retryer, "retryer", caps),
            "logger": enrich(self._logger, "logger", caps),
            "options": enrich(self._options, "options", caps),
            "interceptors": [enrich(i, "request_interceptor", caps) for i in self._interceptors],
            "invocation_handler_factory": enrich(
                self._invocation_handler_factory, "invocation_handler_factory", caps
            ),
        }

    def _factory(self, client: Any, components: dict[str, Any], **kwargs: Any) -> MethodHandlerFactory:
        response_handler = ResponseHandler(
            components["decoder"],
            components["error_decoder"],
            components["logger"],
            self._log_level,
            self._dismiss_404,
            self._close_after_decode,
        )
        return MethodHandlerFactory(
            client,
            components["retryer"],
            components["interceptors"],
            response_handler,
            components["logger"],
            self._log_level,
            components["options"],
            components["encoder"],
            self._propagation_policy,
            **kwargs,
        )


class Courier:
    """A built client factory: creates proxies for interfaces.

    When the builder was given no client, the Courier owns the ``HttpxClient``
    it created and :meth:`close` releases its connection pool.

    Example:
        >>> with Courier.builder().decoder(JsonDecoder()).build() as courier:
        ...     github = courier.new_instance(HardCodedTarget(GitHub, "https://api.github.com"))
        ...     github.repos("encode")
    """

    def __init__(
        self,
        contract: Contract,
        factory: MethodHandlerFactory,
        invocation_handler_factory: InvocationHandlerFactory,
        owned_client: Any = None,
    ):
        self.contract = contract
        self.factory = factory
        self.invocation_handler_factory = invocation_handler_factory
        self.owned_client = owned_client

    @staticmethod
    def builder() -> CourierBuilder:
        return CourierBuilder()

    def new_instance(self, target: Target) -> Any:
        """Parse ``target.type`` and return its implementation.

        Raises:
            ConfigurationError: If the interface is invalid for this client
        """
        metadata = self.contract.parse(target.type)
        dispatch = {
            method.method_name: self.factory.create(target, method)
            for method in metadata
            if not method.is_default_method
        }
        handler = self.invocation_handler_factory.create(target, dispatch)
        logger.debug(f"Built {type(self).__name__} client {target!r} with {len(dispatch)} methods")
        return new_proxy(target, metadata, handler)

    def close(self) -> None:
        """Close the transport created by the builder; a supplied client is left open."""
        if self.owned_client is not None:
            self.owned_client.close()

    def __enter__(self) -> Courier:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class AsyncCourier(Courier):
    """Courier whose clients expose ``async def`` methods."""

    @staticmethod
    def builder() -> AsyncCourierBuilder:
        return AsyncCourierBuilder()

    def close(self) -> None:
        raise TypeError("AsyncCourier is closed with 'await courier.aclose()'")

    async def aclose(self) -> None:
        if self.owned_client is not None:
            await self.owned_client.aclose()

    async def __aenter__(self) -> AsyncCourier:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


class CourierBuilder(BaseBuilder, Generic[T]):
    """Builder for blocking clients."""

    def __init__(self):
        super().__init__()
        self._client: Client | None = None
        self._executor: Executor | None = None

    def client(self, client: Client) -> CourierBuilder:
        self._client = client
        return self

    def executor(self, executor: Executor) -> CourierBuilder:
        """Executor running methods that return ``concurrent.futures.Future``."""
        self._executor = executor
        return self

    def build(self) -> Courier:
        components = self._components()
        owned = HttpxClient() if self._client is None else None
        client = enrich(self._client if self._client is not None else owned, "client", self._capabilities)
        factory = self._factory(client, components, executor=self._executor)
        return Courier(components["contract"], factory, components["invocation_handler_factory"], owned)

    def target(self, type_or_target: type[T] | Target, url: str | None = None, name: str | None = None) -> T:
        """Build and return the client for an interface.

        Without an explicit :meth:`client` the returned proxy holds an httpx
        pool that lives as long as the process; pass a client you close, or
        use :meth:`build` and close the Courier.
        """
        return self.build().new_instance(self._resolve_target(type_or_target, url, name))


class AsyncCourierBuilder(BaseBuilder, Generic[T]):
    """Builder for asyncio clients."""

    def __init__(self):
        super().__init__()
        self._client: AsyncClient | None = None

    def client(self, client: AsyncClient) -> AsyncCourierBuilder:
        self._client = client
        return self

    def build(self) -> AsyncCourier:
        components = self._components()
        owned = AsyncHttpxClient() if self._client is None else None
        client = enrich(self._client if self._client is not None else owned, "async_client", self._capabilities)
        factory = self._factory(client, components, asynchronous=True)
        return AsyncCourier(components["contract"], factory, components["invocation_handler_factory"], owned)

    def target(self, type_or_target: type[T] | Target, url: str | None = None, name: str | None = None) -> T:
        """Build and return the client for an interface.

        Without an explicit :meth:`client` the returned proxy holds an httpx
        pool that lives as long as the process; pass a client you close, or
        use :meth:`build` and close the Courier.
        """
        return self.build().new_instance(self._resolve_target(type_or_target, url, name))
