"""Per-method dispatch: encode, execute, decode, retry.

One MethodHandler is built per interface method when a client is created.
For every call it binds the arguments into a fresh RequestTemplate, runs the
request interceptors once, then loops: let the Target produce a Request,
send it through the Client, and hand the Response to the ResponseHandler.
Any :class:`~courier.errors.RetryableError` goes to a per-call clone of the
Retryer, which either pauses and lets the loop continue or re-raises.

The synchronous and asynchronous handlers share the response handling and
the retry decisions; only the way the Client is called and the way the
Retryer pauses differ.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from concurrent.futures import Executor, Future
from typing import Any

from .binding import RequestTemplateFactory
from .codec import Decoder, Encoder, ErrorDecoder
from .errors import (
    ConfigurationError,
    CourierError,
    DecodeError,
    RetryableError,
    TransportError,
    error_executing,
)
from .http import Request, Response
from .logger import HttpLogger, LogLevel
from .metadata import CallStyle, MethodMetadata
from .request_template import RequestTemplate
from .retryer import Retryer
from .target import Target
from .types import AsyncClient, Client, ExceptionPropagationPolicy, Options, RequestInterceptor

MAX_RESPONSE_BUFFER_SIZE = 8 * 1024


def _is_void(type_: Any) -> bool:
    return type_ is None or type_ is type(None)


class ResponseHandler:
    """Turns a Response into the method's return value or its exception."""

    def __init__(
        self,
        decoder: Decoder,
        error_decoder: ErrorDecoder,
        http_logger: HttpLogger,
        log_level: LogLevel = LogLevel.NONE,
        dismiss_404: bool = False,
        close_after_decode: bool = True,
    ):
        self.decoder = decoder
        self.error_decoder = error_decoder
        self.http_logger = http_logger
        self.log_level = log_level
        self.dismiss_404 = dismiss_404
        self.close_after_decode = close_after_decode

    def handle(self, config_key: str, response: Response, return_type: Any, elapsed_ms: float) -> Any:
        if self.log_level is not LogLevel.NONE:
            response = self.http_logger.log_and_rebuffer_response(
                config_key, self.log_level, response, elapsed_ms
            )

        if return_type is Response:
            return self._disconnect_body_if_needed(response)

        status = response.status
        should_decode = 200 <= status < 300 or (
            status == 404 and self.dismiss_404 and not _is_void(return_type)
        )
        if not should_decode:
            try:
                raise self.error_decoder.decode(config_key, response)
            finally:
                response.close()

        if _is_void(return_type):
            response.close()
            return None

        try:
            return self.decoder.decode(response, return_type)
        except CourierError:
            raise
        except Exception as e:
            raise DecodeError(f"{e} decoding response of {config_key}", status=status, request=response.request) from e
        finally:
            if self.close_after_decode:
                response.close()

    def _disconnect_body_if_needed(self, response: Response) -> Response:
        body = response.body
        if body is None or body.length is None or body.length > MAX_RESPONSE_BUFFER_SIZE:
            return response
        try:
            return response.rebuffer()
        finally:
            response.close()


class MethodHandler(ABC):
    """Executes calls of one interface method."""

    def __init__(self, metadata: MethodMetadata):
        self.metadata = metadata

    def bind_arguments(self, args: Sequence[Any], kwargs: Mapping[str, Any]) -> tuple[Any, ...]:
        """Call arguments in declaration order, defaults applied."""
        bound = self.metadata.signature.bind(*args, **kwargs)
        bound.apply_defaults()
        return tuple(bound.arguments.values())

    @abstractmethod
    def invoke(self, args: Sequence[Any], kwargs: Mapping[str, Any]) -> Any:
        ...


class _DispatchingMethodHandler(MethodHandler):
    def __init__(
        self,
        metadata: MethodMetadata,
        target: Target,
        retryer: Retryer,
        interceptors: Sequence[RequestInterceptor],
        response_handler: ResponseHandler,
        http_logger: HttpLogger,
        log_level: LogLevel,
        options: Options,
        encoder: Encoder,
        propagation_policy: ExceptionPropagationPolicy = ExceptionPropagationPolicy.NONE,
    ):
        super().__init__(metadata)
        self.target = target
        self.retryer = retryer
        self.interceptors = list(interceptors)
        self.response_handler = response_handler
        self.http_logger = http_logger
        self.log_level = log_level
        self.options = options
        self.template_factory = RequestTemplateFactory(metadata, encoder)
        self.propagation_policy = propagation_policy

    def prepare(self, argv: Sequence[Any]) -> tuple[RequestTemplate, Options]:
        template = self.template_factory.create(argv)
        for interceptor in self.interceptors:
            interceptor.apply(template)
        return template, self.find_options(argv)

    def find_options(self, argv: Sequence[Any]) -> Options:
        index = self.metadata.options_index
        if index is not None and argv[index] is not None:
            return argv[index]
        return self.options

    def target_request(self, template: RequestTemplate) -> Request:
        request = self.target.apply(template.copy())
        if self.log_level is not LogLevel.NONE:
            self.http_logger.log_request(self.metadata.config_key, self.log_level, request)
        return request

    def transport_failure(self, request: Request, error: BaseException, start: float) -> RetryableError:
        if self.log_level is not LogLevel.NONE:
            self.http_logger.log_io_exception(
                self.metadata.config_key, self.log_level, error, _elapsed_ms(start)
            )
        return error_executing(request, error)

    def handle_response(self, request: Request, response: Response, start: float) -> Any:
        if response.request is None:
            response = response.with_request(request)
        return self.response_handler.handle(
            self.metadata.config_key, response, self.metadata.return_type, _elapsed_ms(start)
        )

    def exhausted(self, error: RetryableError) -> BaseException:
        if self.propagation_policy is ExceptionPropagationPolicy.UNWRAP and error.__cause__ is not None:
            return error.__cause__
        return error

    def log_retry(self) -> None:
        if self.log_level is not LogLevel.NONE:
            self.http_logger.log_retry(self.metadata.config_key, self.log_level)


class SynchronousMethodHandler(_DispatchingMethodHandler):
    """Blocks the calling thread for the whole call, retries included."""

    def __init__(self, metadata: MethodMetadata, target: Target, client: Client, *args: Any, **kwargs: Any):
        super().__init__(metadata, target, *args, **kwargs)
        self.client = client

    def invoke(self, args: Sequence[Any], kwargs: Mapping[str, Any]) -> Any:
        argv = self.bind_arguments(args, kwargs)
        template, options = self.prepare(argv)
        retryer = self.retryer.clone()
        while True:
            try:
                return self.execute_and_decode(template, options)
            except RetryableError as e:
                try:
                    retryer.continue_or_propagate(e)
                except RetryableError as exhausted:
                    error = self.exhausted(exhausted)
                    if error is exhausted:
                        raise
                    raise error from None
                self.log_retry()

    def execute_and_decode(self, template: RequestTemplate, options: Options) -> Any:
        request = self.target_request(template)
        start = time.perf_counter()
        try:
            response = self.client.execute(request, options)
        except (TransportError, OSError) as e:
            raise self.transport_failure(request, e, start) from e
        return self.handle_response(request, response, start)


class FutureMethodHandler(SynchronousMethodHandler):
    """Runs the synchronous call on a caller-supplied executor."""

    def __init__(self, *args: Any, executor: Executor, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.executor = executor

    def invoke(self, args: Sequence[Any], kwargs: Mapping[str, Any]) -> Future:
        return self.executor.submit(super().invoke, args, kwargs)


class AsynchronousMethodHandler(_DispatchingMethodHandler):
    """Awaits the Client; cancelling the call cancels the in-flight request."""

    def __init__(self, metadata: MethodMetadata, target: Target, client: AsyncClient, *args: Any, **kwargs: Any):
        super().__init__(metadata, target, *args, **kwargs)
        self.client = client

    async def invoke(self, args: Sequence[Any], kwargs: Mapping[str, Any]) -> Any:
        argv = self.bind_arguments(args, kwargs)
        template, options = self.prepare(argv)
        retryer = self.retryer.clone()
        while True:
            try:
                return await self.execute_and_decode(template, options)
            except RetryableError as e:
                try:
                    await retryer.acontinue_or_propagate(e)
                except RetryableError as exhausted:
                    error = self.exhausted(exhausted)
                    if error is exhausted:
                        raise
                    raise error from None
                self.log_retry()

    async def execute_and_decode(self, template: RequestTemplate, options: Options) -> Any:
        request = self.target_request(template)
        start = time.perf_counter()
        try:
            response = await self.client.execute(request, options)
        except (TransportError, OSError) as e:
            raise self.transport_failure(request, e, start) from e
        return self.handle_response(request, response, start)


class MethodHandlerFactory:
    """Creates the MethodHandler for each parsed method of a client."""

    def __init__(
        self,
        client: Client | AsyncClient,
        retryer: Retryer,
        interceptors: Sequence[RequestInterceptor],
        response_handler: ResponseHandler,
        http_logger: HttpLogger,
        log_level: LogLevel,
        options: Options,
        encoder: Encoder,
        propagation_policy: ExceptionPropagationPolicy = ExceptionPropagationPolicy.NONE,
        executor: Executor | None = None,
        asynchronous: bool = False,
    ):
        self.client = client
        self.retryer = retryer
        self.interceptors = list(interceptors)
        self.response_handler = response_handler
        self.http_logger = http_logger
        self.log_level = log_level
        self.options = options
        self.encoder = encoder
        self.propagation_policy = propagation_policy
        self.executor = executor
        self.asynchronous = asynchronous

    def create(self, target: Target, metadata: MethodMetadata) -> MethodHandler:
        shared = (
            self.retryer,
            self.interceptors,
            self.response_handler,
            self.http_logger,
            self.log_level,
            self.options,
            self.encoder,
            self.propagation_policy,
        )
        style = metadata.call_style
        if self.asynchronous:
            if style is not CallStyle.COROUTINE:
                raise ConfigurationError(
                    f"AsyncCourier clients only support 'async def' methods: {metadata.config_key}",
                    metadata.config_key,
                )
            return AsynchronousMethodHandler(metadata, target, self.client, *shared)

        if style is CallStyle.SYNC:
            return SynchronousMethodHandler(metadata, target, self.client, *shared)
        if style is CallStyle.FUTURE:
            if self.executor is None:
                raise ConfigurationError(
                    f"{metadata.config_key} returns a Future but no executor was configured",
                    metadata.config_key,
                )
            return FutureMethodHandler(metadata, target, self.client, *shared, executor=self.executor)
        raise ConfigurationError(
            f"'async def' methods require AsyncCourier: {metadata.config_key}", metadata.config_key
        )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
