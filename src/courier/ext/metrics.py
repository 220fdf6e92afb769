"""Metrics capability.

Wraps the Client, the Decoder and the invocation handler factory so that
every exchange, decode and method call is timed per ``config_key``.
Recording goes through the :class:`MetricsRecorder` protocol; the bundled
:class:`InMemoryMetrics` keeps counts and latencies in memory, tests and
exporters read them back with ``snapshot()``.

Example:
    >>> metrics = MetricsCapability()
    >>> github = Courier.builder().add_capability(metrics).target(GitHub, "https://api.github.com")
    >>> github.contributors("octo", "repo")
    >>> metrics.registry.timer("http.request", "GitHub#contributors(str,str)", status="200").count
    1
"""

from __future__ import annotations

import asyncio
import inspect
import threading
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..capability import Capability
from ..codec import Decoder
from ..http import Request, Response
from ..proxy import InvocationHandler, InvocationHandlerFactory
from ..target import Target
from ..types import AsyncClient, Client, Options


@runtime_checkable
class MetricsRecorder(Protocol):
    """Protocol for metric collection."""

    def record(self, name: str, config_key: str, duration: float, **tags: str) -> None:
        """Record one timed event.

        Args:
            name: Metric name, e.g. ``http.request``
            config_key: Key of the interface method
            duration: Duration in seconds
            tags: Extra dimensions such as ``status`` or ``outcome``
        """
        ...


@dataclass
class Timer:
    count: int = 0
    total: float = 0.0
    max: float = 0.0

    def record(self, duration: float) -> None:
        self.count += 1
        self.total += duration
        self.max = max(self.max, duration)

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0


class InMemoryMetrics:
    """Thread-safe in-memory MetricsRecorder."""

    def __init__(self):
        self._timers: dict[tuple[str, str, tuple[tuple[str, str], ...]], Timer] = {}
        self._lock = threading.Lock()

    def record(self, name: str, config_key: str, duration: float, **tags: str) -> None:
        key = (name, config_key, tuple(sorted(tags.items())))
        with self._lock:
            self._timers.setdefault(key, Timer()).record(duration)

    def timer(self, name: str, config_key: str, **tags: str) -> Timer:
        """The timer for one series; an empty Timer if nothing was recorded."""
        key = (name, config_key, tuple(sorted(tags.items())))
        with self._lock:
            timer = self._timers.get(key)
            return Timer(timer.count, timer.total, timer.max) if timer else Timer()

    def count(self, name: str, config_key: str | None = None) -> int:
        """Events recorded under ``name`` (optionally for one config key), all tags summed."""
        with self._lock:
            return sum(
                timer.count
                for (metric, key, _), timer in self._timers.items()
                if metric == name and (config_key is None or key == config_key)
            )

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            result: dict[str, dict[str, Any]] = {}
            for (name, config_key, tags), timer in self._timers.items():
                label = ",".join(f"{k}={v}" for k, v in tags)
                series = f"{name}[{config_key}]{{{label}}}" if label else f"{name}[{config_key}]"
                result[series] = {"count": timer.count, "total": timer.total, "max": timer.max}
            return result

    def clear(self) -> None:
        with self._lock:
            self._timers.clear()


def _config_key(request: Request) -> str:
    return request.config_key or f"{request.method} {request.url}"


class MeteredClient:
    def __init__(self, delegate: Client, recorder: MetricsRecorder):
        self.delegate = delegate
        self.recorder = recorder

    def execute(self, request: Request, options: Options) -> Response:
        start = time.perf_counter()
        try:
            response = self.delegate.execute(request, options)
        except Exception as e:
            self.recorder.record(
                "http.request",
                _config_key(request),
                time.perf_counter() - start,
                status="error",
                exception=type(e).__name__,
            )
            raise
        self.recorder.record(
            "http.request", _config_key(request), time.perf_counter() - start, status=str(response.status)
        )
        return response


class AsyncMeteredClient:
    def __init__(self, delegate: AsyncClient, recorder: MetricsRecorder):
        self.delegate = delegate
        self.recorder = recorder

    async def execute(self, request: Request, options: Options) -> Response:
        start = time.perf_counter()
        try:
            response = await self.delegate.execute(request, options)
        except Exception as e:
            self.recorder.record(
                "http.request",
                _config_key(request),
                time.perf_counter() - start,
                status="error",
                exception=type(e).__name__,
            )
            raise
        self.recorder.record(
            "http.request", _config_key(request), time.perf_counter() - start, status=str(response.status)
        )
        return response


class MeteredDecoder(Decoder):
    def __init__(self, delegate: Decoder, recorder: MetricsRecorder):
        self.delegate = delegate
        self.recorder = recorder

    def decode(self, response: Response, type_: Any) -> Any:
        config_key = _config_key(response.request) if response.request is not None else "unknown"
        start = time.perf_counter()
        try:
            return self.delegate.decode(response, type_)
        finally:
            self.recorder.record("http.decode", config_key, time.perf_counter() - start)


class MeteredInvocationHandler(InvocationHandler):
    """Times whole method calls, retries included."""

    def __init__(self, delegate: InvocationHandler, recorder: MetricsRecorder):
        super().__init__(delegate.target, delegate.dispatch)
        self.delegate = delegate
        self.recorder = recorder

    def invoke(self, name: str, args: Sequence[Any], kwargs: Mapping[str, Any]) -> Any:
        config_key = self.dispatch[name].metadata.config_key
        start = time.perf_counter()
        try:
            result = self.delegate.invoke(name, args, kwargs)
        except Exception as e:
            self._record(config_key, start, e)
            raise

        if inspect.isawaitable(result):
            return self._await(result, config_key, start)
        if isinstance(result, Future):
            result.add_done_callback(lambda f: self._record_future(config_key, start, f))
            return result
        self._record(config_key, start, None)
        return result

    async def _await(self, awaitable: Any, config_key: str, start: float) -> Any:
        try:
            result = await awaitable
        except (Exception, asyncio.CancelledError) as e:
            self._record(config_key, start, e)
            raise
        self._record(config_key, start, None)
        return result

    def _record(self, config_key: str, start: float, error: BaseException | None) -> None:
        outcome = "success" if error is None else type(error).__name__
        self.recorder.record("courier.invocation", config_key, time.perf_counter() - start, outcome=outcome)

    def _record_future(self, config_key: str, start: float, future: Future) -> None:
        error = CancelledError() if future.cancelled() else future.exception()
        self._record(config_key, start, error)


class MeteredInvocationHandlerFactory(InvocationHandlerFactory):
    def __init__(self, delegate: InvocationHandlerFactory, recorder: MetricsRecorder):
        self.delegate = delegate
        self.recorder = recorder

    def create(self, target: Target, dispatch: Mapping[str, Any]) -> InvocationHandler:
        return MeteredInvocationHandler(self.delegate.create(target, dispatch), self.recorder)


class MetricsCapability(Capability):
    """Records request, decode and invocation timings into ``registry``."""

    def __init__(self, registry: MetricsRecorder | None = None):
        self.registry = registry if registry is not None else InMemoryMetrics()

    def enrich_client(self, client: Client) -> Client:
        return MeteredClient(client, self.registry)

    def enrich_async_client(self, client: AsyncClient) -> AsyncClient:
        return AsyncMeteredClient(client, self.registry)

    def enrich_decoder(self, decoder: Decoder) -> Decoder:
        return MeteredDecoder(decoder, self.registry)

    def enrich_invocation_handler_factory(self, factory: InvocationHandlerFactory) -> InvocationHandlerFactory:
        return MeteredInvocationHandlerFactory(factory, self.registry)
