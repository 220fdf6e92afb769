"""Circuit breaker capability.

The breaker watches every exchange of a client. After ``failure_threshold``
consecutive failures (transport errors or responses with a status listed in
``failure_statuses``) it opens and rejects calls with
:class:`~courier.errors.CircuitOpenError` without touching the network. Once
``recovery_timeout`` has passed it lets up to ``half_open_max_calls`` trial
calls through; a success closes the circuit, a failure opens it again.

Example:
    >>> breaker = CircuitBreakerCapability(CircuitBreakerConfig(failure_threshold=3), name="github")
    >>> github = Courier.builder().add_capability(breaker).target(GitHub, "https://api.github.com")
"""

from __future__ import annotations

import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Callable

from loguru import logger
from pydantic import BaseModel, Field

from ..capability import Capability
from ..errors import CircuitOpenError, TransportError
from ..http import Request, Response
from ..types import AsyncClient, Client, Options, environ_section


class CircuitBreakerConfig(BaseModel):
    """Configuration for the circuit breaker capability.

    The circuit breaker prevents cascading failures by counting failed
    exchanges and temporarily rejecting calls once a threshold is exceeded.

    Attributes:
        failure_threshold: Number of failures before opening circuit (default: 5)
        recovery_timeout: Seconds to wait before testing recovery (default: 60.0)
        half_open_max_calls: Max test calls in half-open state (default: 3)
        failure_statuses: Response statuses counted as failures

    Notes:
        Transport failures always count as failures.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3
    failure_statuses: list[int] = Field(default_factory=lambda: [500, 502, 503, 504])

    @classmethod
    def from_env(
        cls,
        name: str,
        prefix: str = "COURIER_",
        environ: Mapping[str, str] | None = None,
    ) -> CircuitBreakerConfig:
        """Load ``<PREFIX><NAME>_CIRCUIT_BREAKER_<FIELD>`` variables.

        ``failure_statuses`` is read as a comma-separated list.
        """
        data: dict[str, object] = dict(environ_section(name, "circuit_breaker_", prefix, environ))
        if "failure_statuses" in data:
            data["failure_statuses"] = [s.strip() for s in str(data["failure_statuses"]).split(",") if s.strip()]
        return cls.model_validate(data)


@dataclass
class CircuitBreakerState:
    """State for circuit breaker pattern."""

    failure_count: int = 0
    last_failure_time: float | None = None
    state: str = "closed"  # "closed", "open", "half_open"
    half_open_calls: int = 0


class CircuitBreaker:
    """Thread-safe closed/open/half-open state machine."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CircuitBreakerConfig()
        self.name = name
        self.clock = clock
        self._breaker = CircuitBreakerState()
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        return self._breaker.state

    @property
    def failure_count(self) -> int:
        return self._breaker.failure_count

    def before_call(self) -> None:
        """Raise CircuitOpenError unless a request may be made now."""
        with self._lock:
            if not self._can_make_request():
                raise CircuitOpenError(f"Circuit breaker '{self.name}' is open", self.name)

    def _can_make_request(self) -> bool:
        breaker = self._breaker
        if breaker.state == "closed":
            return True

        if breaker.state == "open":
            if self.clock() - breaker.last_failure_time > self.config.recovery_timeout:
                logger.info(f"Circuit breaker '{self.name}' half-open")
                breaker.state = "half_open"
                breaker.half_open_calls = 1
                return True
            return False

        if breaker.half_open_calls < self.config.half_open_max_calls:
            breaker.half_open_calls += 1
            return True
        return False

    def on_success(self) -> None:
        with self._lock:
            breaker = self._breaker
            if breaker.state == "half_open":
                logger.info(f"Circuit breaker '{self.name}' closed")
            breaker.state = "closed"
            breaker.failure_count = 0
            breaker.last_failure_time = None
            breaker.half_open_calls = 0

    def on_failure(self) -> None:
        with self._lock:
            breaker = self._breaker
            breaker.failure_count += 1
            breaker.last_failure_time = self.clock()
            if breaker.state == "half_open" or breaker.failure_count >= self.config.failure_threshold:
                if breaker.state != "open":
                    logger.warning(
                        f"Circuit breaker '{self.name}' opened after {breaker.failure_count} failures"
                    )
                breaker.state = "open"

    def record(self, response: Response) -> None:
        if response.status in self.config.failure_statuses:
            self.on_failure()
        else:
            self.on_success()


class CircuitBreakerClient:
    """Client wrapper guarded by a CircuitBreaker."""

    def __init__(self, delegate: Client, breaker: CircuitBreaker):
        self.delegate = delegate
        self.breaker = breaker

    def execute(self, request: Request, options: Options) -> Response:
        self.breaker.before_call()
        try:
            response = self.delegate.execute(request, options)
        except (TransportError, OSError):
            self.breaker.on_failure()
            raise
        self.breaker.record(response)
        return response


class AsyncCircuitBreakerClient:
    """AsyncClient wrapper guarded by a CircuitBreaker."""

    def __init__(self, delegate: AsyncClient, breaker: CircuitBreaker):
        self.delegate = delegate
        self.breaker = breaker

    async def execute(self, request: Request, options: Options) -> Response:
        self.breaker.before_call()
        try:
            response = await self.delegate.execute(request, options)
        except (TransportError, OSError):
            self.breaker.on_failure()
            raise
        self.breaker.record(response)
        return response


class CircuitBreakerCapability(Capability):
    """Wraps the client of every built interface with one shared breaker."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.breaker = CircuitBreaker(config, name, clock)

    @classmethod
    def from_env(
        cls,
        name: str,
        prefix: str = "COURIER_",
        environ: Mapping[str, str] | None = None,
    ) -> CircuitBreakerCapability:
        """Breaker for the client ``name``, configured from the environment.

        Pairs with ``ClientConfig.from_env(name)``::

            builder.configure(ClientConfig.from_env("github"))
            builder.add_capability(CircuitBreakerCapability.from_env("github"))
        """
        return cls(CircuitBreakerConfig.from_env(name, prefix, environ), name)

    def enrich_client(self, client: Client) -> Client:
        return CircuitBreakerClient(client, self.breaker)

    def enrich_async_client(self, client: AsyncClient) -> AsyncClient:
        return AsyncCircuitBreakerClient(client, self.breaker)
