"""Configuration values and collaborator protocols.

This module defines the plain configuration values threaded through a client
(``Options``, ``RetryConfig``, ``ClientConfig``) and the protocols that
pluggable collaborators implement.

The module uses Pydantic for configuration validation and Python protocols
for defining interfaces, so any object with the right shape can be plugged
in without inheriting from a courier class.

Classes:
    Options: Per-request transport options (timeouts, redirects)
    RetryConfig: Configuration for the default Retryer
    ClientConfig: Everything needed to build a client from configuration
    Client: Protocol for synchronous transports
    AsyncClient: Protocol for asynchronous transports
    RequestInterceptor: Protocol for per-call template interceptors
    ServiceResolver: Protocol for dynamic base URL lookups

Example:
    Creating configuration for a client::

        from courier.types import ClientConfig, RetryConfig

        config = ClientConfig(
            name="github",
            url="https://api.github.com",
            headers={"Accept": "application/vnd.github.v3+json"},
            retry=RetryConfig(attempts=3, backoff="exponential"),
        )
        api = Courier.builder().configure(config).target(GitHub)
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

if TYPE_CHECKING:
    from .http import Request, Response
    from .request_template import RequestTemplate


class Options(BaseModel):
    """Per-request transport options.

    Attributes:
        connect_timeout: Seconds to wait for a connection (default: 10.0)
        read_timeout: Seconds to wait for response data (default: 60.0)
        follow_redirects: Whether redirects are followed (default: True)
    """

    model_config = ConfigDict(frozen=True)

    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    follow_redirects: bool = True


class RetryConfig(BaseModel):
    """Configuration for the default Retryer.

    Attributes:
        attempts: Maximum number of calls, the first one included (default: 5)
        backoff: "exponential", "linear" or "constant" (default: "exponential")
        initial_delay: Delay in seconds before the first retry (default: 0.1)
        max_delay: Upper bound for any single delay (default: 1.0)
        multiplier: Growth factor for exponential backoff (default: 1.5)
        jitter: Random fraction added to or removed from each delay (default: 0.0)
        max_elapsed: Total seconds a call may spend retrying, or None

    Example:
        Retry rate-limited calls patiently::

            retry = RetryConfig(
                attempts=8,
                backoff="exponential",
                initial_delay=0.5,
                max_delay=30.0,
                jitter=0.2,
            )
    """

    attempts: int = Field(default=5, ge=1)
    backoff: str = "exponential"  # "exponential", "linear", "constant"
    initial_delay: float = Field(default=0.1, ge=0)
    max_delay: float = Field(default=1.0, ge=0)
    multiplier: float = Field(default=1.5, ge=1)
    jitter: float = Field(default=0.0, ge=0, le=1)
    max_elapsed: float | None = None


class ExceptionPropagationPolicy(Enum):
    """What is raised once retries are exhausted.

    NONE re-raises the last RetryableError; UNWRAP raises its cause instead
    when there is one.
    """

    NONE = "none"
    UNWRAP = "unwrap"


@dataclass
class ClientConfig:
    """Configuration for a client, suitable for loading from the environment.

    Attributes:
        name: Logical client name, used for environment lookups and metrics
        url: Base URL for all requests
        headers: Headers added to every request
        connect_timeout: Connection timeout in seconds (default: 10.0)
        read_timeout: Read timeout in seconds (default: 60.0)
        follow_redirects: Whether to follow redirects (default: True)
        retry: Retry configuration, or None for the builder default
        log_level: "none", "basic", "headers" or "full" (default: "none")
        dismiss_404: Decode 404 responses as empty values (default: False)

    Example:
        Minimal configuration::

            config = ClientConfig(name="simple", url="https://httpbin.org")
    """

    name: str
    url: str | None = None
    headers: dict[str, str] | None = None
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    follow_redirects: bool = True
    retry: RetryConfig | None = None
    log_level: str = "none"
    dismiss_404: bool = False

    @property
    def options(self) -> Options:
        return Options(
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
            follow_redirects=self.follow_redirects,
        )

    @classmethod
    def from_env(
        cls,
        name: str,
        prefix: str = "COURIER_",
        environ: Mapping[str, str] | None = None,
    ) -> ClientConfig:
        """Load configuration from ``<PREFIX><NAME>_<FIELD>`` variables.

        ``COURIER_GITHUB_URL`` sets ``url``, ``COURIER_GITHUB_RETRY_ATTEMPTS``
        sets ``retry.attempts`` and ``COURIER_GITHUB_HEADER_ACCEPT`` adds an
        ``Accept`` header. Values are validated and converted by pydantic.
        Variables that match no field, such as the ``CIRCUIT_BREAKER_*``
        settings read by extensions, are left alone.
        """
        known = {f.name for f in fields(cls)}
        data: dict[str, Any] = {"name": name}
        for field_name, value in environ_section(name, prefix=prefix, environ=environ).items():
            if field_name.startswith("header_"):
                header = field_name[len("header_") :].replace("_", "-").title()
                data.setdefault("headers", {})[header] = value
            elif field_name.startswith("retry_"):
                data.setdefault("retry", {})[field_name[len("retry_") :]] = value
            elif field_name in known:
                data[field_name] = value

        return TypeAdapter(cls).validate_python(data)


def environ_section(
    name: str,
    section: str = "",
    prefix: str = "COURIER_",
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Collect ``<PREFIX><NAME>_<SECTION><FIELD>`` variables as ``{field: value}``.

    Field names are lower-cased. Extensions use ``section`` to read their own
    settings for a client, e.g. ``environ_section("github", "circuit_breaker_")``.
    """
    environ = os.environ if environ is None else environ
    key_prefix = f"{prefix}{name}_{section}".upper().replace("-", "_")

    values: dict[str, str] = {}
    for key, value in environ.items():
        if not key.upper().startswith(key_prefix):
            continue
        field_name = key[len(key_prefix) :].lower()
        if field_name:
            values[field_name] = value
    return values


@runtime_checkable
class Client(Protocol):
    """Synchronous transport: sends a Request and returns its Response.

    Implementations raise :class:`courier.errors.TransportError` (or an
    ``OSError``) on connection failures and timeouts.
    """

    def execute(self, request: Request, options: Options) -> Response:
        ...


@runtime_checkable
class AsyncClient(Protocol):
    """Asynchronous transport."""

    async def execute(self, request: Request, options: Options) -> Response:
        ...


@runtime_checkable
class RequestInterceptor(Protocol):
    """Runs once per call on the resolved template, in registration order."""

    def apply(self, template: RequestTemplate) -> None:
        ...


@runtime_checkable
class ServiceResolver(Protocol):
    """Resolves a logical service name to a base URL."""

    def resolve(self, name: str) -> str:
        ...
