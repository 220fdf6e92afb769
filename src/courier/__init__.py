"""Declarative HTTP clients.

courier turns an annotated Python class into a working HTTP client. The
class declares *what* each call looks like (method, path, query, headers,
body); courier parses those declarations once, validates them while the
client is built, and generates an implementation that encodes arguments,
sends the request, retries when allowed and decodes the response.

Key Features:
    - Request lines, headers and bodies declared with decorators
    - Parameters bound with ``typing.Annotated`` markers or by name
    - RFC 6570-style ``{name}`` templates with per-component encoding
    - Pluggable Encoder, Decoder, ErrorDecoder, Retryer, Client and Target
    - Capabilities that wrap any component at build time
    - Blocking, ``concurrent.futures.Future`` and ``async def`` methods
    - httpx transports, pydantic codecs and loguru logging out of the box

Quick Start:
    Declare an interface and build a client::

        from typing import Annotated

        from pydantic import BaseModel
        from courier import Courier, JsonDecoder, Param, get

        class Contributor(BaseModel):
            login: str
            contributions: int

        class GitHub:
            @get("/repos/{owner}/{repo}/contributors")
            def contributors(self, owner: str, repo: str) -> list[Contributor]: ...

            @get("/search/repositories?q={query}")
            def search(self, query: Annotated[str, Param("query")]) -> dict: ...

        github = Courier.builder().decoder(JsonDecoder()).target(GitHub, "https://api.github.com")
        for contributor in github.contributors("python", "cpython"):
            print(contributor.login, contributor.contributions)

Advanced Features:
    Async clients, retries and capabilities::

        class Users:
            @get("/users/{id}?active={active}")
            async def get_user(self, id: str, active: bool | None = None) -> User: ...

        users = AsyncCourier.builder() \\
            .decoder(JsonDecoder()) \\
            .retryer(DefaultRetryer(period=0.2, max_attempts=3)) \\
            .log_level("headers") \\
            .add_capability(CircuitBreakerCapability()) \\
            .target(Users, "https://users.internal")

        user = await users.get_user("42", active=True)

See Also:
    - courier.annotations: Declaration decorators and parameter markers
    - courier.codec: Encoders, decoders and error decoders
    - courier.ext: Circuit breaking, metrics, authentication, error mapping
    - courier.testing: Mock clients for tests
"""

from .annotations import (
    Body,
    HeaderMap,
    Param,
    QueryMap,
    Url,
    base_path,
    body,
    default_method,
    defaults,
    delete,
    error_handling,
    get,
    head,
    headers,
    options,
    patch,
    post,
    put,
    request_line,
)
from .builder import AsyncCourier, AsyncCourierBuilder, Courier, CourierBuilder
from .capability import Capability, FunctionCapability
from .client import AsyncHttpxClient, HttpxClient
from .codec import (
    Decoder,
    DefaultDecoder,
    DefaultEncoder,
    DefaultErrorDecoder,
    Encoder,
    ErrorDecoder,
    JsonDecoder,
    JsonEncoder,
    OptionalDecoder,
    RetryAfterDecoder,
)
from .contract import Contract, DefaultContract, DelegatingContract, FutureReturnContract
from .errors import (
    BodyConsumedError,
    CircuitOpenError,
    ClientError,
    ConfigurationError,
    CourierError,
    DecodeError,
    EncodeError,
    HTTPStatusError,
    NotFound,
    RetryableError,
    ServerError,
    TransportError,
    Unauthorized,
)
from .http import ByteBody, Headers, HttpMethod, Request, Response, StreamBody
from .logger import HttpLogger, LogLevel
from .metadata import CallStyle, MethodMetadata
from .proxy import InvocationHandler, InvocationHandlerFactory
from .request_template import RequestTemplate
from .retryer import NEVER_RETRY, DefaultRetryer, Retryer, RetryState
from .target import EmptyTarget, HardCodedTarget, LoadBalancingTarget, RoundRobinResolver, Target
from .template import CollectionFormat
from .types import (
    AsyncClient,
    Client,
    ClientConfig,
    ExceptionPropagationPolicy,
    Options,
    RequestInterceptor,
    RetryConfig,
    ServiceResolver,
)

__version__ = "0.1.0"

__all__ = [
    # Builders
    "Courier",
    "CourierBuilder",
    "AsyncCourier",
    "AsyncCourierBuilder",
    # Declarations
    "request_line",
    "get",
    "post",
    "put",
    "patch",
    "delete",
    "head",
    "options",
    "headers",
    "body",
    "defaults",
    "base_path",
    "error_handling",
    "default_method",
    "Param",
    "QueryMap",
    "HeaderMap",
    "Url",
    "Body",
    "CollectionFormat",
    # Contracts and metadata
    "Contract",
    "DefaultContract",
    "DelegatingContract",
    "FutureReturnContract",
    "MethodMetadata",
    "CallStyle",
    # Requests and responses
    "RequestTemplate",
    "Request",
    "Response",
    "Headers",
    "HttpMethod",
    "ByteBody",
    "StreamBody",
    # Components
    "Client",
    "AsyncClient",
    "HttpxClient",
    "AsyncHttpxClient",
    "Encoder",
    "Decoder",
    "ErrorDecoder",
    "DefaultEncoder",
    "DefaultDecoder",
    "DefaultErrorDecoder",
    "JsonEncoder",
    "JsonDecoder",
    "OptionalDecoder",
    "RetryAfterDecoder",
    "Retryer",
    "DefaultRetryer",
    "RetryState",
    "NEVER_RETRY",
    "RequestInterceptor",
    "Target",
    "HardCodedTarget",
    "EmptyTarget",
    "LoadBalancingTarget",
    "RoundRobinResolver",
    "ServiceResolver",
    "Capability",
    "FunctionCapability",
    "InvocationHandler",
    "InvocationHandlerFactory",
    "HttpLogger",
    "LogLevel",
    # Configuration
    "Options",
    "RetryConfig",
    "ClientConfig",
    "ExceptionPropagationPolicy",
    # Errors
    "CourierError",
    "ConfigurationError",
    "EncodeError",
    "DecodeError",
    "TransportError",
    "BodyConsumedError",
    "CircuitOpenError",
    "HTTPStatusError",
    "ClientError",
    "ServerError",
    "NotFound",
    "Unauthorized",
    "RetryableError",
]
