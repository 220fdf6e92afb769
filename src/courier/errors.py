"""Exception hierarchy for declarative HTTP clients.

Every failure raised by a generated client belongs to one of a few families,
so callers can decide what to catch and the dispatcher can decide what to
retry.

Exception Hierarchy:
    CourierError: Base exception for all courier errors
    ├── ConfigurationError: Invalid interface declaration or builder setup
    ├── EncodeError: Request body could not be serialized
    ├── DecodeError: Response body could not be deserialized
    ├── TransportError: Connection failure or timeout raised by a Client
    ├── BodyConsumedError: A single-use response body was read twice
    ├── CircuitOpenError: A circuit breaker rejected the call
    └── HTTPStatusError: Non-2xx response (status, request, body, headers)
        ├── ClientError: 4xx responses (BadRequest, NotFound, ...)
        ├── ServerError: 5xx responses (InternalServerError, ...)
        └── RetryableError: Anything the Retryer may retry

Usage Patterns:
    Configuration errors surface while building a client, before any traffic.
    Everything else is raised from the generated method call (or from the
    awaited coroutine for async clients).

Example:
    >>> try:
    ...     user = api.get_user("42")
    ... except NotFound:
    ...     user = None
    ... except HTTPStatusError as e:
    ...     print(e.status, e.text)
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .http import Request, Response

MAX_BODY_BYTES_LENGTH = 400
MAX_BODY_CHARS_LENGTH = 200

_CHARSET_PATTERN = re.compile(r".*charset=([^\s;]+)", re.IGNORECASE)


class CourierError(Exception):
    """Base exception for all courier errors."""

    pass


class ConfigurationError(CourierError):
    """Raised when an interface or builder configuration is invalid.

    This occurs when:
    - A method has no HTTP method/path declaration
    - More than one parameter is bound as the request body
    - A template placeholder is never bound and has no default
    - Class and method declarations conflict irreconcilably
    """

    def __init__(self, message: str, config_key: str | None = None):
        super().__init__(message)
        self.config_key = config_key


class EncodeError(CourierError):
    """Raised when a request body or template value cannot be encoded."""

    pass


class DecodeError(CourierError):
    """Raised when a response body cannot be decoded into the declared type.

    Decode errors are never retried: the server answered, we just could not
    understand it.
    """

    def __init__(self, message: str, status: int | None = None, request: Request | None = None):
        super().__init__(message)
        self.status = status
        self.request = request


class TransportError(CourierError):
    """Raised by Client implementations on connection failures and timeouts."""

    pass


class BodyConsumedError(CourierError):
    """Raised when a streamed response body is read a second time."""

    pass


class CircuitOpenError(CourierError):
    """Raised when a circuit breaker short-circuits a request."""

    def __init__(self, message: str, name: str | None = None):
        super().__init__(message)
        self.name = name


class HTTPStatusError(CourierError):
    """An HTTP exchange that finished with an unexpected status.

    Attributes:
        status: HTTP status code, or -1 when no response was received
        request: The request that was sent, if known
        response_body: Raw response body bytes
        response_headers: Response headers
    """

    def __init__(
        self,
        status: int,
        message: str,
        request: Request | None = None,
        body: bytes | None = None,
        headers: Mapping[str, tuple[str, ...]] | None = None,
    ):
        super().__init__(message)
        self.status = status
        self.request = request
        self.response_body = body
        self.response_headers = {name: tuple(values) for name, values in (headers or {}).items()}

    @property
    def text(self) -> str:
        """Response body decoded as UTF-8 (empty when there was none)."""
        if not self.response_body:
            return ""
        return self.response_body.decode("utf-8", errors="replace")


class ClientError(HTTPStatusError):
    """4xx response."""


class ServerError(HTTPStatusError):
    """5xx response."""


class BadRequest(ClientError):
    pass


class Unauthorized(ClientError):
    pass


class Forbidden(ClientError):
    pass


class NotFound(ClientError):
    pass


class MethodNotAllowed(ClientError):
    pass


class NotAcceptable(ClientError):
    pass


class Conflict(ClientError):
    pass


class Gone(ClientError):
    pass


class UnsupportedMediaType(ClientError):
    pass


class UnprocessableEntity(ClientError):
    pass


class TooManyRequests(ClientError):
    pass


class InternalServerError(ServerError):
    pass


class NotImplementedStatus(ServerError):
    pass


class BadGateway(ServerError):
    pass


class ServiceUnavailable(ServerError):
    pass


class GatewayTimeout(ServerError):
    pass


class RetryableError(HTTPStatusError):
    """An error the Retryer is allowed to retry.

    Raised for transport failures (status -1) and by ErrorDecoders for
    responses that announce they may succeed later.

    Attributes:
        method: HTTP method of the failed request
        retry_after: Epoch seconds before which a retry should not happen,
            or None to let the Retryer pick its own backoff
    """

    def __init__(
        self,
        status: int,
        message: str,
        method: str | None = None,
        retry_after: float | None = None,
        request: Request | None = None,
        body: bytes | None = None,
        headers: Mapping[str, tuple[str, ...]] | None = None,
    ):
        super().__init__(status, message, request, body, headers)
        self.method = method
        self.retry_after = retry_after


_STATUS_ERRORS: dict[int, type[HTTPStatusError]] = {
    400: BadRequest,
    401: Unauthorized,
    403: Forbidden,
    404: NotFound,
    405: MethodNotAllowed,
    406: NotAcceptable,
    409: Conflict,
    410: Gone,
    415: UnsupportedMediaType,
    422: UnprocessableEntity,
    429: TooManyRequests,
    500: InternalServerError,
    501: NotImplementedStatus,
    502: BadGateway,
    503: ServiceUnavailable,
    504: GatewayTimeout,
}


def _response_charset(headers: Mapping[str, tuple[str, ...]]) -> str:
    for name, values in headers.items():
        if name.lower() == "content-type" and values:
            match = _CHARSET_PATTERN.match(values[0])
            if match:
                return match.group(1)
    return "utf-8"


def _body_preview(
    body: bytes,
    charset: str,
    max_bytes: int = MAX_BODY_BYTES_LENGTH,
    max_chars: int = MAX_BODY_CHARS_LENGTH,
) -> str:
    try:
        text = body.decode(charset, errors="replace")
    except LookupError:
        text = body.decode("utf-8", errors="replace")
    if len(body) < max_bytes:
        return text
    return f"{text[:max_chars]}... ({len(body)} bytes)"


def error_status(
    config_key: str,
    response: Response,
    max_body_bytes: int | None = None,
    max_body_chars: int | None = None,
) -> HTTPStatusError:
    """Build the status-specific exception for a non-2xx response.

    The message carries the status, the request line, the config key and a
    preview of the body, e.g.
    ``[500 Internal Server Error] during [GET] to [http://host/x] [Api#x()]: [boom]``.
    """
    body = b""
    if response.body is not None:
        try:
            body = response.body.read()
        except (BodyConsumedError, OSError, TransportError):
            body = b""

    if response.reason:
        message = f"[{response.status} {response.reason}]"
    else:
        message = f"[{response.status}]"
    request = response.request
    if request is not None:
        message += f" during [{request.method}] to [{request.url}] [{config_key}]"
    else:
        message += f" [{config_key}]"
    preview = _body_preview(
        body,
        _response_charset(response.headers),
        max_body_bytes or MAX_BODY_BYTES_LENGTH,
        max_body_chars or MAX_BODY_CHARS_LENGTH,
    )
    message += f": [{preview}]"

    status = response.status
    exc_type = _STATUS_ERRORS.get(status)
    if exc_type is None:
        if 400 <= status < 500:
            exc_type = ClientError
        elif 500 <= status <= 599:
            exc_type = ServerError
        else:
            exc_type = HTTPStatusError
    return exc_type(status, message, request, body, response.headers)


def error_executing(request: Request, cause: BaseException) -> RetryableError:
    """Wrap a transport failure as a retryable error."""
    return RetryableError(
        -1,
        f"{cause} executing {request.method} {request.url}",
        method=str(request.method),
        request=request,
    )


def error_reading(request: Request | None, response: Response, cause: BaseException) -> DecodeError:
    """Wrap a failure that happened while reading a response body."""
    target = f"{request.method} {request.url}" if request is not None else "response"
    return DecodeError(f"{cause} reading {target}", status=response.status, request=request)
