"""Authentication interceptors and re-authentication on 401.

``BasicAuthInterceptor`` and ``BearerTokenInterceptor`` add an
``Authorization`` header once per call. ``ReauthenticationCapability`` keeps
a current token, sends it on every attempt and, when a response comes back
``401``, refreshes the token and retries the call once.

Example:
    >>> reauth = ReauthenticationCapability(refresh=lambda: oauth.fetch_token())
    >>> api = Courier.builder().add_capability(reauth).target(Api, "https://api.example.com")
"""

from __future__ import annotations

import asyncio
import base64
import inspect
import threading
from dataclasses import replace
from typing import Awaitable, Callable, Union

from loguru import logger

from ..capability import Capability
from ..codec import ErrorDecoder
from ..errors import ConfigurationError, HTTPStatusError, RetryableError
from ..http import Headers, Request, Response
from ..request_template import RequestTemplate
from ..retryer import Retryer
from ..types import AsyncClient, Client, Options

TokenSource = Union[str, Callable[[], str]]


class BasicAuthInterceptor:
    """Adds HTTP Basic credentials to every request."""

    def __init__(self, username: str, password: str, charset: str = "utf-8"):
        token = base64.b64encode(f"{username}:{password}".encode(charset)).decode("ascii")
        self.header_value = f"Basic {token}"

    def apply(self, template: RequestTemplate) -> None:
        template.remove_header("Authorization")
        template.add_header("Authorization", self.header_value)


class BearerTokenInterceptor:
    """Adds a bearer token, read from a string or a callable on every call."""

    def __init__(self, token: TokenSource, header: str = "Authorization", prefix: str = "Bearer"):
        self.token = token
        self.header = header
        self.prefix = prefix

    def apply(self, template: RequestTemplate) -> None:
        token = self.token() if callable(self.token) else self.token
        template.remove_header(self.header)
        template.add_header(self.header, f"{self.prefix} {token}" if self.prefix else token)


class ReauthenticationRequired(RetryableError):
    """A response rejected the current credentials.

    Attributes:
        error: The exception the wrapped ErrorDecoder produced for the response
    """

    def __init__(self, error: Exception, response: Response):
        request = response.request
        super().__init__(
            response.status,
            str(error),
            method=str(request.method) if request is not None else None,
            request=request,
            body=error.response_body if isinstance(error, HTTPStatusError) else None,
            headers=response.headers,
        )
        self.error = error


class _ReauthenticatingErrorDecoder(ErrorDecoder):
    def __init__(self, delegate: ErrorDecoder, statuses: frozenset[int]):
        self.delegate = delegate
        self.statuses = statuses

    def decode(self, config_key: str, response: Response) -> Exception:
        error = self.delegate.decode(config_key, response)
        if response.status in self.statuses:
            return ReauthenticationRequired(error, response)
        return error


class _ReauthenticatingRetryer(Retryer):
    """Retries a rejected call once, right after refreshing the token."""

    def __init__(self, delegate: Retryer, capability: ReauthenticationCapability):
        self.delegate = delegate
        self.capability = capability
        self.refreshed = False

    def _should_refresh(self, error: RetryableError) -> bool:
        if not isinstance(error, ReauthenticationRequired):
            return False
        if self.refreshed:
            raise error.error
        self.refreshed = True
        return True

    def continue_or_propagate(self, error: RetryableError) -> None:
        if self._should_refresh(error):
            self.capability.refresh_token(error.request)
            return
        self.delegate.continue_or_propagate(error)

    async def acontinue_or_propagate(self, error: RetryableError) -> None:
        if self._should_refresh(error):
            await self.capability.arefresh_token(error.request)
            return
        await self.delegate.acontinue_or_propagate(error)

    def clone(self) -> Retryer:
        return _ReauthenticatingRetryer(self.delegate.clone(), self.capability)


def _with_token(request: Request, header: str, value: str) -> Request:
    headers = [(name, v) for name, v in request.headers.items_flat() if name.lower() != header.lower()]
    headers.append((header, value))
    return replace(request, headers=Headers(headers))


class _TokenClient:
    def __init__(self, delegate: Client, capability: ReauthenticationCapability):
        self.delegate = delegate
        self.capability = capability

    def execute(self, request: Request, options: Options) -> Response:
        token = self.capability.current_token()
        return self.delegate.execute(self.capability.authorize(request, token), options)


class _AsyncTokenClient:
    def __init__(self, delegate: AsyncClient, capability: ReauthenticationCapability):
        self.delegate = delegate
        self.capability = capability

    async def execute(self, request: Request, options: Options) -> Response:
        token = await self.capability.acurrent_token()
        return await self.delegate.execute(self.capability.authorize(request, token), options)


class ReauthenticationCapability(Capability):
    """Sends a refreshable token and refreshes it when a call is rejected.

    Args:
        refresh: Returns a new token; for async clients it may be a coroutine function
        token: Initial token; fetched with ``refresh`` on first use when omitted
        header: Header carrying the token (default: "Authorization")
        prefix: Value prefix (default: "Bearer")
        statuses: Statuses that trigger a refresh (default: 401)
    """

    def __init__(
        self,
        refresh: Callable[[], str | Awaitable[str]],
        token: str | None = None,
        header: str = "Authorization",
        prefix: str = "Bearer",
        statuses: frozenset[int] = frozenset({401}),
    ):
        self.refresh = refresh
        self.token = token
        self.header = header
        self.prefix = prefix
        self.statuses = frozenset(statuses)
        self.refresh_count = 0
        self._lock = threading.Lock()

    def authorize(self, request: Request, token: str) -> Request:
        return _with_token(request, self.header, f"{self.prefix} {token}" if self.prefix else token)

    def current_token(self) -> str:
        with self._lock:
            if self.token is None:
                self.token = self._call_refresh()
            return self.token

    async def acurrent_token(self) -> str:
        if self.token is None:
            await self.arefresh_token(None)
        return self.token

    def refresh_token(self, request: Request | None) -> None:
        self._log(request)
        with self._lock:
            self.token = self._call_refresh()
            self.refresh_count += 1

    async def arefresh_token(self, request: Request | None) -> None:
        if request is not None:
            self._log(request)
        token = self.refresh()
        if inspect.isawaitable(token):
            token = await token
        self.token = token
        if request is not None:
            self.refresh_count += 1

    def _call_refresh(self) -> str:
        token = self.refresh()
        if inspect.isawaitable(token):
            if asyncio.iscoroutine(token):
                token.close()
            raise ConfigurationError("An async refresh function requires an AsyncCourier client")
        return token

    def _log(self, request: Request | None) -> None:
        key = request.config_key if request is not None else None
        logger.bind(config_key=key).info(f"Re-authenticating after rejected call to {key}")

    def enrich_client(self, client: Client) -> Client:
        return _TokenClient(client, self)

    def enrich_async_client(self, client: AsyncClient) -> AsyncClient:
        return _AsyncTokenClient(client, self)

    def enrich_error_decoder(self, error_decoder: ErrorDecoder) -> ErrorDecoder:
        return _ReauthenticatingErrorDecoder(error_decoder, self.statuses)

    def enrich_retryer(self, retryer: Retryer) -> Retryer:
        return _ReauthenticatingRetryer(retryer, self)
