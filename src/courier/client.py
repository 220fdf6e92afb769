"""httpx-backed transports."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import httpx
from loguru import logger

from .errors import TransportError
from .http import ByteBody, Request, Response, StreamBody
from .types import Options


def _timeout(options: Options) -> httpx.Timeout:
    return httpx.Timeout(options.read_timeout, connect=options.connect_timeout)


def _known_length(response: httpx.Response) -> int | None:
    if response.headers.get("content-encoding"):
        return None
    length = response.headers.get("content-length")
    if length is not None and length.isdigit():
        return int(length)
    return None


def _transport_error(error: httpx.TransportError) -> TransportError:
    return TransportError(str(error) or type(error).__name__)


class HttpxClient:
    """Synchronous Client on top of ``httpx.Client``.

    Response bodies are streamed and read lazily; they are released once read
    or closed.

    Example:
        >>> with HttpxClient(verify=False) as client:
        ...     api = Courier.builder().client(client).target(GitHub, "https://api.github.com")
    """

    def __init__(self, client: httpx.Client | None = None, **client_options: Any):
        self._owns_client = client is None
        self._client = client if client is not None else httpx.Client(**client_options)

    def execute(self, request: Request, options: Options) -> Response:
        http_request = self._client.build_request(
            str(request.method),
            request.url,
            headers=request.headers.items_flat(),
            content=request.body,
            timeout=_timeout(options),
        )
        try:
            response = self._client.send(
                http_request, stream=True, follow_redirects=options.follow_redirects
            )
        except httpx.TransportError as e:
            raise _transport_error(e) from e

        def chunks() -> Iterator[bytes]:
            try:
                yield from response.iter_bytes()
            except httpx.TransportError as e:
                raise _transport_error(e) from e

        return Response.create(
            response.status_code,
            StreamBody(chunks(), _known_length(response), on_close=response.close),
            response.headers.multi_items(),
            response.reason_phrase or None,
            request,
        )

    def close(self) -> None:
        if self._owns_client:
            logger.debug("Closing httpx client")
            self._client.close()

    def __enter__(self) -> HttpxClient:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class AsyncHttpxClient:
    """Asynchronous Client on top of ``httpx.AsyncClient``.

    Bodies are read eagerly, so decoders never block the event loop.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, **client_options: Any):
        self._owns_client = client is None
        self._client = client if client is not None else httpx.AsyncClient(**client_options)

    async def execute(self, request: Request, options: Options) -> Response:
        http_request = self._client.build_request(
            str(request.method),
            request.url,
            headers=request.headers.items_flat(),
            content=request.body,
            timeout=_timeout(options),
        )
        try:
            response = await self._client.send(
                http_request, stream=True, follow_redirects=options.follow_redirects
            )
            try:
                data = await response.aread()
            finally:
                await response.aclose()
        except httpx.TransportError as e:
            raise _transport_error(e) from e

        return Response.create(
            response.status_code,
            ByteBody(data),
            response.headers.multi_items(),
            response.reason_phrase or None,
            request,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            logger.debug("Closing httpx async client")
            await self._client.aclose()

    async def __aenter__(self) -> AsyncHttpxClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
