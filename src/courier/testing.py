"""Testing utilities for courier clients.

:class:`MockClient` and :class:`AsyncMockClient` stand in for the httpx
transports. They replay canned responses keyed by method and URL and keep
every request they receive, so tests can assert on what was sent.

Example:
    >>> mock = MockClient().ok("GET", "/users/42", '{"name": "Ann"}')
    >>> users = Courier.builder().client(mock).decoder(JsonDecoder()).target(Users, "http://localhost")
    >>> users.get_user("42").name
    'Ann'
    >>> mock.verify("GET", "/users/42").url
    'http://localhost/users/42'
"""

from __future__ import annotations

import json
import threading
from collections import deque
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlsplit

from .http import Request, Response
from .types import Options


@dataclass
class MockResponse:
    """A canned response, or an exception to raise instead of responding."""

    method: str
    url: str
    status: int = 200
    body: bytes | None = None
    headers: dict[str, Any] | None = None
    reason: str | None = None
    error: BaseException | None = None

    def to_response(self, request: Request) -> Response:
        if self.error is not None:
            raise self.error
        return Response.create(self.status, self.body, self.headers, self.reason, request)


def _as_bytes(body: Any) -> bytes | None:
    if body is None or isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body).encode("utf-8")


def _path_and_query(url: str) -> str:
    parts = urlsplit(url)
    path = parts.path or "/"
    return f"{path}?{parts.query}" if parts.query else path


class MockClient:
    """Client replaying canned responses.

    Responses registered for the same method and URL are returned in order;
    the last one keeps being returned. URLs may be absolute or just the path
    (with query). With ``sequential=True`` every registered response is used
    exactly once, in registration order, and a request that does not match
    the next one fails the test.

    Requests nothing was registered for get a ``404`` with body
    ``Not mocked: <METHOD> <URL>``.

    Attributes:
        requests: Every request received, in order
    """

    def __init__(self, sequential: bool = False):
        self.sequential = sequential
        self.requests: list[Request] = []
        self._responses: dict[tuple[str, str], deque[MockResponse]] = {}
        self._sequence: deque[MockResponse] = deque()
        self._lock = threading.Lock()

    def add(
        self,
        method: str,
        url: str,
        status: int = 200,
        body: Any = None,
        headers: dict[str, Any] | None = None,
        reason: str | None = None,
    ) -> MockClient:
        """Register a response; ``body`` may be bytes, text or JSON-serializable data."""
        return self._register(MockResponse(method.upper(), url, status, _as_bytes(body), headers, reason))

    def ok(self, method: str, url: str, body: Any = None, headers: dict[str, Any] | None = None) -> MockClient:
        return self.add(method, url, 200, body, headers)

    def fail(self, method: str, url: str, error: BaseException) -> MockClient:
        """Raise ``error`` (typically a TransportError) instead of responding."""
        return self._register(MockResponse(method.upper(), url, error=error))

    def _register(self, response: MockResponse) -> MockClient:
        with self._lock:
            if self.sequential:
                self._sequence.append(response)
            else:
                self._responses.setdefault((response.method, response.url), deque()).append(response)
        return self

    def execute(self, request: Request, options: Options) -> Response:
        return self._respond(request)

    def _respond(self, request: Request) -> Response:
        with self._lock:
            self.requests.append(request)
            canned = self._next_sequential(request) if self.sequential else self._next_keyed(request)
        if canned is None:
            text = f"Not mocked: {request.method} {request.url}"
            return Response.create(404, text, {"Content-Type": "text/plain"}, "Not Found", request)
        return canned.to_response(request)

    def _next_sequential(self, request: Request) -> MockResponse | None:
        if not self._sequence:
            raise AssertionError(f"Unexpected request {request.method} {request.url}: no responses left")
        canned = self._sequence.popleft()
        if not self._matches(canned, request):
            raise AssertionError(
                f"Expected {canned.method} {canned.url} but got {request.method} {request.url}"
            )
        return canned

    def _next_keyed(self, request: Request) -> MockResponse | None:
        method = str(request.method)
        for url in (request.url, _path_and_query(request.url)):
            queue = self._responses.get((method, url))
            if queue:
                return queue.popleft() if len(queue) > 1 else queue[0]
        return None

    @staticmethod
    def _matches(canned: MockResponse, request: Request) -> bool:
        return canned.method == str(request.method) and canned.url in (
            request.url,
            _path_and_query(request.url),
        )

    def requests_for(self, method: str, url: str) -> list[Request]:
        """Received requests matching ``method`` and ``url``."""
        probe = MockResponse(method.upper(), url)
        return [request for request in self.requests if self._matches(probe, request)]

    def verify(self, method: str, url: str, times: int = 1) -> Request | None:
        """Assert ``method url`` was requested ``times`` times; return the last such request."""
        matching = self.requests_for(method, url)
        if len(matching) != times:
            raise AssertionError(f"Expected {times} request(s) to {method.upper()} {url}, got {len(matching)}")
        return matching[-1] if matching else None

    def verify_no_more_requests(self) -> None:
        if self.sequential and self._sequence:
            pending = ", ".join(f"{r.method} {r.url}" for r in self._sequence)
            raise AssertionError(f"Registered responses were never requested: {pending}")

    def reset(self) -> None:
        with self._lock:
            self.requests.clear()
            self._responses.clear()
            self._sequence.clear()


class AsyncMockClient(MockClient):
    """AsyncClient flavour of :class:`MockClient`."""

    async def execute(self, request: Request, options: Options) -> Response:
        return self._respond(request)
