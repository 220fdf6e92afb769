"""Tests for the httpx-backed transports."""

import json

import httpx
import pytest

from conftest import User, Users
from courier import (
    NEVER_RETRY,
    AsyncCourier,
    AsyncHttpxClient,
    BodyConsumedError,
    Courier,
    HttpxClient,
    JsonDecoder,
    JsonEncoder,
    Options,
    Request,
    RetryableError,
    TransportError,
    get,
)


class AsyncUsers:
    @get("/users/{id}")
    async def get_user(self, id: str) -> User:
        ...


def handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/users/42":
        return httpx.Response(200, json={"name": "Ann"}, headers={"X-Seen": request.headers.get("X-Trace", "")})
    if request.url.path == "/users" and request.method == "POST":
        return httpx.Response(201, json=json.loads(request.content))
    if request.url.path == "/down":
        raise httpx.ConnectError("connection refused", request=request)
    return httpx.Response(404, text="missing")


@pytest.fixture
def transport():
    return httpx.MockTransport(handler)


class TestHttpxClient:
    def test_execute(self, transport):
        client = HttpxClient(httpx.Client(transport=transport))
        request = Request.create("GET", "http://host/users/42", {"X-Trace": "abc"})

        response = client.execute(request, Options())

        assert response.status == 200
        assert response.request is request
        assert response.header("X-Seen") == ("abc",)
        assert json.loads(response.text()) == {"name": "Ann"}

    def test_body_is_streamed_once(self, transport):
        client = HttpxClient(httpx.Client(transport=transport))

        response = client.execute(Request.create("GET", "http://host/users/42"), Options())

        assert not response.body.repeatable
        response.body.read()
        with pytest.raises(BodyConsumedError):
            response.body.read()

    def test_connect_errors_become_transport_errors(self, transport):
        client = HttpxClient(httpx.Client(transport=transport))

        with pytest.raises(TransportError, match="connection refused") as exc_info:
            client.execute(Request.create("GET", "http://host/down"), Options())

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    def test_end_to_end(self, transport):
        with HttpxClient(httpx.Client(transport=transport)) as client:
            users = (
                Courier.builder()
                .client(client)
                .encoder(JsonEncoder())
                .decoder(JsonDecoder())
                .target(Users, "http://host")
            )

            assert users.get_user("42") == User(name="Ann")
            assert users.create_user(User(name="Bob")) == User(name="Bob")

    def test_transport_failures_are_retryable(self, transport):
        class Down:
            @get("/down")
            def down(self) -> str:
                ...

        client = HttpxClient(httpx.Client(transport=transport))
        down = Courier.builder().client(client).retryer(NEVER_RETRY).target(Down, "http://host")

        with pytest.raises(RetryableError) as exc_info:
            down.down()
        assert isinstance(exc_info.value.__cause__, TransportError)


class TestAsyncHttpxClient:
    @pytest.mark.asyncio
    async def test_execute_reads_the_body(self, transport):
        client = AsyncHttpxClient(httpx.AsyncClient(transport=transport))

        response = await client.execute(Request.create("GET", "http://host/users/42"), Options())

        assert response.status == 200
        assert response.body.repeatable
        assert json.loads(response.text()) == {"name": "Ann"}

    @pytest.mark.asyncio
    async def test_connect_errors(self, transport):
        client = AsyncHttpxClient(httpx.AsyncClient(transport=transport))

        with pytest.raises(TransportError):
            await client.execute(Request.create("GET", "http://host/down"), Options())

    @pytest.mark.asyncio
    async def test_end_to_end(self, transport):
        async with AsyncHttpxClient(httpx.AsyncClient(transport=transport)) as client:
            users = AsyncCourier.builder().client(client).decoder(JsonDecoder()).target(AsyncUsers, "http://host")

            assert (await users.get_user("42")).name == "Ann"


class TestCourierOwnsDefaultClient:
    def test_close_releases_the_default_pool(self):
        with Courier.builder().build() as courier:
            pool = courier.owned_client._client
            assert not pool.is_closed

        assert pool.is_closed

    def test_supplied_clients_are_left_open(self, transport):
        http = httpx.Client(transport=transport)
        courier = Courier.builder().client(HttpxClient(http)).build()

        courier.close()

        assert courier.owned_client is None
        assert not http.is_closed
        http.close()

    @pytest.mark.asyncio
    async def test_async_courier_aclose(self):
        async with AsyncCourier.builder().build() as courier:
            pool = courier.owned_client._client

        assert pool.is_closed
        with pytest.raises(TypeError, match="aclose"):
            courier.close()
