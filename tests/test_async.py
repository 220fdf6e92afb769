"""Tests for asyncio clients built with AsyncCourier."""

import asyncio
from typing import Optional

import pytest

from conftest import User
from courier import (
    AsyncCourier,
    ConfigurationError,
    DefaultRetryer,
    JsonDecoder,
    JsonEncoder,
    NotFound,
    RetryableError,
    TransportError,
    get,
    post,
)
from courier.errors import ServiceUnavailable


class AsyncUsers:
    @get("/users/{id}?active={active}")
    async def get_user(self, id: str, active: Optional[bool] = None) -> User:
        ...

    @get("/users")
    async def list_users(self) -> list[User]:
        ...

    @post("/users")
    async def create_user(self, user: User) -> User:
        ...


class BlockingUsers:
    @get("/users/{id}")
    def get_user(self, id: str) -> User:
        ...


class SlowClient:
    """AsyncClient that never answers until cancelled."""

    def __init__(self):
        self.started = asyncio.Event()
        self.cancelled = False

    async def execute(self, request, options):
        self.started.set()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled = True
            raise


@pytest.fixture
def async_builder(async_mock_client, retryer):
    return (
        AsyncCourier.builder()
        .client(async_mock_client)
        .encoder(JsonEncoder())
        .decoder(JsonDecoder())
        .retryer(retryer)
    )


@pytest.mark.asyncio
async def test_get_user(async_builder, async_mock_client):
    async_mock_client.ok("GET", "http://host/users/42", {"name": "Ann"})
    users = async_builder.target(AsyncUsers, "http://host")

    user = await users.get_user("42")

    assert user == User(name="Ann")
    async_mock_client.verify("GET", "/users/42")


@pytest.mark.asyncio
async def test_post_json(async_builder, async_mock_client):
    async_mock_client.ok("POST", "/users", {"name": "Bob"})
    users = async_builder.target(AsyncUsers, "http://host")

    created = await users.create_user(User(name="Bob"))

    assert created.name == "Bob"
    assert async_mock_client.requests[0].body == b'{"name":"Bob"}'


@pytest.mark.asyncio
async def test_concurrent_calls(async_builder, async_mock_client):
    async_mock_client.ok("GET", "/users/1", {"name": "one"})
    async_mock_client.ok("GET", "/users/2", {"name": "two"})
    users = async_builder.target(AsyncUsers, "http://host")

    first, second = await asyncio.gather(users.get_user("1"), users.get_user("2"))

    assert (first.name, second.name) == ("one", "two")


@pytest.mark.asyncio
async def test_errors_are_raised_from_the_coroutine(async_builder, async_mock_client):
    users = async_builder.target(AsyncUsers, "http://host")

    call = users.get_user("missing")

    with pytest.raises(NotFound):
        await call


@pytest.mark.asyncio
async def test_dismiss_404(async_builder):
    users = async_builder.dismiss_404().target(AsyncUsers, "http://host")

    assert await users.get_user("missing") is None
    assert await users.list_users() == []


@pytest.mark.asyncio
async def test_retries_use_async_sleep(async_builder, async_mock_client, sleeps):
    async_mock_client.fail("GET", "/users/1", TransportError("reset"))
    async_mock_client.ok("GET", "/users/1", {"name": "Ann"})
    users = async_builder.target(AsyncUsers, "http://host")

    assert (await users.get_user("1")).name == "Ann"
    assert len(async_mock_client.requests) == 2
    assert sleeps == pytest.approx([0.015])


@pytest.mark.asyncio
async def test_retries_are_exhausted(async_mock_client, sleeps):
    async def no_sleep(seconds):
        sleeps.append(seconds)

    async_mock_client.fail("GET", "/users/1", TransportError("down"))
    users = (
        AsyncCourier.builder()
        .client(async_mock_client)
        .retryer(DefaultRetryer(max_attempts=3, async_sleep=no_sleep))
        .target(AsyncUsers, "http://host")
    )

    with pytest.raises(RetryableError) as exc_info:
        await users.get_user("1")

    assert len(async_mock_client.requests) == 3
    assert isinstance(exc_info.value.__cause__, TransportError)


@pytest.mark.asyncio
async def test_server_error_without_retry_after(async_builder, async_mock_client):
    async_mock_client.add("GET", "/users/1", 503, "down for maintenance")
    users = async_builder.target(AsyncUsers, "http://host")

    with pytest.raises(ServiceUnavailable, match="down for maintenance"):
        await users.get_user("1")


@pytest.mark.asyncio
async def test_cancellation_cancels_the_request(async_builder):
    client = SlowClient()
    users = async_builder.client(client).target(AsyncUsers, "http://host")

    task = asyncio.create_task(users.get_user("1"))
    await client.started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert client.cancelled


def test_blocking_methods_are_rejected(async_mock_client):
    with pytest.raises(ConfigurationError, match="only support 'async def' methods"):
        AsyncCourier.builder().client(async_mock_client).target(BlockingUsers, "http://host")
