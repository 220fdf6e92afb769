"""Shared test fixtures and utilities."""

from typing import Annotated, Optional

import pytest
from loguru import logger
from pydantic import BaseModel

from courier import Courier, DefaultRetryer, JsonDecoder, JsonEncoder, Param, get, post
from courier.testing import AsyncMockClient, MockClient


class User(BaseModel):
    name: str


class Users:
    """Interface used across the dispatch tests."""

    @get("/users/{id}?active={active}")
    def get_user(self, id: str, active: Optional[bool] = None) -> User:
        ...

    @get("/users")
    def list_users(self) -> list[User]:
        ...

    @post("/users")
    def create_user(self, user: User) -> User:
        ...

    @get("/users/{id}/name")
    def get_name(self, id: Annotated[str, Param("id")]) -> str:
        ...


class FakeClock:
    """Controllable clock for retry and circuit breaker tests."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeps():
    """Records the pauses of a Retryer instead of sleeping."""
    return []


@pytest.fixture
def retryer(sleeps):
    async def async_sleep(seconds):
        sleeps.append(seconds)

    return DefaultRetryer(period=0.01, max_period=0.05, max_attempts=3, sleep=sleeps.append, async_sleep=async_sleep)


@pytest.fixture
def mock_client():
    """A fresh MockClient."""
    return MockClient()


@pytest.fixture
def async_mock_client():
    return AsyncMockClient()


@pytest.fixture
def builder(mock_client, retryer):
    """Courier builder wired to the mock client with JSON codecs."""
    return Courier.builder().client(mock_client).encoder(JsonEncoder()).decoder(JsonDecoder()).retryer(retryer)


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during the test."""
    messages = []
    handler_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
