"""Tests for authentication interceptors and re-authentication."""

from typing import Optional

import pytest

from conftest import User, Users
from courier import AsyncCourier, ConfigurationError, Courier, JsonDecoder, Unauthorized, get
from courier.errors import Forbidden
from courier.ext.auth import BasicAuthInterceptor, BearerTokenInterceptor, ReauthenticationCapability


class AsyncUsers:
    @get("/users/{id}?active={active}")
    async def get_user(self, id: str, active: Optional[bool] = None) -> User:
        ...


def token_sequence(*tokens):
    remaining = list(tokens)

    def refresh():
        return remaining.pop(0)

    return refresh


class TestInterceptors:
    def test_basic_auth(self, builder, mock_client):
        mock_client.ok("GET", "/users/1", {"name": "Ann"})
        users = builder.request_interceptor(BasicAuthInterceptor("user", "pass")).target(Users, "http://host")

        users.get_user("1")

        assert mock_client.requests[0].headers["Authorization"] == ("Basic dXNlcjpwYXNz",)

    def test_bearer_token_from_callable(self, builder, mock_client):
        mock_client.ok("GET", "/users/1", {"name": "Ann"})
        tokens = token_sequence("first", "second")
        users = builder.request_interceptor(BearerTokenInterceptor(tokens)).target(Users, "http://host")

        users.get_user("1")
        users.get_user("1")

        assert [r.headers["Authorization"] for r in mock_client.requests] == [
            ("Bearer first",),
            ("Bearer second",),
        ]

    def test_custom_header_without_prefix(self, builder, mock_client):
        mock_client.ok("GET", "/users/1", {"name": "Ann"})
        interceptor = BearerTokenInterceptor("secret", header="X-Api-Key", prefix="")
        users = builder.request_interceptor(interceptor).target(Users, "http://host")

        users.get_user("1")

        assert mock_client.requests[0].headers["X-Api-Key"] == ("secret",)
        assert "Authorization" not in mock_client.requests[0].headers


class TestReauthentication:
    def test_refreshes_and_retries_once(self, builder, mock_client):
        mock_client.add("GET", "/users/1", 401, "expired")
        mock_client.ok("GET", "/users/1", {"name": "Ann"})
        reauth = ReauthenticationCapability(refresh=token_sequence("t1", "t2"))
        users = builder.add_capability(reauth).target(Users, "http://host")

        assert users.get_user("1").name == "Ann"

        assert [r.headers["Authorization"] for r in mock_client.requests] == [("Bearer t1",), ("Bearer t2",)]
        assert reauth.refresh_count == 1
        assert reauth.token == "t2"

    def test_gives_up_after_one_refresh(self, builder, mock_client):
        mock_client.add("GET", "/users/1", 401, "denied")
        reauth = ReauthenticationCapability(refresh=token_sequence("t2"), token="t1")
        users = builder.add_capability(reauth).target(Users, "http://host")

        with pytest.raises(Unauthorized, match="denied"):
            users.get_user("1")

        assert len(mock_client.requests) == 2
        assert reauth.refresh_count == 1

    def test_refresh_is_bounded_per_call(self, builder, mock_client):
        mock_client.add("GET", "/users/1", 401, "expired")
        mock_client.ok("GET", "/users/1", {"name": "Ann"})
        mock_client.add("GET", "/users/2", 401, "expired")
        mock_client.ok("GET", "/users/2", {"name": "Bob"})
        reauth = ReauthenticationCapability(refresh=token_sequence("t2", "t3"), token="t1")
        users = builder.add_capability(reauth).target(Users, "http://host")

        assert users.get_user("1").name == "Ann"
        assert users.get_user("2").name == "Bob"
        assert reauth.refresh_count == 2

    def test_other_errors_are_not_refreshed(self, builder, mock_client):
        mock_client.add("GET", "/users/1", 403, "forbidden")
        reauth = ReauthenticationCapability(refresh=token_sequence(), token="t1")
        users = builder.add_capability(reauth).target(Users, "http://host")

        with pytest.raises(Forbidden, match="forbidden"):
            users.get_user("1")
        assert reauth.refresh_count == 0

    def test_async_refresh_requires_async_client(self, mock_client):
        async def refresh():
            return "t1"

        reauth = ReauthenticationCapability(refresh=refresh)
        users = Courier.builder().client(mock_client).add_capability(reauth).target(Users, "http://host")

        with pytest.raises(ConfigurationError, match="AsyncCourier"):
            users.get_user("1")

    @pytest.mark.asyncio
    async def test_async_reauthentication(self, async_mock_client):
        tokens = ["t1", "t2"]

        async def refresh():
            return tokens.pop(0)

        async_mock_client.add("GET", "/users/1", 401, "expired")
        async_mock_client.ok("GET", "/users/1", {"name": "Ann"})
        reauth = ReauthenticationCapability(refresh=refresh)
        users = (
            AsyncCourier.builder()
            .client(async_mock_client)
            .decoder(JsonDecoder())
            .add_capability(reauth)
            .target(AsyncUsers, "http://host")
        )

        assert (await users.get_user("1")).name == "Ann"
        assert async_mock_client.requests[-1].headers["Authorization"] == ("Bearer t2",)
        assert reauth.refresh_count == 1
