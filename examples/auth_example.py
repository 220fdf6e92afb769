"""Example demonstrating authentication patterns."""

import os
import uuid

from courier import Courier, Unauthorized, get
from courier.ext.auth import BasicAuthInterceptor, BearerTokenInterceptor, ReauthenticationCapability


class HttpBin:
    @get("/basic-auth/{user}/{password}")
    def basic(self, user: str, password: str) -> str:
        ...

    @get("/bearer")
    def bearer(self) -> str:
        ...


# Basic authentication
def basic_auth():
    api = (
        Courier.builder()
        .request_interceptor(BasicAuthInterceptor("courier", "secret"))
        .target(HttpBin, "https://httpbin.org")
    )
    print(api.basic("courier", "secret"))


# Static bearer token, read from the environment on every call
def bearer_token():
    token = lambda: os.getenv("API_TOKEN", "fake-token")  # noqa: E731
    api = Courier.builder().request_interceptor(BearerTokenInterceptor(token)).target(HttpBin, "https://httpbin.org")
    print(api.bearer())


# Tokens refreshed whenever the server answers 401
def reauthentication():
    def fetch_token() -> str:
        # In a real app, this would call the OAuth2 token endpoint
        token = uuid.uuid4().hex
        print(f"🔑 fetched token {token[:8]}...")
        return token

    reauth = ReauthenticationCapability(refresh=fetch_token)
    api = Courier.builder().add_capability(reauth).target(HttpBin, "https://httpbin.org")

    print(api.bearer())
    try:
        api.basic("nobody", "wrong")
    except Unauthorized as e:
        print(f"❌ still unauthorized after {reauth.refresh_count} refresh: {e.status}")


if __name__ == "__main__":
    basic_auth()
    bearer_token()
    reauthentication()
