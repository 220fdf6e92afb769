"""Tests for encoders, decoders and error decoders."""

from typing import Optional

import pytest

from conftest import User
from courier import (
    DecodeError,
    DefaultDecoder,
    DefaultEncoder,
    DefaultErrorDecoder,
    EncodeError,
    HTTPStatusError,
    JsonDecoder,
    JsonEncoder,
    NotFound,
    OptionalDecoder,
    Request,
    RequestTemplate,
    Response,
)
from courier.errors import ServiceUnavailable, TooManyRequests


def post_template():
    template = RequestTemplate()
    template.method = "POST"
    template.uri("/users")
    return template


class TestEncoders:
    def test_default_encoder_strings_and_bytes(self):
        template = post_template()
        DefaultEncoder().encode("hello", str, template)
        assert template.body == b"hello"

        DefaultEncoder().encode(b"\x00\x01", bytes, template)
        assert template.body == b"\x00\x01"

    def test_default_encoder_forms(self):
        template = post_template()

        DefaultEncoder().encode({"name": "a b", "tags": ["x", "y"], "skip": None}, dict, template)

        assert template.body == b"name=a+b&tags=x&tags=y"
        assert template.headers["Content-Type"] == ("application/x-www-form-urlencoded",)

    def test_default_encoder_rejects_other_types(self):
        with pytest.raises(EncodeError, match="User is not a type supported"):
            DefaultEncoder().encode(User(name="Ann"), User, post_template())

    def test_json_encoder(self):
        template = post_template()

        JsonEncoder().encode(User(name="Ann"), User, template)

        assert template.body == b'{"name":"Ann"}'
        assert template.headers["Content-Type"] == ("application/json",)

    def test_json_encoder_keeps_declared_content_type(self):
        template = post_template()
        template.add_header("Content-Type", "application/vnd.api+json")

        JsonEncoder().encode({"a": 1}, dict, template)

        assert template.headers["Content-Type"] == ("application/vnd.api+json",)

    def test_json_encoder_errors(self):
        with pytest.raises(EncodeError, match="Cannot serialize"):
            JsonEncoder().encode(object(), None, post_template())


class TestDecoders:
    def test_default_decoder(self):
        response = Response.create(200, "plain text")

        assert DefaultDecoder().decode(response, str) == "plain text"
        assert DefaultDecoder().decode(Response.create(200, b"\x01"), bytes) == b"\x01"
        assert DefaultDecoder().decode(Response.create(404), list[str]) == []

    def test_default_decoder_rejects_models(self):
        with pytest.raises(DecodeError, match="not a type supported"):
            DefaultDecoder().decode(Response.create(200, "{}"), User)

    def test_json_decoder(self):
        response = Response.create(200, '[{"name": "Ann"}, {"name": "Bob"}]')

        assert JsonDecoder().decode(response, list[User]) == [User(name="Ann"), User(name="Bob")]

    def test_json_decoder_empty_values(self):
        assert JsonDecoder().decode(Response.create(204), list[User]) == []
        assert JsonDecoder().decode(Response.create(200, "  "), dict[str, int]) == {}
        assert JsonDecoder().decode(Response.create(200, "  "), User) is None

    def test_json_decoder_errors(self):
        request = Request.create("GET", "http://host/users/1")
        response = Response.create(200, '{"nome": "Ann"}', request=request)

        with pytest.raises(DecodeError, match="http://host/users/1") as exc_info:
            JsonDecoder().decode(response, User)

        assert exc_info.value.status == 200
        assert exc_info.value.request is request

    def test_optional_decoder(self):
        decoder = OptionalDecoder(JsonDecoder())

        assert decoder.decode(Response.create(404), Optional[User]) is None
        assert decoder.decode(Response.create(200, '{"name": "Ann"}'), Optional[User]) == User(name="Ann")


class TestDefaultErrorDecoder:
    def test_status_specific_errors(self):
        decoder = DefaultErrorDecoder()
        request = Request.create("GET", "http://host/users/1")

        error = decoder.decode("Api#get(str)", Response.create(404, "nope", reason="Not Found", request=request))

        assert isinstance(error, NotFound)
        assert str(error) == "[404 Not Found] during [GET] to [http://host/users/1] [Api#get(str)]: [nope]"
        assert error.request is request

    def test_unknown_statuses(self):
        error = DefaultErrorDecoder().decode("Api#get()", Response.create(302, "moved"))

        assert type(error) is HTTPStatusError
        assert str(error) == "[302] [Api#get()]: [moved]"

    def test_retry_after_makes_errors_retryable(self, clock):
        error = DefaultErrorDecoder(clock=clock).decode(
            "Api#get()", Response.create(429, "slow down", {"Retry-After": "30"})
        )

        assert not isinstance(error, TooManyRequests)
        assert error.status == 429
        assert error.retry_after == clock.now + 30
        assert error.text == "slow down"

    def test_long_bodies_are_truncated(self):
        decoder = DefaultErrorDecoder(max_body_bytes=10, max_body_chars=5)

        error = decoder.decode("Api#get()", Response.create(503, "x" * 20))

        assert isinstance(error, ServiceUnavailable)
        assert str(error).endswith(": [xxxxx... (20 bytes)]")
        assert error.response_body == b"x" * 20
