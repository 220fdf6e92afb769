"""Tests for declared status-to-exception mappings."""

import pytest

from courier import ConfigurationError, Courier, ServerError, error_handling, get
from courier.ext.error_handling import AnnotationErrorDecoder, ErrorHandlingCapability, exception_factory


class UserMissing(Exception):
    def __init__(self, message, status):
        super().__init__(message)
        self.status = status


class ApiFailure(Exception):
    pass


class Throttled(Exception):
    def __init__(self, *, response):
        super().__init__(response.text())
        self.response = response


class NeedsTenant(Exception):
    def __init__(self, message, tenant):
        super().__init__(message)
        self.tenant = tenant


@error_handling(codes={404: ApiFailure}, default=ApiFailure)
class Profiles:
    @error_handling(codes={404: UserMissing, 429: Throttled})
    @get("/profiles/{id}")
    def profile(self, id: str) -> str:
        ...

    @get("/profiles")
    def profiles(self) -> str:
        ...


class Plain:
    @get("/plain")
    def plain(self) -> str:
        ...


@error_handling(codes={400: NeedsTenant})
class Ambiguous:
    @get("/things")
    def things(self) -> str:
        ...


@pytest.fixture
def profiles(mock_client):
    return Courier.builder().client(mock_client).add_capability(ErrorHandlingCapability()).target(Profiles, "http://host")


def test_method_mapping_wins_over_class_mapping(profiles, mock_client):
    mock_client.add("GET", "/profiles/1", 404, "no such profile")

    with pytest.raises(UserMissing, match="no such profile") as exc_info:
        profiles.profile("1")

    assert exc_info.value.status == 404


def test_keyword_only_response_argument(profiles, mock_client):
    mock_client.add("GET", "/profiles/1", 429, "slow down")

    with pytest.raises(Throttled, match="slow down") as exc_info:
        profiles.profile("1")

    assert exc_info.value.response.status == 429


def test_class_default_applies_to_other_statuses(profiles, mock_client):
    mock_client.add("GET", "/profiles/1", 500, "boom")
    mock_client.add("GET", "/profiles", 404, "gone")

    with pytest.raises(ApiFailure, match="500"):
        profiles.profile("1")
    with pytest.raises(ApiFailure, match="gone"):
        profiles.profiles()


def test_unmapped_interfaces_use_the_wrapped_decoder(mock_client):
    mock_client.add("GET", "/plain", 503, "down")
    plain = Courier.builder().client(mock_client).add_capability(ErrorHandlingCapability()).target(Plain, "http://host")

    with pytest.raises(ServerError):
        plain.plain()


def test_ambiguous_constructor_fails_at_build(mock_client):
    with pytest.raises(ConfigurationError, match="unknown required parameter 'tenant'"):
        Courier.builder().client(mock_client).add_capability(ErrorHandlingCapability()).target(Ambiguous, "http://host")
    assert mock_client.requests == []


def test_for_interface(mock_client):
    mock_client.add("GET", "/profiles/7", 404, "missing")
    decoder = AnnotationErrorDecoder.for_interface(Profiles)
    profiles = Courier.builder().client(mock_client).error_decoder(decoder).target(Profiles, "http://host")

    with pytest.raises(UserMissing):
        profiles.profile("7")


def test_exception_factory_rejects_non_exceptions():
    with pytest.raises(ConfigurationError, match="not an exception class"):
        exception_factory(str, "Api#get()")


def test_exception_factory_passes_message_to_varargs():
    build = exception_factory(ApiFailure, "Api#get()")

    error = build({"message": "failed", "status": 500})

    assert str(error) == "failed"
