"""Tests for Targets and service resolution."""

import pytest

from conftest import Users
from courier import (
    ConfigurationError,
    Courier,
    DefaultRetryer,
    EmptyTarget,
    HardCodedTarget,
    LoadBalancingTarget,
    RequestTemplate,
    RoundRobinResolver,
    ServiceResolver,
    TransportError,
)


def resolved(path):
    template = RequestTemplate()
    template.method = "GET"
    template.uri(path)
    return template.resolve({})


class TestHardCodedTarget:
    def test_inserts_base_url(self):
        request = HardCodedTarget(Users, "http://host/api").apply(resolved("/users"))
        assert request.url == "http://host/api/users"

    def test_absolute_template_urls_are_kept(self):
        request = HardCodedTarget(Users, "http://host").apply(resolved("http://other/users"))
        assert request.url == "http://other/users"

    def test_name_defaults_to_url(self):
        assert HardCodedTarget(Users, "http://host").name == "http://host"
        assert HardCodedTarget(Users, "http://host", "users").name == "users"

    def test_equality(self):
        assert HardCodedTarget(Users, "http://host") == HardCodedTarget(Users, "http://host")
        assert HardCodedTarget(Users, "http://host") != HardCodedTarget(Users, "http://other")

    def test_url_is_required(self):
        with pytest.raises(ConfigurationError, match="url is required"):
            HardCodedTarget(Users, "")


class TestEmptyTarget:
    def test_absolute_urls_pass_through(self):
        assert EmptyTarget(Users).apply(resolved("http://host/users")).url == "http://host/users"
        assert EmptyTarget(Users).url is None

    def test_relative_urls_are_rejected(self):
        with pytest.raises(ConfigurationError, match="non-absolute URL"):
            EmptyTarget(Users).apply(resolved("/users"))


class TestLoadBalancing:
    def test_round_robin(self):
        resolver = RoundRobinResolver(["http://a/", "http://b"])
        assert isinstance(resolver, ServiceResolver)
        assert [resolver.resolve("users") for _ in range(3)] == ["http://a", "http://b", "http://a"]

    def test_empty_resolver(self):
        with pytest.raises(ConfigurationError):
            RoundRobinResolver([])

    def test_resolves_on_every_attempt(self, mock_client, sleeps):
        mock_client.fail("GET", "http://a/users/1/name", TransportError("a is down"))
        mock_client.ok("GET", "http://b/users/1/name", "Ann")
        target = LoadBalancingTarget(Users, "users", RoundRobinResolver(["http://a", "http://b"]))
        users = (
            Courier.builder()
            .client(mock_client)
            .retryer(DefaultRetryer(max_attempts=2, sleep=sleeps.append))
            .target(target)
        )

        assert users.get_name("1") == "Ann"
        assert [request.url for request in mock_client.requests] == [
            "http://a/users/1/name",
            "http://b/users/1/name",
        ]

    def test_equality(self):
        resolver = RoundRobinResolver(["http://a"])
        assert LoadBalancingTarget(Users, "users", resolver) == LoadBalancingTarget(Users, "users", resolver)
        assert LoadBalancingTarget(Users, "users", resolver).url is None
