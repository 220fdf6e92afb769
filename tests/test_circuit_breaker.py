"""Tests for the circuit breaker capability."""

import pytest

from conftest import Users
from courier import (
    NEVER_RETRY,
    CircuitOpenError,
    ClientConfig,
    Courier,
    RetryableError,
    TransportError,
)
from courier.errors import InternalServerError, ServiceUnavailable
from courier.ext.circuit_breaker import CircuitBreaker, CircuitBreakerCapability, CircuitBreakerConfig


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(CircuitBreakerConfig(failure_threshold=2, recovery_timeout=10.0), "users", clock)


class TestCircuitBreaker:
    def test_opens_after_consecutive_failures(self, breaker):
        breaker.on_failure()
        assert breaker.state == "closed"
        breaker.on_failure()
        assert breaker.state == "open"

        with pytest.raises(CircuitOpenError, match="'users' is open"):
            breaker.before_call()

    def test_success_resets_the_count(self, breaker):
        breaker.on_failure()
        breaker.on_success()
        breaker.on_failure()

        assert breaker.state == "closed"
        assert breaker.failure_count == 1

    def test_half_open_after_recovery_timeout(self, breaker, clock):
        breaker.on_failure()
        breaker.on_failure()

        clock.advance(10.5)
        breaker.before_call()
        assert breaker.state == "half_open"

        breaker.on_success()
        assert breaker.state == "closed"

    def test_failure_while_half_open_reopens(self, breaker, clock):
        breaker.on_failure()
        breaker.on_failure()
        clock.advance(11)
        breaker.before_call()

        breaker.on_failure()

        assert breaker.state == "open"
        with pytest.raises(CircuitOpenError):
            breaker.before_call()

    def test_half_open_limits_trial_calls(self, clock):
        config = CircuitBreakerConfig(failure_threshold=1, recovery_timeout=1.0, half_open_max_calls=2)
        breaker = CircuitBreaker(config, clock=clock)
        breaker.on_failure()
        clock.advance(2)

        breaker.before_call()
        breaker.before_call()
        with pytest.raises(CircuitOpenError):
            breaker.before_call()


class TestCircuitBreakerCapability:
    def test_rejects_calls_without_touching_the_network(self, mock_client, clock):
        mock_client.add("GET", "/users/1/name", 503, "down")
        capability = CircuitBreakerCapability(CircuitBreakerConfig(failure_threshold=2), "users", clock)
        users = (
            Courier.builder()
            .client(mock_client)
            .retryer(NEVER_RETRY)
            .add_capability(capability)
            .target(Users, "http://host")
        )

        for _ in range(2):
            with pytest.raises(ServiceUnavailable):
                users.get_name("1")
        with pytest.raises(CircuitOpenError):
            users.get_name("1")

        assert len(mock_client.requests) == 2

    def test_transport_errors_count_as_failures(self, mock_client, clock):
        mock_client.fail("GET", "/users/1/name", TransportError("refused"))
        capability = CircuitBreakerCapability(CircuitBreakerConfig(failure_threshold=1), "users", clock)
        users = (
            Courier.builder()
            .client(mock_client)
            .retryer(NEVER_RETRY)
            .add_capability(capability)
            .target(Users, "http://host")
        )

        with pytest.raises(RetryableError):
            users.get_name("1")

        assert capability.breaker.state == "open"

    def test_configured_from_env(self, mock_client):
        mock_client.add("GET", "/users/1/name", 500, "boom")
        environ = {
            "COURIER_USERS_URL": "http://host",
            "COURIER_USERS_CIRCUIT_BREAKER_FAILURE_THRESHOLD": "1",
        }
        users = (
            Courier.builder()
            .client(mock_client)
            .retryer(NEVER_RETRY)
            .configure(ClientConfig.from_env("users", environ=environ))
            .add_capability(CircuitBreakerCapability.from_env("users", environ=environ))
            .target(Users)
        )

        with pytest.raises(InternalServerError):
            users.get_name("1")
        with pytest.raises(CircuitOpenError, match="'users'"):
            users.get_name("1")

    def test_client_config_alone_adds_no_breaker(self, mock_client):
        mock_client.add("GET", "/users/1/name", 500, "boom")
        environ = {"COURIER_USERS_URL": "http://host", "COURIER_USERS_CIRCUIT_BREAKER_FAILURE_THRESHOLD": "1"}
        users = (
            Courier.builder()
            .client(mock_client)
            .retryer(NEVER_RETRY)
            .configure(ClientConfig.from_env("users", environ=environ))
            .target(Users)
        )

        for _ in range(3):
            with pytest.raises(InternalServerError):
                users.get_name("1")


class TestCircuitBreakerConfig:
    def test_defaults(self):
        config = CircuitBreakerConfig()
        assert config.failure_threshold == 5
        assert config.failure_statuses == [500, 502, 503, 504]

    def test_from_env(self):
        environ = {
            "COURIER_USERS_CIRCUIT_BREAKER_FAILURE_THRESHOLD": "2",
            "COURIER_USERS_CIRCUIT_BREAKER_RECOVERY_TIMEOUT": "1.5",
            "COURIER_USERS_CIRCUIT_BREAKER_FAILURE_STATUSES": "502, 503",
            "COURIER_USERS_RETRY_ATTEMPTS": "3",
        }

        config = CircuitBreakerConfig.from_env("users", environ=environ)

        assert config.failure_threshold == 2
        assert config.recovery_timeout == 1.5
        assert config.failure_statuses == [502, 503]

    def test_from_env_without_variables(self):
        assert CircuitBreakerConfig.from_env("users", environ={}) == CircuitBreakerConfig()

    def test_capability_from_env_uses_client_name(self):
        capability = CircuitBreakerCapability.from_env("users", environ={})
        assert capability.breaker.name == "users"
