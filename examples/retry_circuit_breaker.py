"""Example demonstrating retry and circuit breaker patterns."""

from courier import (
    NEVER_RETRY,
    CircuitOpenError,
    ClientConfig,
    Courier,
    DefaultRetryer,
    HTTPStatusError,
    RetryableError,
    RetryConfig,
    get,
)
from courier.ext.circuit_breaker import CircuitBreakerCapability, CircuitBreakerConfig


class HttpBin:
    @get("/status/{code}")
    def status(self, code: int) -> str:
        ...

    @get("/delay/{seconds}")
    def delay(self, seconds: int) -> str:
        ...


def test_retry():
    """Retry a connection that cannot succeed, with exponential backoff."""
    print("🔄 Testing retry logic...")
    unreachable = (
        Courier.builder()
        .retryer(DefaultRetryer(period=0.2, max_period=1.0, max_attempts=3))
        .log_level("basic")
        .target(HttpBin, "http://localhost:1")
    )

    try:
        unreachable.status(200)
    except RetryableError as e:
        print(f"❌ Request failed after retries: {e}")


def test_circuit_breaker():
    """Open the circuit after repeated 503 responses."""
    print("\n⚡ Testing circuit breaker...")
    breaker = CircuitBreakerCapability(CircuitBreakerConfig(failure_threshold=3, recovery_timeout=10.0), "httpbin")
    protected = (
        Courier.builder()
        .retryer(NEVER_RETRY)
        .add_capability(breaker)
        .target(HttpBin, "https://httpbin.org")
    )

    for attempt in range(5):
        try:
            protected.status(503)
        except CircuitOpenError:
            print(f"🚫 Attempt {attempt + 1}: circuit is open, request skipped")
        except HTTPStatusError as e:
            print(f"❌ Attempt {attempt + 1}: {e.status} (breaker state: {breaker.breaker.state})")


def test_configured_client():
    """Build the same protection from configuration."""
    print("\n⚙️ Building a client from ClientConfig...")
    config = ClientConfig(
        name="httpbin",
        url="https://httpbin.org",
        read_timeout=2.0,
        retry=RetryConfig(attempts=2, backoff="constant", initial_delay=0.5),
    )
    breaker = CircuitBreakerCapability(CircuitBreakerConfig(failure_threshold=2), config.name)
    api = Courier.builder().configure(config).add_capability(breaker).target(HttpBin)

    try:
        api.delay(5)
    except RetryableError as e:
        print(f"⏱️ Timed out: {e}")


if __name__ == "__main__":
    test_retry()
    test_circuit_breaker()
    test_configured_client()
