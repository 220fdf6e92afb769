"""Optional capabilities built on courier's public extension points.

Modules:
    circuit_breaker: Fail fast while a backend keeps failing
    metrics: Per-method call counts and latencies
    auth: Credential interceptors and re-authentication on 401
    error_handling: Status-to-exception mapping declared with ``error_handling``
"""
