"""Per-call retry policy.

A Retryer decides, for each :class:`~courier.errors.RetryableError`, whether
the call is attempted again (after an optional pause) or the error is
propagated. Retryers hold per-call state, so the dispatcher ``clone()``s the
configured one at the start of every call.

State machine::

    READY --retryable error, budget left--> RETRYING --...--> RETRYING
      |                                        |
      +------------budget spent----------------+--> EXHAUSTED (propagate)
"""

from __future__ import annotations

import asyncio
import random
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Awaitable, Callable

from .errors import ConfigurationError, RetryableError
from .types import RetryConfig

BACKOFF_STRATEGIES = ("exponential", "linear", "constant")


class RetryState(Enum):
    READY = "ready"
    RETRYING = "retrying"
    EXHAUSTED = "exhausted"


class Retryer(ABC):
    """Decides whether a failed attempt is retried.

    ``continue_or_propagate`` returns to retry and raises ``error`` to give
    up. It may block while backing off; asynchronous dispatch awaits
    ``acontinue_or_propagate`` instead.
    """

    @abstractmethod
    def continue_or_propagate(self, error: RetryableError) -> None:
        ...

    async def acontinue_or_propagate(self, error: RetryableError) -> None:
        await asyncio.to_thread(self.continue_or_propagate, error)

    @abstractmethod
    def clone(self) -> Retryer:
        """A fresh Retryer with the same policy and no attempt state."""


class DefaultRetryer(Retryer):
    """Bounded retries with exponential, linear or constant backoff.

    ``max_attempts`` counts every call to the Client, so ``max_attempts=2``
    means one retry. A ``retry_after`` hint on the error replaces the
    computed backoff, capped at ``max_period``; a hint in the past retries
    immediately.

    Example:
        >>> retryer = DefaultRetryer(period=0.5, max_period=5.0, max_attempts=3, jitter=0.1)
        >>> Courier.builder().retryer(retryer)
    """

    def __init__(
        self,
        period: float = 0.1,
        max_period: float = 1.0,
        max_attempts: int = 5,
        *,
        backoff: str = "exponential",
        multiplier: float = 1.5,
        jitter: float = 0.0,
        max_elapsed: float | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Any] = time.sleep,
        async_sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if backoff not in BACKOFF_STRATEGIES:
            raise ConfigurationError(
                f"Unknown backoff strategy '{backoff}', expected one of {', '.join(BACKOFF_STRATEGIES)}"
            )
        if max_attempts < 1:
            raise ConfigurationError(f"max_attempts must be at least 1, got {max_attempts}")
        self.period = period
        self.max_period = max_period
        self.max_attempts = max_attempts
        self.backoff = backoff
        self.multiplier = multiplier
        self.jitter = jitter
        self.max_elapsed = max_elapsed
        self.clock = clock
        self.sleep = sleep
        self.async_sleep = async_sleep

        self.attempt = 1
        self.slept_for = 0.0
        self.state = RetryState.READY
        self._started = clock()

    @classmethod
    def from_config(cls, config: RetryConfig, **kwargs: Any) -> DefaultRetryer:
        return cls(
            config.initial_delay,
            config.max_delay,
            config.attempts,
            backoff=config.backoff,
            multiplier=config.multiplier,
            jitter=config.jitter,
            max_elapsed=config.max_elapsed,
            **kwargs,
        )

    def continue_or_propagate(self, error: RetryableError) -> None:
        interval = self.next_interval(error)
        if interval is None:
            raise error
        if interval > 0:
            self.sleep(interval)
            self.slept_for += interval

    async def acontinue_or_propagate(self, error: RetryableError) -> None:
        interval = self.next_interval(error)
        if interval is None:
            raise error
        if interval > 0:
            await self.async_sleep(interval)
            self.slept_for += interval

    def next_interval(self, error: RetryableError) -> float | None:
        """Seconds to wait before the next attempt, or None to propagate."""
        if self.attempt >= self.max_attempts:
            self.state = RetryState.EXHAUSTED
            return None
        self.attempt += 1

        if error.retry_after is not None:
            interval = min(error.retry_after - self.clock(), self.max_period)
            interval = max(interval, 0.0)
        else:
            interval = self._backoff_interval()

        if self.max_elapsed is not None and self.clock() - self._started + interval > self.max_elapsed:
            self.state = RetryState.EXHAUSTED
            return None

        self.state = RetryState.RETRYING
        return interval

    def _backoff_interval(self) -> float:
        retries = self.attempt - 1
        if self.backoff == "exponential":
            interval = self.period * self.multiplier ** retries
        elif self.backoff == "linear":
            interval = self.period * retries
        else:
            interval = self.period
        if self.jitter:
            interval *= 1 + self.jitter * (2 * random.random() - 1)
        return max(0.0, min(interval, self.max_period))

    def clone(self) -> DefaultRetryer:
        return DefaultRetryer(
            self.period,
            self.max_period,
            self.max_attempts,
            backoff=self.backoff,
            multiplier=self.multiplier,
            jitter=self.jitter,
            max_elapsed=self.max_elapsed,
            clock=self.clock,
            sleep=self.sleep,
            async_sleep=self.async_sleep,
        )

    def __repr__(self) -> str:
        return (
            f"DefaultRetryer(period={self.period}, max_period={self.max_period}, "
            f"max_attempts={self.max_attempts}, backoff={self.backoff!r})"
        )


class _NeverRetry(Retryer):
    def continue_or_propagate(self, error: RetryableError) -> None:
        raise error

    async def acontinue_or_propagate(self, error: RetryableError) -> None:
        raise error

    def clone(self) -> Retryer:
        return self

    def __repr__(self) -> str:
        return "NEVER_RETRY"


NEVER_RETRY: Retryer = _NeverRetry()
