"""Targets: where the requests of a client are sent.

A Target names the interface being implemented and turns a resolved
RequestTemplate into a Request by inserting its base URL. Targets are asked
once per attempt, so a dynamic target may pick a different host when a call
is retried.
"""

from __future__ import annotations

import itertools
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field

from loguru import logger

from .errors import ConfigurationError
from .http import Request
from .request_template import RequestTemplate
from .template import is_absolute
from .types import ServiceResolver


class Target(ABC):
    """Destination of a client.

    Attributes:
        type: The interface being implemented
        name: Logical name, used as a key for metrics and discovery
        url: Base URL, when it is known without resolving
    """

    type: type
    name: str
    url: str | None

    @abstractmethod
    def apply(self, template: RequestTemplate) -> Request:
        """Insert the base URL into ``template`` and return the final Request."""


@dataclass(frozen=True)
class HardCodedTarget(Target):
    """A fixed base URL.

    Example:
        >>> HardCodedTarget(GitHub, "https://api.github.com")
    """

    type: type
    url: str
    name: str = field(default="")

    def __post_init__(self):
        if not self.url:
            raise ConfigurationError(f"url is required for {self.type.__name__}")
        if not self.name:
            object.__setattr__(self, "name", self.url)

    def apply(self, template: RequestTemplate) -> Request:
        if not is_absolute(template.url()):
            template.target(self.url)
        return template.request()

    def __repr__(self) -> str:
        if self.name == self.url:
            return f"HardCodedTarget(type={self.type.__name__}, url={self.url})"
        return f"HardCodedTarget(type={self.type.__name__}, name={self.name}, url={self.url})"


@dataclass(frozen=True)
class EmptyTarget(Target):
    """No base URL; every call must supply one through a ``Url()`` parameter."""

    type: type
    name: str = "empty:"

    @property
    def url(self) -> str | None:
        return None

    def apply(self, template: RequestTemplate) -> Request:
        if not is_absolute(template.url()):
            raise ConfigurationError(
                f"Request with non-absolute URL not supported with empty target: {template.url()}",
                template.config_key,
            )
        return template.request()


@dataclass(frozen=True, eq=False)
class LoadBalancingTarget(Target):
    """Resolves the base URL of a named service on every attempt.

    Example:
        >>> resolver = RoundRobinResolver(["http://10.0.0.1:8080", "http://10.0.0.2:8080"])
        >>> LoadBalancingTarget(Inventory, "inventory", resolver)
    """

    type: type
    name: str
    resolver: ServiceResolver

    @property
    def url(self) -> str | None:
        return None

    def apply(self, template: RequestTemplate) -> Request:
        if not is_absolute(template.url()):
            base_url = self.resolver.resolve(self.name)
            logger.bind(config_key=template.config_key).debug(
                f"Resolved service '{self.name}' to {base_url}"
            )
            template.target(base_url)
        return template.request()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LoadBalancingTarget):
            return NotImplemented
        return (self.type, self.name, self.resolver) == (other.type, other.name, other.resolver)

    def __hash__(self) -> int:
        return hash((self.type, self.name))


class RoundRobinResolver:
    """Cycles through a fixed list of base URLs; safe to share between threads."""

    def __init__(self, urls: Iterable[str]):
        self.urls = [url.rstrip("/") for url in urls]
        if not self.urls:
            raise ConfigurationError("RoundRobinResolver needs at least one url")
        self._cycle = itertools.cycle(self.urls)
        self._lock = threading.Lock()

    def resolve(self, name: str) -> str:
        with self._lock:
            return next(self._cycle)

    def __repr__(self) -> str:
        return f"RoundRobinResolver({self.urls!r})"


def target_of(type_: type, url: str | None = None, name: str | None = None) -> Target:
    """HardCodedTarget when ``url`` is given, EmptyTarget otherwise."""
    if url is None:
        return EmptyTarget(type_) if name is None else EmptyTarget(type_, name)
    return HardCodedTarget(type_, url, name or "")
