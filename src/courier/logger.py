"""Request and response logging through loguru.

Every message is bound with the method's ``config_key`` and written at DEBUG,
so it can be routed or filtered with ordinary loguru sinks::

    from loguru import logger
    logger.add("http.log", level="DEBUG", filter=lambda r: "config_key" in r["extra"])
"""

from __future__ import annotations

from enum import Enum

from loguru import logger

from .http import Request, Response


class LogLevel(Enum):
    """How much of each exchange is logged.

    NONE: Nothing
    BASIC: Request line, response status and elapsed time
    HEADERS: BASIC plus request and response headers
    FULL: HEADERS plus bodies
    """

    NONE = 0
    BASIC = 1
    HEADERS = 2
    FULL = 3

    @classmethod
    def parse(cls, value: LogLevel | str) -> LogLevel:
        if isinstance(value, LogLevel):
            return value
        return cls[value.upper()]


class HttpLogger:
    """Writes request, response and retry events for one client."""

    def log_request(self, config_key: str, level: LogLevel, request: Request) -> None:
        log = logger.bind(config_key=config_key)
        log.debug(f"[{config_key}] ---> {request.method} {request.url} HTTP/1.1")
        if level.value >= LogLevel.HEADERS.value:
            for name, value in request.headers.items_flat():
                log.debug(f"[{config_key}] {name}: {value}")
            body_length = len(request.body) if request.body is not None else 0
            if level is LogLevel.FULL and request.body is not None:
                log.debug(f"[{config_key}] ")
                log.debug(f"[{config_key}] {request.body_text()}")
            log.debug(f"[{config_key}] ---> END HTTP ({body_length}-byte body)")

    def log_retry(self, config_key: str, level: LogLevel) -> None:
        logger.bind(config_key=config_key).debug(f"[{config_key}] ---> RETRYING")

    def log_and_rebuffer_response(
        self,
        config_key: str,
        level: LogLevel,
        response: Response,
        elapsed_ms: float,
    ) -> Response:
        """Log a response; FULL level reads the body and returns a rebuffered copy."""
        log = logger.bind(config_key=config_key)
        reason = f" {response.reason}" if response.reason else ""
        log.debug(f"[{config_key}] <--- HTTP/1.1 {response.status}{reason} ({elapsed_ms:.0f}ms)")
        if level.value < LogLevel.HEADERS.value:
            return response

        for name, value in response.headers.items_flat():
            log.debug(f"[{config_key}] {name}: {value}")

        body_length = 0
        if level is LogLevel.FULL and response.body is not None and response.status not in (204, 205):
            response = response.rebuffer()
            data = response.body.read()
            body_length = len(data)
            if body_length:
                log.debug(f"[{config_key}] ")
                log.debug(f"[{config_key}] {data.decode(response.charset, errors='replace')}")
        log.debug(f"[{config_key}] <--- END HTTP ({body_length}-byte body)")
        return response

    def log_io_exception(
        self, config_key: str, level: LogLevel, error: BaseException, elapsed_ms: float
    ) -> None:
        logger.bind(config_key=config_key).debug(
            f"[{config_key}] <--- ERROR {type(error).__name__}: {error} ({elapsed_ms:.0f}ms)"
        )
