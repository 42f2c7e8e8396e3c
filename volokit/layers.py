"""Request layers: gRPC timeout, user agent and origin rewriting."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Protocol
from urllib.parse import urlsplit, urlunsplit

from .codec import Code, StatusError

GRPC_TIMEOUT_HEADER = "grpc-timeout"
USER_AGENT_HEADER = "user-agent"
VOLO_USER_AGENT = "volo-user-agent"

_SECONDS_PER_UNIT = {
    "H": 3600,
    "M": 60,
    "S": 1,
    "m": 1e-3,
    "u": 1e-6,
    "n": 1e-9,
}
_DIGITS = re.compile(r"\+?[0-9]+")
_U64_MAX = 2**64 - 1

logger = logging.getLogger(__name__)


@dataclass
class HttpRequest:
    """An HTTP request as seen by the layers; header names are lower case."""

    uri: str
    method: str = "POST"
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


class Service(Protocol):
    async def call(self, cx: Any, req: HttpRequest) -> Any: ...


class InvalidTimeoutHeader(ValueError):
    """The grpc-timeout header has a wrong format."""

    def __init__(self, value: str) -> None:
        super().__init__(f"invalid grpc-timeout header: {value!r}")
        self.value = value


def parse_grpc_timeout(headers: Mapping[str, str]) -> float | None:
    """Return the grpc-timeout header in seconds, or None if it is absent."""
    value = headers.get(GRPC_TIMEOUT_HEADER)
    if value is None:
        return None
    if not value or not value.isascii():
        raise InvalidTimeoutHeader(value)
    digits, unit = value[:-1], value[-1]
    if not _DIGITS.fullmatch(digits):
        raise InvalidTimeoutHeader(value)
    amount = int(digits)
    if amount > _U64_MAX or unit not in _SECONDS_PER_UNIT:
        raise InvalidTimeoutHeader(value)
    return amount * _SECONDS_PER_UNIT[unit]


class GrpcTimeout:
    """Runs the inner service under the shorter of the client's and the server's timeout."""

    def __init__(self, inner: Service, server_timeout: float | None = None) -> None:
        self.inner = inner
        self.server_timeout = server_timeout

    async def call(self, cx: Any, req: HttpRequest) -> Any:
        try:
            client_timeout = parse_grpc_timeout(req.headers)
        except InvalidTimeoutHeader:
            logger.debug("error parsing grpc-timeout header")
            client_timeout = None

        timeouts = [t for t in (client_timeout, self.server_timeout) if t is not None]
        if not timeouts:
            return await self.inner.call(cx, req)
        try:
            return await asyncio.wait_for(self.inner.call(cx, req), min(timeouts))
        except asyncio.TimeoutError:
            raise StatusError(Code.DEADLINE_EXCEEDED, "timeout") from None


class GrpcTimeoutLayer:
    """Wraps services in :class:`GrpcTimeout` with a server timeout."""

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    def layer(self, inner: Service) -> GrpcTimeout:
        return GrpcTimeout(inner, self.timeout)


class UserAgent:
    """Sets the user-agent header of every request."""

    def __init__(self, inner: Service, user_agent: str | None = None) -> None:
        self.inner = inner
        self.user_agent = (
            VOLO_USER_AGENT if user_agent is None else f"{user_agent} {VOLO_USER_AGENT}"
        )

    async def call(self, cx: Any, req: HttpRequest) -> Any:
        req.headers[USER_AGENT_HEADER] = self.user_agent
        return await self.inner.call(cx, req)


class AddOrigin:
    """Replaces the scheme and authority of every request's URI with the origin's."""

    def __init__(self, inner: Service, origin: str) -> None:
        self.inner = inner
        self.origin = origin

    async def call(self, cx: Any, req: HttpRequest) -> Any:
        origin = urlsplit(self.origin)
        if not origin.scheme:
            raise ValueError("expected scheme")
        if not origin.netloc:
            raise ValueError("expected authority")
        uri = urlsplit(req.uri)
        new_uri = urlunsplit((origin.scheme, origin.netloc, uri.path, uri.query, uri.fragment))
        return await self.inner.call(cx, replace(req, uri=new_uri))