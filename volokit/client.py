"""gRPC client: per-call options, call context and a builder for clients."""

from __future__ import annotations

import copy
import enum
from dataclasses import dataclass, field, replace
from typing import Any, Protocol

DEFAULT_STREAM_WINDOW_SIZE = 1024 * 1024 * 2
DEFAULT_CONN_WINDOW_SIZE = 1024 * 1024 * 5
DEFAULT_MAX_FRAME_SIZE = 1024 * 16
DEFAULT_KEEPALIVE_TIMEOUT = 20.0
DEFAULT_MAX_CONCURRENT_RESET_STREAMS = 10

_U32_MAX = 0xFFFFFFFF


class Service(Protocol):
    async def call(self, cx: Any, req: Any) -> Any: ...


class Layer(Protocol):
    def layer(self, inner: Service) -> Service: ...


class Role(enum.Enum):
    """Which side of a call a context belongs to."""

    CLIENT = "client"
    SERVER = "server"


@dataclass
class CallConfig:
    """Timeouts of one call, in seconds; None means no timeout."""

    connect_timeout: float | None = None
    read_timeout: float | None = None
    write_timeout: float | None = None

    def merge(self, other: CallConfig) -> None:
        """Take every timeout that ``other`` sets."""
        if other.connect_timeout is not None:
            self.connect_timeout = other.connect_timeout
        if other.read_timeout is not None:
            self.read_timeout = other.read_timeout
        if other.write_timeout is not None:
            self.write_timeout = other.write_timeout


@dataclass
class CallOpt:
    """Options that apply to a single call only."""

    callee_tags: dict[Any, Any] = field(default_factory=dict)
    address: Any = None
    config: CallConfig = field(default_factory=CallConfig)
    caller_tags: dict[Any, Any] = field(default_factory=dict)


@dataclass
class Http2Config:
    """Settings of the underlying HTTP/2 connection."""

    init_stream_window_size: int = DEFAULT_STREAM_WINDOW_SIZE
    init_connection_window_size: int = DEFAULT_CONN_WINDOW_SIZE
    adaptive_window: bool = False
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
    http2_keepalive_interval: float | None = None
    http2_keepalive_timeout: float = DEFAULT_KEEPALIVE_TIMEOUT
    http2_keepalive_while_idle: bool = False
    max_concurrent_reset_streams: int = DEFAULT_MAX_CONCURRENT_RESET_STREAMS
    retry_canceled_requests: bool = True
    accept_http1: bool = False
    tcp_keepalive: float | None = None
    tcp_nodelay: bool = True


@dataclass
class Endpoint:
    """One side of a call: a service name, an optional address and tags."""

    service_name: str
    address: Any = None
    tags: dict[Any, Any] = field(default_factory=dict)


@dataclass
class RpcInfo:
    """Everything known about a call before it is made."""

    role: Role
    method: str
    caller: Endpoint
    callee: Endpoint
    config: CallConfig


@dataclass
class ClientContext:
    """Context passed through the middleware of a client call."""

    rpc_info: RpcInfo = field(
        default_factory=lambda: RpcInfo(
            Role.CLIENT, "", Endpoint(""), Endpoint(""), CallConfig()
        )
    )


@dataclass(frozen=True)
class _ClientInner:
    callee_name: str
    caller_name: str
    rpc_config: CallConfig
    target: Any


class Client:
    """A client for a gRPC service.

    Copying a client is cheap and shares its transport; a pending
    :class:`CallOpt` is not carried over to the copy.
    """

    def __init__(self, inner: _ClientInner, transport: Service) -> None:
        self._inner = inner
        self._transport = transport
        self._callopt: CallOpt | None = None

    def __copy__(self) -> Client:
        return Client(self._inner, self._transport)

    @property
    def callee_name(self) -> str:
        return self._inner.callee_name

    @property
    def caller_name(self) -> str:
        return self._inner.caller_name

    def set_callopt(self, callopt: CallOpt) -> None:
        """Use ``callopt`` for the next call only."""
        self._callopt = callopt

    def with_callopt(self, callopt: CallOpt) -> Client:
        """Set the options of the next call and return the client."""
        self.set_callopt(callopt)
        return self

    def _make_rpc_info(self, method: str) -> RpcInfo:
        caller = Endpoint(self._inner.caller_name)
        callee = Endpoint(self._inner.callee_name, address=self._inner.target)
        config = replace(self._inner.rpc_config)
        callopt, self._callopt = self._callopt, None
        if callopt is not None:
            caller.tags.update(callopt.caller_tags)
            callee.tags.update(callopt.callee_tags)
            if callopt.address is not None:
                callee.address = callopt.address
            config.merge(callopt.config)
        return RpcInfo(Role.CLIENT, method, caller, callee, config)

    async def call(self, path: str, request: Any) -> Any:
        """Send ``request`` to the method at ``path`` through the transport."""
        cx = ClientContext(self._make_rpc_info(path))
        return await self._transport.call(cx, request)


def _u32(value: int, what: str) -> int:
    value = int(value)
    if not 0 <= value <= _U32_MAX:
        raise ValueError(f"{what} must fit in an unsigned 32-bit integer, got {value}")
    return value


def _non_negative(value: int, what: str) -> int:
    value = int(value)
    if value < 0:
        raise ValueError(f"{what} must not be negative, got {value}")
    return value


class ClientBuilder:
    """Collects the settings of a :class:`Client`; every setter returns the builder."""

    def __init__(self, service_name: str) -> None:
        self.http2_config = Http2Config()
        self.rpc_config = CallConfig()
        self.callee_name = str(service_name)
        self._caller_name = ""
        self._target: Any = None
        self._layers: list[Layer] = []

    def http2_init_stream_window_size(self, size: int) -> ClientBuilder:
        self.http2_config.init_stream_window_size = _u32(size, "stream window size")
        return self

    def http2_init_connection_window_size(self, size: int) -> ClientBuilder:
        self.http2_config.init_connection_window_size = _u32(size, "connection window size")
        return self

    def http2_adaptive_window(self, enabled: bool) -> ClientBuilder:
        self.http2_config.adaptive_window = bool(enabled)
        return self

    def http2_max_frame_size(self, size: int) -> ClientBuilder:
        self.http2_config.max_frame_size = _u32(size, "max frame size")
        return self

    def http2_keepalive_interval(self, interval: float | None) -> ClientBuilder:
        self.http2_config.http2_keepalive_interval = interval
        return self

    def http2_keepalive_timeout(self, timeout: float) -> ClientBuilder:
        self.http2_config.http2_keepalive_timeout = timeout
        return self

    def http2_keepalive_while_idle(self, enabled: bool) -> ClientBuilder:
        self.http2_config.http2_keepalive_while_idle = bool(enabled)
        return self

    def http2_max_concurrent_reset_streams(self, size: int) -> ClientBuilder:
        self.http2_config.max_concurrent_reset_streams = _non_negative(
            size, "max concurrent reset streams"
        )
        return self

    def retry_canceled_requests(self, enabled: bool) -> ClientBuilder:
        self.http2_config.retry_canceled_requests = bool(enabled)
        return self

    def accept_http1(self, accept: bool) -> ClientBuilder:
        self.http2_config.accept_http1 = bool(accept)
        return self

    def tcp_keepalive(self, duration: float | None) -> ClientBuilder:
        self.http2_config.tcp_keepalive = duration
        return self

    def tcp_nodelay(self, nodelay: bool) -> ClientBuilder:
        self.http2_config.tcp_nodelay = bool(nodelay)
        return self

    def connect_timeout(self, timeout: float) -> ClientBuilder:
        self.rpc_config.connect_timeout = timeout
        return self

    def read_timeout(self, timeout: float) -> ClientBuilder:
        self.rpc_config.read_timeout = timeout
        return self

    def write_timeout(self, timeout: float) -> ClientBuilder:
        self.rpc_config.write_timeout = timeout
        return self

    def caller_name(self, name: str) -> ClientBuilder:
        self._caller_name = str(name)
        return self

    def target(self, address: Any) -> ClientBuilder:
        self._target = address
        return self

    def layer(self, layer: Layer) -> ClientBuilder:
        """Add a layer after the existing ones: requests pass earlier layers first."""
        self._layers.append(layer)
        return self

    def build(self, transport: Service) -> Client:
        """Wrap ``transport`` in the layers and return the client."""
        service = transport
        for layer in reversed(self._layers):
            service = layer.layer(service)
        inner = _ClientInner(
            callee_name=self.callee_name,
            caller_name=self._caller_name,
            rpc_config=copy.copy(self.rpc_config),
            target=self._target,
        )
        return Client(inner, service)