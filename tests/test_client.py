import copy

import pytest

from volokit.client import (
    CallConfig,
    CallOpt,
    Client,
    ClientBuilder,
    ClientContext,
    Http2Config,
    Role,
)


class RecordingTransport:
    def __init__(self):
        self.calls = []

    async def call(self, cx, req):
        self.calls.append((cx, req))
        return ("response", req)


class TagLayer:
    def __init__(self, name, log):
        self.name = name
        self.log = log

    def layer(self, inner):
        outer = self

        class _Svc:
            async def call(self, cx, req):
                outer.log.append(outer.name)
                return await inner.call(cx, req)

        return _Svc()


def test_http2_defaults_match_documented_values():
    cfg = Http2Config()
    assert cfg.init_stream_window_size == 1024 * 1024 * 2
    assert cfg.init_connection_window_size == 1024 * 1024 * 5
    assert cfg.max_frame_size == 1024 * 16
    assert cfg.http2_keepalive_timeout == 20
    assert cfg.max_concurrent_reset_streams == 10
    assert cfg.retry_canceled_requests is True
    assert cfg.tcp_nodelay is True
    assert cfg.adaptive_window is False
    assert cfg.accept_http1 is False
    assert cfg.http2_keepalive_interval is None
    assert cfg.tcp_keepalive is None


def test_call_config_merge_only_overrides_set_values():
    base = CallConfig(connect_timeout=1.0, read_timeout=2.0)
    base.merge(CallConfig(read_timeout=5.0, write_timeout=3.0))
    assert base == CallConfig(connect_timeout=1.0, read_timeout=5.0, write_timeout=3.0)


def test_call_config_merge_with_empty_keeps_values():
    base = CallConfig(connect_timeout=1.5)
    base.merge(CallConfig())
    assert base == CallConfig(connect_timeout=1.5)


def test_builder_setters_store_values():
    builder = (
        ClientBuilder("svc")
        .http2_init_stream_window_size(100)
        .http2_init_connection_window_size(200)
        .http2_adaptive_window(True)
        .http2_max_frame_size(300)
        .http2_keepalive_interval(4.0)
        .http2_keepalive_timeout(5.0)
        .http2_keepalive_while_idle(True)
        .http2_max_concurrent_reset_streams(7)
        .retry_canceled_requests(False)
        .accept_http1(True)
        .tcp_keepalive(6.0)
        .tcp_nodelay(False)
    )
    assert builder.http2_config == Http2Config(
        init_stream_window_size=100,
        init_connection_window_size=200,
        adaptive_window=True,
        max_frame_size=300,
        http2_keepalive_interval=4.0,
        http2_keepalive_timeout=5.0,
        http2_keepalive_while_idle=True,
        max_concurrent_reset_streams=7,
        retry_canceled_requests=False,
        accept_http1=True,
        tcp_keepalive=6.0,
        tcp_nodelay=False,
    )


@pytest.mark.parametrize("size", [-1, 2**32])
def test_window_size_out_of_range(size):
    with pytest.raises(ValueError):
        ClientBuilder("svc").http2_init_stream_window_size(size)


def test_default_context_is_client_role():
    assert ClientContext().rpc_info.role is Role.CLIENT


@pytest.mark.asyncio
async def test_call_builds_rpc_info():
    transport = RecordingTransport()
    client = (
        ClientBuilder("callee")
        .caller_name("caller")
        .target("127.0.0.1:8080")
        .connect_timeout(1.0)
        .read_timeout(2.0)
        .write_timeout(3.0)
        .build(transport)
    )
    result = await client.call("/pkg.Svc/Method", "req")
    assert result == ("response", "req")
    cx, req = transport.calls[0]
    info = cx.rpc_info
    assert req == "req"
    assert info.role is Role.CLIENT
    assert info.method == "/pkg.Svc/Method"
    assert info.caller.service_name == "caller"
    assert info.callee.service_name == "callee"
    assert info.callee.address == "127.0.0.1:8080"
    assert info.config == CallConfig(1.0, 2.0, 3.0)


@pytest.mark.asyncio
async def test_callopt_applies_to_one_call_only():
    transport = RecordingTransport()
    client = ClientBuilder("callee").read_timeout(2.0).target("a:1").build(transport)
    opt = CallOpt(
        callee_tags={"k": "v"},
        caller_tags={"c": "d"},
        address="b:2",
        config=CallConfig(read_timeout=9.0),
    )
    await client.with_callopt(opt).call("/m", 1)
    await client.call("/m", 2)
    first = transport.calls[0][0].rpc_info
    second = transport.calls[1][0].rpc_info
    assert first.callee.tags == {"k": "v"}
    assert first.caller.tags == {"c": "d"}
    assert first.callee.address == "b:2"
    assert first.config.read_timeout == 9.0
    assert second.callee.tags == {}
    assert second.callee.address == "a:1"
    assert second.config.read_timeout == 2.0


@pytest.mark.asyncio
async def test_copy_drops_pending_callopt():
    transport = RecordingTransport()
    client = ClientBuilder("callee").build(transport)
    client.set_callopt(CallOpt(address="x:1"))
    clone = copy.copy(client)
    assert isinstance(clone, Client)
    await clone.call("/m", None)
    assert transport.calls[0][0].rpc_info.callee.address is None
    await client.call("/m", None)
    assert transport.calls[1][0].rpc_info.callee.address == "x:1"


@pytest.mark.asyncio
async def test_layers_run_in_order_added():
    log = []
    transport = RecordingTransport()
    client = (
        ClientBuilder("svc")
        .layer(TagLayer("foo", log))
        .layer(TagLayer("bar", log))
        .layer(TagLayer("baz", log))
        .build(transport)
    )
    await client.call("/m", "x")
    assert log == ["foo", "bar", "baz"]
    assert len(transport.calls) == 1


@pytest.mark.asyncio
async def test_builder_changes_after_build_do_not_affect_client():
    transport = RecordingTransport()
    builder = ClientBuilder("svc").read_timeout(1.0)
    client = builder.build(transport)
    builder.read_timeout(8.0)
    await client.call("/m", None)
    assert transport.calls[0][0].rpc_info.config.read_timeout == 1.0