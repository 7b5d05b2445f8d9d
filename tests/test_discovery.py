"""
Tests for Coordinator Discovery

Tests for name resolution, link re-establishment and the liveness probe.
"""

import asyncio
import json

import pytest

from src.terminal_chat.discovery import CoordinatorDiscovery


class MockWebSocket:
    """Mock WebSocket that answers whereis requests."""

    def __init__(self, handle="coord-1", pong=True):
        self.sent_messages = []
        self.incoming = asyncio.Queue()
        self.handle = handle
        self.pong = pong
        self.closed = False
        self.local_address = ("10.0.0.7", 40000)

    async def send(self, message):
        frame = json.loads(message)
        self.sent_messages.append(frame)
        if frame["type"] == "whereis":
            data = {"status": "ok", "handle": self.handle}
            self.incoming.put_nowait(
                json.dumps({"type": "reply", "ref": frame["ref"], "data": data})
            )

    async def close(self):
        self.closed = True
        self.incoming.put_nowait(None)

    async def ping(self):
        waiter = asyncio.get_running_loop().create_future()
        if self.pong:
            waiter.set_result(None)
        return waiter

    def __aiter__(self):
        return self

    async def __anext__(self):
        raw = await self.incoming.get()
        if raw is None:
            raise StopAsyncIteration
        return raw


class Factory:
    """Hands out a fresh MockWebSocket per connection and records them."""

    def __init__(self, fail=False, **kwargs):
        self.fail = fail
        self.kwargs = kwargs
        self.sockets = []

    async def __call__(self, url):
        if self.fail:
            raise OSError("connection refused")
        websocket = MockWebSocket(**self.kwargs)
        self.sockets.append(websocket)
        return websocket


@pytest.mark.asyncio
async def test_resolve_returns_client_bound_to_handle():
    factory = Factory(handle="coord-1")
    discovery = CoordinatorDiscovery("ws://test:8000", asyncio.Queue(), factory)

    client = await discovery.resolve("chat_server")

    assert client is not None
    assert client.handle == "coord-1"
    assert client.link is discovery.link
    assert factory.sockets[0].sent_messages[0]["data"] == {"name": "chat_server"}
    await discovery.link.close()


@pytest.mark.asyncio
async def test_resolve_passes_timeouts_to_client():
    discovery = CoordinatorDiscovery(
        "ws://test:8000",
        asyncio.Queue(),
        Factory(),
        call_timeout=3.0,
        history_timeout=7.0,
    )

    client = await discovery.resolve("chat_server")

    assert client.call_timeout == 3.0
    assert client.history_timeout == 7.0
    await discovery.link.close()


@pytest.mark.asyncio
async def test_resolve_unregistered_name():
    discovery = CoordinatorDiscovery(
        "ws://test:8000", asyncio.Queue(), Factory(handle=None)
    )

    assert await discovery.resolve("chat_server") is None
    await discovery.link.close()


@pytest.mark.asyncio
async def test_resolve_unreachable_host():
    discovery = CoordinatorDiscovery(
        "ws://test:8000", asyncio.Queue(), Factory(fail=True)
    )

    assert await discovery.resolve("chat_server") is None
    assert discovery.link is None


@pytest.mark.asyncio
async def test_reconnect_link_replaces_link_quietly():
    """The old link is closed without a LinkDown and a new one opened."""
    inbox = asyncio.Queue()
    factory = Factory()
    discovery = CoordinatorDiscovery("ws://test:8000", inbox, factory)
    assert await discovery.reconnect_link()
    old_link = discovery.link

    assert await discovery.reconnect_link()

    assert discovery.link is not old_link
    assert discovery.link.is_open
    assert factory.sockets[0].closed
    assert inbox.empty()
    await discovery.link.close()


@pytest.mark.asyncio
async def test_reconnect_link_failure():
    discovery = CoordinatorDiscovery(
        "ws://test:8000", asyncio.Queue(), Factory(fail=True)
    )
    assert await discovery.reconnect_link() is False


@pytest.mark.asyncio
async def test_ping_over_open_link():
    discovery = CoordinatorDiscovery("ws://test:8000", asyncio.Queue(), Factory())
    await discovery.reconnect_link()

    assert await discovery.ping(1.0) is True
    await discovery.link.close()


@pytest.mark.asyncio
async def test_ping_without_pong_fails():
    discovery = CoordinatorDiscovery(
        "ws://test:8000", asyncio.Queue(), Factory(pong=False)
    )
    await discovery.reconnect_link()

    assert await discovery.ping(0.05) is False
    await discovery.link.close()


@pytest.mark.asyncio
async def test_ping_without_link_probes_tcp_port():
    """With no link open the probe checks the host accepts connections."""
    server = await asyncio.start_server(
        lambda reader, writer: writer.close(), "127.0.0.1", 0
    )
    port = server.sockets[0].getsockname()[1]
    discovery = CoordinatorDiscovery(f"ws://127.0.0.1:{port}", asyncio.Queue())

    assert await discovery.ping(1.0) is True

    server.close()
    await server.wait_closed()
    assert await discovery.ping(1.0) is False


@pytest.mark.asyncio
async def test_caller_address_uses_link_address():
    discovery = CoordinatorDiscovery("ws://test:8000", asyncio.Queue(), Factory())
    await discovery.reconnect_link()

    assert discovery.caller_address == "10.0.0.7:40000"
    await discovery.link.close()
