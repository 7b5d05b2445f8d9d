"""
Tests for the Coordinator Link and Client Stub

Tests for request/reply correlation, timeouts, fire-and-forget casts,
event demultiplexing and link-down reporting, using a mock WebSocket.
"""

import asyncio
import json

import pytest
from websockets.exceptions import ConnectionClosed

from src.terminal_chat.errors import (
    CoordinatorError,
    CoordinatorTimeout,
    CoordinatorUnavailable,
    RoomExistsError,
)
from src.terminal_chat.link import CoordinatorLink
from src.terminal_chat.schemas import (
    HistoryEntry,
    LinkDown,
    ListRoomsRequest,
    Message,
    SystemNotice,
)
from src.terminal_chat.service import CoordinatorClient


class MockWebSocket:
    """Mock WebSocket that answers requests through a responder function."""

    def __init__(self, responder=None, delay=0.0):
        self.sent_messages = []
        self.incoming = asyncio.Queue()
        self.closed = False
        self.responder = responder
        self.delay = delay
        self.local_address = ("192.168.1.20", 50123)

    async def send(self, message):
        if self.closed:
            raise ConnectionClosed(None, None)
        frame = json.loads(message)
        self.sent_messages.append(frame)
        if self.responder is None or "ref" not in frame:
            return
        data = self.responder(frame)
        if data is None:
            return
        reply = json.dumps({"type": "reply", "ref": frame["ref"], "data": data})
        if self.delay:
            asyncio.get_running_loop().call_later(
                self.delay, self.incoming.put_nowait, reply
            )
        else:
            self.incoming.put_nowait(reply)

    def push(self, frame):
        self.incoming.put_nowait(json.dumps(frame))

    def drop(self):
        self.closed = True
        self.incoming.put_nowait(None)

    async def close(self):
        self.drop()

    async def ping(self):
        waiter = asyncio.get_running_loop().create_future()
        waiter.set_result(None)
        return waiter

    def __aiter__(self):
        return self

    async def __anext__(self):
        raw = await self.incoming.get()
        if raw is None:
            raise StopAsyncIteration
        return raw


def ok(**data):
    return {"status": "ok", **data}


async def open_link(websocket, inbox=None):
    async def factory(url):
        return websocket

    link = CoordinatorLink("ws://test:8000", inbox or asyncio.Queue(), factory)
    await link.open()
    return link


# Link


@pytest.mark.asyncio
async def test_open_failure_raises_unavailable():
    async def factory(url):
        raise OSError("connection refused")

    link = CoordinatorLink("ws://test:8000", asyncio.Queue(), factory)
    with pytest.raises(CoordinatorUnavailable):
        await link.open()
    assert not link.is_open


@pytest.mark.asyncio
async def test_request_on_closed_link_raises_unavailable():
    link = CoordinatorLink("ws://test:8000", asyncio.Queue())
    with pytest.raises(CoordinatorUnavailable):
        await link.request(ListRoomsRequest(), timeout=1.0)


@pytest.mark.asyncio
async def test_request_frame_carries_ref_and_handle():
    mock_ws = MockWebSocket(lambda frame: ok(rooms=[]))
    link = await open_link(mock_ws)

    await link.request(ListRoomsRequest(), timeout=1.0, to="coord")

    frame = mock_ws.sent_messages[0]
    assert frame["type"] == "list_rooms"
    assert frame["to"] == "coord"
    assert isinstance(frame["ref"], int)
    await link.close()


@pytest.mark.asyncio
async def test_replies_matched_by_ref():
    """Concurrent requests each get their own reply."""
    mock_ws = MockWebSocket(lambda frame: ok(echo=frame["ref"]))
    link = await open_link(mock_ws)

    first, second = await asyncio.gather(
        link.request(ListRoomsRequest(), timeout=1.0),
        link.request(ListRoomsRequest(), timeout=1.0),
    )

    assert first["echo"] != second["echo"]
    await link.close()


@pytest.mark.asyncio
async def test_pushed_events_go_to_inbox_in_order():
    inbox = asyncio.Queue()
    mock_ws = MockWebSocket()
    link = await open_link(mock_ws, inbox)

    mock_ws.push(
        {
            "type": "chat_message",
            "data": {"room": "general", "author": "bob", "body": "1", "timestamp": 1},
        }
    )
    mock_ws.push({"type": "system_message", "data": {"body": "carol joined"}})

    first = await asyncio.wait_for(inbox.get(), 1.0)
    second = await asyncio.wait_for(inbox.get(), 1.0)
    assert first == Message("general", "bob", "1", 1)
    assert second == SystemNotice("carol joined")
    await link.close()


@pytest.mark.asyncio
async def test_invalid_frames_are_skipped():
    inbox = asyncio.Queue()
    mock_ws = MockWebSocket()
    link = await open_link(mock_ws, inbox)

    mock_ws.incoming.put_nowait("not json")
    mock_ws.incoming.put_nowait("[1, 2]")
    mock_ws.push({"type": "system_message", "data": {"body": "still here"}})

    event = await asyncio.wait_for(inbox.get(), 1.0)
    assert event == SystemNotice("still here")
    await link.close()


@pytest.mark.asyncio
async def test_link_drop_reports_link_down_and_fails_pending():
    """A dropped connection fails waiting requests and pushes LinkDown."""
    inbox = asyncio.Queue()
    mock_ws = MockWebSocket()
    link = await open_link(mock_ws, inbox)

    pending = asyncio.create_task(link.request(ListRoomsRequest(), timeout=5.0))
    await asyncio.sleep(0)
    mock_ws.drop()

    with pytest.raises(CoordinatorUnavailable) as exc_info:
        await pending
    assert not isinstance(exc_info.value, CoordinatorTimeout)
    assert await asyncio.wait_for(inbox.get(), 1.0) == LinkDown()
    assert not link.is_open


@pytest.mark.asyncio
async def test_close_does_not_report_link_down():
    inbox = asyncio.Queue()
    link = await open_link(MockWebSocket(), inbox)

    await link.close()

    assert not link.is_open
    assert inbox.empty()


@pytest.mark.asyncio
async def test_cast_on_dead_link_is_dropped():
    inbox = asyncio.Queue()
    mock_ws = MockWebSocket()
    link = await open_link(mock_ws, inbox)
    mock_ws.drop()
    await asyncio.wait_for(inbox.get(), 1.0)

    assert await link.cast(ListRoomsRequest()) is False


@pytest.mark.asyncio
async def test_send_on_closed_connection():
    """A send rejected by a closing connection is reported as unavailable."""
    mock_ws = MockWebSocket(lambda frame: ok())
    link = await open_link(mock_ws)
    mock_ws.closed = True

    with pytest.raises(CoordinatorUnavailable):
        await link.request(ListRoomsRequest(), timeout=1.0)
    assert await link.cast(ListRoomsRequest()) is False
    assert not link.is_open
    await link.close()


@pytest.mark.asyncio
async def test_ping_and_local_address():
    link = await open_link(MockWebSocket())

    assert await link.ping(1.0) is True
    assert link.local_address == "192.168.1.20:50123"
    await link.close()


# Client stub


@pytest.mark.asyncio
async def test_list_rooms():
    mock_ws = MockWebSocket(lambda frame: ok(rooms=["general", "random"]))
    link = await open_link(mock_ws)
    client = CoordinatorClient(link, "coord")

    assert await client.list_rooms() == ["general", "random"]
    assert mock_ws.sent_messages[0]["to"] == "coord"
    await link.close()


@pytest.mark.asyncio
async def test_create_room_existing_name():
    mock_ws = MockWebSocket(lambda frame: {"status": "error", "reason": "room_exists"})
    link = await open_link(mock_ws)
    client = CoordinatorClient(link, "coord")

    with pytest.raises(RoomExistsError) as exc_info:
        await client.create_room("alice", "general")

    assert exc_info.value.room_name == "general"
    assert isinstance(exc_info.value, CoordinatorError)
    assert isinstance(exc_info.value, ValueError)
    assert mock_ws.sent_messages[0]["data"] == {
        "username": "alice",
        "room_name": "general",
    }
    await link.close()


@pytest.mark.asyncio
async def test_join_room_error_keeps_reason():
    mock_ws = MockWebSocket(
        lambda frame: {"status": "error", "reason": "room_not_found"}
    )
    link = await open_link(mock_ws)
    client = CoordinatorClient(link, "coord")

    with pytest.raises(CoordinatorError) as exc_info:
        await client.join_room("alice", "nowhere")

    assert exc_info.value.reason == "room_not_found"
    assert not isinstance(exc_info.value, RoomExistsError)
    await link.close()


@pytest.mark.asyncio
async def test_call_timeout():
    """A call without reply fails with CoordinatorTimeout."""
    link = await open_link(MockWebSocket(lambda frame: None))
    client = CoordinatorClient(link, "coord", call_timeout=0.05)

    with pytest.raises(CoordinatorTimeout) as exc_info:
        await client.list_users()

    assert isinstance(exc_info.value, CoordinatorUnavailable)
    assert exc_info.value.operation == "list_users"
    await link.close()


@pytest.mark.asyncio
async def test_history_uses_longer_timeout():
    """History replies slower than the call timeout still arrive."""
    mock_ws = MockWebSocket(
        lambda frame: ok(messages=[["bob", "hi", 1]]), delay=0.1
    )
    link = await open_link(mock_ws)
    client = CoordinatorClient(link, "coord", call_timeout=0.02, history_timeout=2.0)

    assert await client.get_history("general") == [HistoryEntry("bob", "hi", 1)]
    with pytest.raises(CoordinatorTimeout):
        await client.list_rooms()
    await link.close()


@pytest.mark.asyncio
async def test_list_users_deduplicated():
    link = await open_link(MockWebSocket(lambda frame: ok(users=["a", "b", "a"])))
    client = CoordinatorClient(link, "coord")

    assert await client.list_users() == ["a", "b"]
    await link.close()


@pytest.mark.asyncio
async def test_authenticate_returns_handle():
    mock_ws = MockWebSocket(lambda frame: ok(handle="coord-2"))
    link = await open_link(mock_ws)
    client = CoordinatorClient(link, "coord")

    handle = await client.authenticate("alice", "pw", "chat_client_1", "10.0.0.5")

    assert handle == "coord-2"
    assert mock_ws.sent_messages[0]["type"] == "authenticate"
    await link.close()


@pytest.mark.asyncio
async def test_send_message_and_deregister_are_casts():
    """Fire-and-forget operations carry no ref and wait for nothing."""
    mock_ws = MockWebSocket(lambda frame: None)
    link = await open_link(mock_ws)
    client = CoordinatorClient(link, "coord", call_timeout=0.01)

    await client.send_message("alice", "general", "hello")
    await client.deregister("alice")

    send, deregister = mock_ws.sent_messages
    assert send["type"] == "send_message"
    assert send["data"]["body"] == "hello"
    assert "ref" not in send
    assert deregister == {"type": "deregister", "data": {"username": "alice"}, "to": "coord"}
    await link.close()
