"""
Tests for the Reconnection Controller

Tests for the exponential backoff schedule and the bounded retry loop.
"""

import pytest

from src.terminal_chat.errors import CoordinatorError, CoordinatorUnavailable
from src.terminal_chat.reconnect import (
    ReconnectAttempt,
    ReconnectionController,
    backoff_schedule,
)


class FakeTerminal:
    def __init__(self):
        self.shown = []

    def show(self, line):
        self.shown.append(line.text)


class FakeClient:
    def __init__(self, error=None):
        self.error = error
        self.authenticated = []

    async def authenticate(self, username, credential, session_ref, caller_address):
        self.authenticated.append((username, credential, session_ref, caller_address))
        if self.error is not None:
            raise self.error
        return "coord-2"


class FakeDiscovery:
    """Answers pings from a script; resolves to a fixed client."""

    def __init__(self, ping_results=(), client=None):
        self.ping_results = list(ping_results)
        self.client = client
        self.relinks = 0
        self.resolved = []
        self.caller_address = "10.0.0.5"

    async def ping(self, timeout):
        if self.ping_results:
            return self.ping_results.pop(0)
        return False

    async def reconnect_link(self):
        self.relinks += 1
        return False

    async def resolve(self, name):
        self.resolved.append(name)
        return self.client


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def make_controller(discovery):
    sleep = RecordingSleep()
    terminal = FakeTerminal()
    controller = ReconnectionController(
        discovery, terminal, coordinator_name="chat_server", sleep=sleep
    )
    return controller, sleep, terminal


def test_backoff_schedule_doubles_from_one_second():
    assert backoff_schedule(5, 1.0) == [
        ReconnectAttempt(1, 1.0, 1.0),
        ReconnectAttempt(2, 1.0, 2.0),
        ReconnectAttempt(3, 1.0, 4.0),
        ReconnectAttempt(4, 1.0, 8.0),
        ReconnectAttempt(5, 1.0, 16.0),
    ]


def test_backoff_schedule_custom_base():
    delays = [attempt.computed_delay for attempt in backoff_schedule(3, 0.5)]
    assert delays == [0.5, 1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_five_attempts():
    """Five failed attempts sleep 1, 2, 4, 8, 16 seconds and report failure."""
    discovery = FakeDiscovery()
    controller, sleep, terminal = make_controller(discovery)

    assert await controller.reconnect("alice", "ref-1") is None

    assert sleep.delays == [1.0, 2.0, 4.0, 8.0, 16.0]
    assert discovery.relinks == 5
    assert discovery.resolved == []
    assert "Reconnection attempt 5/5..." in terminal.shown


@pytest.mark.asyncio
async def test_failed_ping_reestablishes_link():
    discovery = FakeDiscovery(ping_results=[False, True], client=FakeClient())
    controller, sleep, _ = make_controller(discovery)

    client = await controller.reconnect("alice", "ref-1")

    assert client is discovery.client
    assert discovery.relinks == 1
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_success_stops_retrying_and_reauthenticates():
    discovery = FakeDiscovery(ping_results=[True], client=FakeClient())
    controller, sleep, terminal = make_controller(discovery)

    client = await controller.reconnect("alice", "ref-1")

    assert client is discovery.client
    assert sleep.delays == [1.0]
    assert discovery.resolved == ["chat_server"]
    assert client.authenticated == [("alice", "", "ref-1", "10.0.0.5")]
    assert terminal.shown[-1] == "Reconnected!"


@pytest.mark.asyncio
async def test_unresolved_coordinator_counts_as_failed_attempt():
    discovery = FakeDiscovery(ping_results=[True, True, True], client=None)
    controller = ReconnectionController(
        discovery, FakeTerminal(), max_attempts=3, sleep=RecordingSleep()
    )

    assert await controller.reconnect("alice", "ref-1") is None
    assert len(discovery.resolved) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [CoordinatorError("unknown_user"), CoordinatorUnavailable("link closed")],
)
async def test_rejected_reauthentication_is_retried(error):
    discovery = FakeDiscovery(
        ping_results=[True, True], client=FakeClient(error=error)
    )
    controller = ReconnectionController(
        discovery, FakeTerminal(), max_attempts=2, sleep=RecordingSleep()
    )

    assert await controller.reconnect("alice", "ref-1") is None
    assert len(discovery.client.authenticated) == 2
