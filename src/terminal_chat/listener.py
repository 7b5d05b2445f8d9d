"""
Room Listener

Background task that renders live events for the room the session is in,
independently of whether the user is in the middle of typing.

Architecture:
    - Exactly one listener runs per room membership
    - The listener is the only consumer of the session inbox while it runs
    - Control signals travel as plain queue items: Stop reaches the
      listener through its inbox, while ReconnectRequired and Terminate
      reach the session through the session's control queue
    - A ReplayGuard drops live messages that were already shown as part
      of the history replay, so nothing is displayed twice; only events
      queued before the listener started can be such replays

Usage:
    listener = Listener("general", "alice", inbox, control, terminal)
    listener.start()
    ...
    await listener.stop()
"""

import asyncio
import itertools
import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, Optional

from .renderer import (
    render_error,
    render_info,
    render_message,
    render_notice,
    render_system_notice,
)
from .schemas import (
    ForcedDisconnect,
    HistoryEntry,
    LinkDown,
    Message,
    SystemNotice,
)
from .terminal import Terminal

logger = logging.getLogger(__name__)

_tokens = itertools.count(1)


@dataclass(frozen=True)
class Stop:
    """Ask the listener holding this token to exit."""

    token: int


@dataclass(frozen=True)
class ReconnectRequired:
    """The link dropped while the session was in a room."""

    room: str


@dataclass(frozen=True)
class Terminate:
    """The session must end with the given exit status."""

    reason: str
    exit_code: int = 0


class ReplayGuard:
    """
    Remembers the messages shown during a history replay.

    A message can arrive live after it was already included in the
    history reply. Each remembered entry suppresses exactly one live
    duplicate.
    """

    def __init__(self, entries: Iterable[HistoryEntry] = ()):
        self._remaining: Counter = Counter(entries)

    def seen(self, message: Message) -> bool:
        """Return True, consuming the entry, if the message was replayed."""
        entry = message.as_history_entry()
        if self._remaining[entry] > 0:
            self._remaining[entry] -= 1
            return True
        return False


class Listener:
    """
    Room-scoped consumer of the session inbox.

    Attributes:
        room: Name of the room this listener renders events for
        username: Username of the session user
        token: Identifies Stop signals addressed to this listener
    """

    def __init__(
        self,
        room: str,
        username: str,
        inbox: asyncio.Queue,
        control: asyncio.Queue,
        terminal: Terminal,
        replayed: Iterable[HistoryEntry] = (),
    ):
        """
        Initialize the listener.

        Args:
            room: Name of the room to listen to
            username: Username of the session user
            inbox: Queue of ChatEvents and Stop signals
            control: Session control queue for ReconnectRequired/Terminate
            terminal: Terminal to deliver rendered lines to
            replayed: History entries already shown for this room
        """
        self.room = room
        self.username = username
        self.inbox = inbox
        self.control = control
        self.terminal = terminal
        self.token = next(_tokens)
        self._guard = ReplayGuard(replayed)
        self._replay_window: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def alive(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the receive loop as a background task."""
        if self._task is not None:
            raise RuntimeError("Listener already started")
        # Anything pushed after this point was not part of the history reply
        self._replay_window = self.inbox.qsize()
        self._task = asyncio.create_task(
            self.run(), name=f"listener-{self.room}-{self.token}"
        )
        logger.info("Listener %s started for room '%s'", self.token, self.room)

    async def stop(self) -> None:
        """
        Ask the listener to exit and wait until it has.

        Events already queued ahead of the Stop signal are still handled.
        """
        if self._task is None:
            return
        if not self._task.done():
            self.inbox.put_nowait(Stop(self.token))
        await self._task
        logger.info("Listener %s for room '%s' stopped", self.token, self.room)

    async def run(self) -> None:
        """Receive loop; returns when the listener must exit."""
        while True:
            event = await self.inbox.get()
            if not self.handle(event):
                return

    def handle(self, event: object) -> bool:
        """
        Handle one inbox item.

        Returns:
            True to keep listening, False to exit the receive loop
        """
        replay_possible = self._replay_window is None or self._replay_window > 0
        if self._replay_window:
            self._replay_window -= 1

        if isinstance(event, Message):
            if event.room != self.room:
                logger.debug(
                    "Ignoring message for room %s (current: %s)",
                    event.room,
                    self.room,
                )
            elif replay_possible and self._guard.seen(event):
                logger.debug("Skipping replayed message from %s", event.author)
            else:
                self.terminal.deliver(render_message(event, self.username))
            return True

        if isinstance(event, SystemNotice):
            self.terminal.deliver(render_system_notice(event.body))
            return True

        if isinstance(event, ForcedDisconnect):
            logger.warning("Forced disconnect: %s", event.reason)
            self.terminal.show(render_notice(event.reason))
            self.terminal.show(render_info("Leaving chat..."))
            self.control.put_nowait(Terminate(event.reason, exit_code=0))
            return False

        if isinstance(event, LinkDown):
            logger.warning("Link down while in room '%s'", self.room)
            self.terminal.show(
                render_error("Connection to the server was lost")
            )
            self.control.put_nowait(ReconnectRequired(self.room))
            return False

        if isinstance(event, Stop):
            if event.token == self.token:
                return False
            logger.debug("Ignoring stop for listener %s", event.token)
            return True

        logger.debug("Ignoring unrecognized event: %r", event)
        return True
