"""
Chat Session

The controlling loop of an authenticated terminal chat session.

States:
    ROOM_MENU     -> pick, create or leave; initial state
    ACTIVE_ROOM   -> history replay, listener running, interactive input
    RECONNECTING  -> link lost; the reconnection controller is running
    TERMINATED    -> the session is over; run() returns the exit status

Architecture:
    - The session task reads terminal lines and issues coordinator requests
    - A Listener task renders live events for the current room
    - The two never share state; they talk through the inbox (Stop) and
      the session control queue (ReconnectRequired, Terminate)
    - While in a room the session waits on whichever comes first, a typed
      line or a control signal, so a dropped link is acted on at once
"""

import asyncio
import logging
import re
from enum import Enum
from typing import List, Optional

from .errors import CoordinatorError, CoordinatorUnavailable, RoomExistsError
from .listener import Listener, ReconnectRequired, Stop, Terminate
from .reconnect import ReconnectionController
from .renderer import (
    RenderedLine,
    render_error,
    render_help,
    render_history,
    render_info,
    render_room_menu,
    render_users,
    room_prompt,
)
from .schemas import ForcedDisconnect, HistoryEntry
from .service import CoordinatorClient
from .terminal import Terminal

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RECONNECT_FAILED = 1

CMD_USERS = "/usuarios"
CMD_BACK = "/volver"
CMD_HISTORY = "/historial"
CMD_HELP = "/ayuda"
CMD_EXIT = "/salir"

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class SessionState(Enum):
    ROOM_MENU = "room_menu"
    ACTIVE_ROOM = "active_room"
    RECONNECTING = "reconnecting"
    TERMINATED = "terminated"


def parse_menu_choice(text: str) -> Optional[int]:
    """
    Parse the leading integer of a menu answer.

    "2", " 2 " and "2abc" all give 2; anything without a leading integer
    gives None.
    """
    match = _LEADING_INT.match(text)
    if not match:
        return None
    return int(match.group(1))


class ChatSession:
    """
    Session state machine for one authenticated user.

    Attributes:
        username: Username of the session user, fixed for the session
        coordinator: Current coordinator handle; replaced after reconnection
        node_identity: Address of the coordinator host
        current_room: Room whose listener is running, or the room to rejoin
                      while reconnecting
        state: Current SessionState
        exit_code: Status returned by run()
    """

    def __init__(
        self,
        username: str,
        coordinator: CoordinatorClient,
        terminal: Terminal,
        inbox: asyncio.Queue,
        reconnector: ReconnectionController,
        session_ref: str,
        node_identity: Optional[str] = None,
    ):
        """
        Initialize the session.

        Args:
            username: Authenticated username
            coordinator: Coordinator handle obtained at login
            terminal: Terminal shared with the listener
            inbox: Queue the link pushes coordinator events into
            reconnector: Controller used when the link drops
            session_ref: Unique reference of this client session
            node_identity: Address of the coordinator host
        """
        self.username = username
        self.coordinator = coordinator
        self.terminal = terminal
        self.inbox = inbox
        self.reconnector = reconnector
        self.session_ref = session_ref
        self.node_identity = node_identity
        self.current_room: Optional[str] = None
        self.state = SessionState.ROOM_MENU
        self.exit_code = EXIT_OK
        self.control: asyncio.Queue = asyncio.Queue()
        self._listener: Optional[Listener] = None
        self._target_room: Optional[str] = None

    @property
    def listener(self) -> Optional[Listener]:
        """The running listener, if any."""
        return self._listener

    async def run(self) -> int:
        """
        Drive the session until it terminates.

        Returns:
            The exit status for the process
        """
        logger.info("Session started for '%s'", self.username)
        while self.state is not SessionState.TERMINATED:
            if self.state is SessionState.ROOM_MENU:
                next_state = await self.show_room_menu()
            elif self.state is SessionState.ACTIVE_ROOM:
                next_state = await self.enter_active_room(self._target_room)
            else:
                next_state = await self.reconnect()
            logger.debug("Session state %s -> %s", self.state, next_state)
            self.state = next_state

        await self._stop_listener()
        await self.terminal.flush()
        logger.info("Session ended with status %d", self.exit_code)
        return self.exit_code

    # Room menu

    async def show_room_menu(self) -> SessionState:
        """Show the room menu and act on the user's choice."""
        try:
            rooms = await self.coordinator.list_rooms()
        except CoordinatorUnavailable as e:
            return self._link_lost(e)

        self.terminal.show_all(render_room_menu(rooms, self.username))
        answer = await self.terminal.read_line("Select an option: ")
        if answer is None:
            return await self._exit()

        choice = parse_menu_choice(answer)
        if choice is not None and 1 <= choice <= len(rooms):
            return await self.join_room(rooms[choice - 1])

        if choice == len(rooms) + 1:
            name = await self.terminal.read_line("New room name: ")
            if name is None:
                return await self._exit()
            if not name:
                self.terminal.show(render_error("Room name cannot be empty."))
                return SessionState.ROOM_MENU
            return await self.create_room(name)

        if choice == len(rooms) + 2:
            return await self._exit()

        self.terminal.show(render_error("Invalid option. Try again."))
        return SessionState.ROOM_MENU

    async def create_room(self, name: str) -> SessionState:
        """Create a room and move into it."""
        try:
            await self.coordinator.create_room(self.username, name)
        except RoomExistsError:
            self.terminal.show(
                render_error(
                    "A room with that name already exists. Try another name."
                )
            )
            return SessionState.ROOM_MENU
        except CoordinatorError as e:
            self.terminal.show(render_error(f"Could not create room: {e.reason}"))
            return SessionState.ROOM_MENU
        except CoordinatorUnavailable as e:
            return self._link_lost(e)

        self.terminal.show(render_info(f"Room '{name}' created."))
        self._target_room = name
        return SessionState.ACTIVE_ROOM

    async def join_room(self, name: str) -> SessionState:
        """Join an existing room and move into it."""
        try:
            await self.coordinator.join_room(self.username, name)
        except CoordinatorError as e:
            self.terminal.show(render_error(f"Could not join room: {e.reason}"))
            return SessionState.ROOM_MENU
        except CoordinatorUnavailable as e:
            return self._link_lost(e)

        self.terminal.show(render_info(f"You joined room '{name}'."))
        self._target_room = name
        return SessionState.ACTIVE_ROOM

    # Active room

    async def enter_active_room(self, name: str) -> SessionState:
        """
        Replay the room history, start its listener and read input.

        Events left in the inbox from before this membership are dropped
        first; anything the coordinator pushes from here on is handled by
        the new listener.
        """
        self._discard_stale_events()
        try:
            history = await self.coordinator.get_history(name)
        except CoordinatorError as e:
            self.terminal.show(render_error(f"Could not load history: {e.reason}"))
            return SessionState.ROOM_MENU
        except CoordinatorUnavailable as e:
            self.current_room = name
            return self._link_lost(e)

        if history:
            self.terminal.show(RenderedLine(""))
            self.terminal.show(RenderedLine("Message history:"))
            self.terminal.show_all(render_history(history, self.username))
            self.terminal.show(RenderedLine(""))

        self.terminal.show(RenderedLine(""))
        self.terminal.show(render_info("Type your messages."))
        self.terminal.show_all(render_help())

        ended = await self._leave_room()
        if ended is not None:
            return ended
        await self._start_listener(name, history)
        return await self._read_loop()

    async def _read_loop(self) -> SessionState:
        prompt = room_prompt(self.current_room)
        while True:
            read = asyncio.ensure_future(self.terminal.read_line(prompt))
            signal = asyncio.ensure_future(self.control.get())
            done, pending = await asyncio.wait(
                {read, signal}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            if signal in done:
                next_state = await self._handle_signal(signal.result())
                if next_state is not None:
                    if read in done and read.result() is not None:
                        # Keep a line typed as the signal arrived for the next read
                        self.terminal.unread(read.result())
                    return next_state
                if read not in done:
                    continue

            next_state = await self._dispatch(read.result())
            if next_state is not None:
                return next_state

    async def _dispatch(self, line: Optional[str]) -> Optional[SessionState]:
        """
        Act on one line typed in a room.

        Returns:
            The next state, or None to keep reading in the room
        """
        if line is None or line == CMD_EXIT:
            return await self._exit()

        if not line:
            return None

        if line == CMD_BACK:
            ended = await self._leave_room()
            if ended is not None:
                return ended
            self.current_room = None
            return SessionState.ROOM_MENU

        if line == CMD_USERS:
            try:
                users = await self.coordinator.list_users()
            except CoordinatorUnavailable as e:
                return await self._link_lost_in_room(e)
            self.terminal.show(RenderedLine(""))
            self.terminal.show_all(render_users(users, self.username))
            return None

        if line == CMD_HISTORY:
            try:
                history = await self.coordinator.get_history(self.current_room)
            except CoordinatorError as e:
                self.terminal.show(
                    render_error(f"Could not load history: {e.reason}")
                )
                return None
            except CoordinatorUnavailable as e:
                return await self._link_lost_in_room(e)
            self.terminal.show(RenderedLine(""))
            self.terminal.show(RenderedLine("Message history:"))
            self.terminal.show_all(render_history(history, self.username))
            return None

        if line == CMD_HELP:
            self.terminal.show(RenderedLine(""))
            self.terminal.show_all(render_help())
            return None

        await self.coordinator.send_message(self.username, self.current_room, line)
        return None

    async def _handle_signal(self, signal: object) -> Optional[SessionState]:
        if isinstance(signal, ReconnectRequired):
            await self._stop_listener()
            self.current_room = signal.room
            return SessionState.RECONNECTING

        if isinstance(signal, Terminate):
            await self._stop_listener()
            return self._terminate(signal)

        logger.warning("Ignoring unexpected control signal: %r", signal)
        return None

    # Reconnection

    async def reconnect(self) -> SessionState:
        """
        Recover the coordinator handle and return to the right place.

        Rejoins the room that was active when the link dropped, or goes
        back to the menu when there was none.
        """
        ended = await self._leave_room()
        if ended is not None:
            return ended
        room = self.current_room

        client = await self.reconnector.reconnect(self.username, self.session_ref)
        if client is None:
            self.terminal.show(
                render_error(
                    "Could not reconnect after several attempts. Exiting..."
                )
            )
            self.current_room = None
            self.exit_code = EXIT_RECONNECT_FAILED
            return SessionState.TERMINATED

        self.coordinator = client
        if room is None:
            return SessionState.ROOM_MENU

        self.terminal.show(render_info(f"Going back to room '{room}'..."))
        try:
            await client.join_room(self.username, room)
        except CoordinatorError as e:
            self.terminal.show(
                render_error(f"Could not rejoin room '{room}': {e.reason}")
            )
            self.current_room = None
            return SessionState.ROOM_MENU
        except CoordinatorUnavailable as e:
            return self._link_lost(e)

        self._target_room = room
        return SessionState.ACTIVE_ROOM

    def _link_lost(self, error: Exception) -> SessionState:
        logger.warning("Coordinator unavailable: %s", error)
        return SessionState.RECONNECTING

    async def _link_lost_in_room(self, error: Exception) -> SessionState:
        room = self.current_room
        ended = await self._leave_room()
        if ended is not None:
            return ended
        self.current_room = room
        return self._link_lost(error)

    def _terminate(self, signal: Terminate) -> SessionState:
        logger.info("Session terminated: %s", signal.reason)
        self.current_room = None
        self.exit_code = signal.exit_code
        return SessionState.TERMINATED

    # Listener management

    async def _start_listener(
        self, room: str, history: List[HistoryEntry]
    ) -> None:
        await self._stop_listener()
        self._listener = Listener(
            room,
            self.username,
            self.inbox,
            self.control,
            self.terminal,
            replayed=history,
        )
        self._listener.start()
        self.current_room = room

    async def _stop_listener(self) -> None:
        if self._listener is not None:
            await self._listener.stop()
            self._listener = None

    async def _leave_room(self) -> Optional[SessionState]:
        """
        Stop the listener and collect the signals it left behind.

        A listener that handled a forced disconnect before its Stop has
        already queued a Terminate; that ends the session wherever the
        session was heading. Any other leftover signal is dropped.

        Returns:
            TERMINATED if a Terminate was pending, otherwise None
        """
        await self._stop_listener()
        terminate = None
        while not self.control.empty():
            signal = self.control.get_nowait()
            if isinstance(signal, Terminate) and terminate is None:
                terminate = signal
            else:
                logger.debug("Dropping stale signal %r", signal)
        if terminate is None:
            return None
        return self._terminate(terminate)

    def _discard_stale_events(self) -> None:
        """
        Drop events queued while no listener was running.

        Forced disconnects are kept; they end the session no matter when
        they arrived.
        """
        kept = []
        while not self.inbox.empty():
            event = self.inbox.get_nowait()
            if isinstance(event, ForcedDisconnect):
                kept.append(event)
            elif not isinstance(event, Stop):
                logger.debug("Discarding stale event %r", event)
        for event in kept:
            self.inbox.put_nowait(event)

    async def _exit(self) -> SessionState:
        """Leave the chat on the user's request."""
        await self._stop_listener()
        self.current_room = None
        self.terminal.show(render_info("Leaving chat..."))
        await self.coordinator.deregister(self.username)
        self.exit_code = EXIT_OK
        return SessionState.TERMINATED
