"""
Coordinator Client Stub

This module provides the typed request surface used by the chat session
to talk to the coordinator. Every operation is either a call, which waits
for a reply within a bounded time, or a cast, which is fire-and-forget.

Operations:
    - list_rooms, create_room, join_room, list_users, authenticate
      (calls, short timeout)
    - get_history (call, longer timeout since payloads may be larger)
    - send_message, deregister (casts)
"""

import logging
from typing import Any, Dict, List, Optional

from .config import CALL_TIMEOUT, HISTORY_TIMEOUT
from .errors import CoordinatorError, RoomExistsError
from .link import CoordinatorLink
from .schemas import (
    AuthenticateRequest,
    AuthenticatedReply,
    BaseRequest,
    CreateRoomRequest,
    DeregisterRequest,
    ErrorReply,
    GetHistoryRequest,
    HistoryEntry,
    HistoryReply,
    JoinRoomRequest,
    ListRoomsRequest,
    ListUsersRequest,
    RoomsListReply,
    SendMessageRequest,
    UsersListReply,
    is_error_reply,
)

logger = logging.getLogger(__name__)

ROOM_EXISTS = "room_exists"


class CoordinatorClient:
    """
    Handle on the coordinator process, bound to one transport link.

    Attributes:
        link: Transport link the requests travel over
        handle: Coordinator process handle every request is addressed to
        call_timeout: Timeout for short metadata calls
        history_timeout: Timeout for history calls
    """

    def __init__(
        self,
        link: CoordinatorLink,
        handle: Any,
        call_timeout: float = CALL_TIMEOUT,
        history_timeout: float = HISTORY_TIMEOUT,
    ):
        self.link = link
        self.handle = handle
        self.call_timeout = call_timeout
        self.history_timeout = history_timeout

    @property
    def is_connected(self) -> bool:
        """Check if the underlying link is usable."""
        return self.link.is_open

    async def _call(
        self, request: BaseRequest, timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Send a request and return the reply data.

        Raises:
            CoordinatorError: If the coordinator replies with an error
            CoordinatorUnavailable: If the link is down or the call times out
        """
        data = await self.link.request(
            request,
            timeout=self.call_timeout if timeout is None else timeout,
            to=self.handle,
        )
        if is_error_reply(data):
            error = ErrorReply.from_dict(data)
            logger.error(
                "Coordinator rejected %s: %s", request.operation, error.reason
            )
            raise CoordinatorError(error.reason, error.message)
        return data

    async def list_rooms(self) -> List[str]:
        """
        Request the names of all existing rooms.

        Returns:
            Room names in coordinator order
        """
        logger.info("Sending list_rooms request")
        data = await self._call(ListRoomsRequest())
        response = RoomsListReply.from_dict(data)
        logger.info(f"Received rooms list with {len(response.rooms)} rooms")
        return response.rooms

    async def create_room(self, username: str, room_name: str) -> None:
        """
        Create a new room and join it.

        Raises:
            RoomExistsError: If a room with this name already exists
            CoordinatorError: If the coordinator rejects the request
        """
        logger.info(f"Sending create_room request for '{room_name}' by {username}")
        try:
            await self._call(CreateRoomRequest(username, room_name))
        except CoordinatorError as e:
            if e.reason == ROOM_EXISTS:
                raise RoomExistsError(room_name) from None
            raise

    async def join_room(self, username: str, room_name: str) -> None:
        """
        Join an existing room.

        Raises:
            CoordinatorError: If the coordinator rejects the request
        """
        logger.info(f"Sending join_room request for room '{room_name}'")
        await self._call(JoinRoomRequest(username, room_name))

    async def get_history(self, room_name: str) -> List[HistoryEntry]:
        """
        Fetch the message history of a room, oldest first.

        Uses the longer history timeout.
        """
        logger.info(f"Requesting history for room '{room_name}'")
        data = await self._call(
            GetHistoryRequest(room_name), timeout=self.history_timeout
        )
        return HistoryReply.from_dict(data).messages

    async def list_users(self) -> List[str]:
        """Request the usernames currently connected."""
        logger.info("Sending list_users request")
        data = await self._call(ListUsersRequest())
        return UsersListReply.from_dict(data).users

    async def authenticate(
        self,
        username: str,
        credential: str,
        session_ref: str,
        caller_address: str,
    ) -> Any:
        """
        Authenticate a user for this session.

        Returns:
            The coordinator handle reported in the reply, or the handle
            this client is bound to when the reply carries none

        Raises:
            CoordinatorError: If authentication is refused
        """
        logger.info(f"Authenticating '{username}' from {caller_address}")
        data = await self._call(
            AuthenticateRequest(username, credential, session_ref, caller_address)
        )
        reply = AuthenticatedReply.from_dict(data)
        return reply.handle if reply.handle is not None else self.handle

    async def send_message(self, username: str, room_name: str, body: str) -> None:
        """
        Send a message to a room.

        This is a fire-and-forget operation. The message itself comes back
        through the listener like any other member's message.
        """
        logger.info(f"Sending message to room '{room_name}'")
        await self.link.cast(
            SendMessageRequest(username, room_name, body), to=self.handle
        )

    async def deregister(self, username: str) -> None:
        """Tell the coordinator the user is leaving (fire-and-forget)."""
        logger.info(f"Deregistering '{username}'")
        await self.link.cast(DeregisterRequest(username), to=self.handle)
