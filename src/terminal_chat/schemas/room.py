"""
Room Schema Definitions

This module defines the message structures for room-related operations
including room listing, creation, joining and history retrieval.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Union

from .base import BaseRequest, BaseReply

Timestamp = Union[int, float, str]


@dataclass
class ListRoomsRequest(BaseRequest):
    """
    Request to list all rooms known to the coordinator.

    This is a simple request with no additional parameters.
    The base class to_dict() handles empty requests automatically.
    """

    @property
    def _message_type(self) -> str:
        """Return the message type for list rooms requests."""
        return "list_rooms"


@dataclass
class RoomsListReply(BaseReply):
    """
    Reply containing the names of existing rooms.

    Attributes:
        rooms: Room names in the order the coordinator reports them
    """

    rooms: List[str]

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "RoomsListReply":
        """Create from reply data dictionary."""
        return cls(rooms=[str(room) for room in data.get("rooms", [])])


@dataclass
class CreateRoomRequest(BaseRequest):
    """
    Request to create a new room.

    Attributes:
        username: Username of the user creating the room
        room_name: Name of the room to create
    """

    username: str
    room_name: str

    @property
    def _message_type(self) -> str:
        """Return the message type for room creation requests."""
        return "create_room"


@dataclass
class JoinRoomRequest(BaseRequest):
    """
    Request to join an existing room.

    Attributes:
        username: Username of the joining user
        room_name: Name of the room to join
    """

    username: str
    room_name: str

    @property
    def _message_type(self) -> str:
        """Return the message type for join room requests."""
        return "join_room"


@dataclass
class GetHistoryRequest(BaseRequest):
    """
    Request for the message history of a room.

    Attributes:
        room_name: Name of the room
    """

    room_name: str

    @property
    def _message_type(self) -> str:
        return "get_history"


@dataclass(frozen=True)
class HistoryEntry:
    """
    A message stored in a room's history.

    Attributes:
        author: Username of the sender
        body: The message content
        timestamp: Epoch milliseconds or an ISO 8601 string
    """

    author: str
    body: str
    timestamp: Timestamp

    @classmethod
    def from_wire(cls, item: Any) -> "HistoryEntry":
        """
        Build an entry from either an object or an [author, body, ts] triple.

        Raises:
            ValueError: If the item has neither shape
        """
        if isinstance(item, dict):
            return cls(
                author=str(item["author"]),
                body=str(item["body"]),
                timestamp=item["timestamp"],
            )
        if isinstance(item, (list, tuple)) and len(item) == 3:
            author, body, timestamp = item
            return cls(author=str(author), body=str(body), timestamp=timestamp)
        raise ValueError(f"Malformed history entry: {item!r}")


@dataclass
class HistoryReply(BaseReply):
    """
    Reply containing a room's history, oldest message first.

    Attributes:
        messages: History entries in their original order
    """

    messages: List[HistoryEntry]

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "HistoryReply":
        """Create from reply data dictionary."""
        return cls(
            messages=[
                HistoryEntry.from_wire(item)
                for item in data.get("messages", [])
            ]
        )
