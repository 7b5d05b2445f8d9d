"""
Message Schema Definitions

This module defines the chat message request and the events the
coordinator pushes to connected clients.

Events:
    - Message: a chat message posted to a room
    - SystemNotice: an informational notice from the coordinator
    - ForcedDisconnect: the coordinator evicted this session
    - LinkDown: the transport lost its connection to the coordinator
    - UnknownEvent: any event type this client does not understand
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Union

from .base import BaseRequest
from .room import HistoryEntry, Timestamp

logger = logging.getLogger(__name__)


@dataclass
class SendMessageRequest(BaseRequest):
    """
    Request to send a message to a room.

    This is a fire-and-forget operation; the coordinator fans the message
    out to every member, including the sender.

    Attributes:
        username: Username of the sender
        room_name: Name of the room to send the message to
        body: The message content
    """

    username: str
    room_name: str
    body: str

    @property
    def _message_type(self) -> str:
        """Return the message type for send message requests."""
        return "send_message"


@dataclass(frozen=True)
class Message:
    """
    A chat message delivered live to a room member.

    Attributes:
        room: Name of the room the message was posted to
        author: Username of the sender
        body: The message content
        timestamp: Epoch milliseconds or an ISO 8601 string
    """

    room: str
    author: str
    body: str
    timestamp: Timestamp

    def as_history_entry(self) -> HistoryEntry:
        """Return the history entry this message would be stored as."""
        return HistoryEntry(self.author, self.body, self.timestamp)


@dataclass(frozen=True)
class SystemNotice:
    """Informational notice from the coordinator."""

    body: str


@dataclass(frozen=True)
class ForcedDisconnect:
    """The coordinator evicted this session; always fatal."""

    reason: str


@dataclass(frozen=True)
class LinkDown:
    """The connection to the coordinator host was lost."""


@dataclass(frozen=True)
class UnknownEvent:
    """An event type this client does not understand."""

    type: str
    data: Dict[str, Any] = field(default_factory=dict, compare=False)


ChatEvent = Union[Message, SystemNotice, ForcedDisconnect, LinkDown, UnknownEvent]


def parse_event(frame: Dict[str, Any]) -> ChatEvent:
    """
    Convert a pushed frame into a ChatEvent.

    Frames with a known type but missing fields are reported as
    UnknownEvent so a malformed push never breaks the receive loop.

    Args:
        frame: Decoded JSON frame with 'type' and 'data' keys

    Returns:
        The matching ChatEvent variant
    """
    event_type = str(frame.get("type", ""))
    data = frame.get("data") or {}

    try:
        if event_type == "chat_message":
            return Message(
                room=str(data["room"]),
                author=str(data["author"]),
                body=str(data["body"]),
                timestamp=data["timestamp"],
            )
        if event_type == "system_message":
            return SystemNotice(body=str(data["body"]))
        if event_type == "forced_disconnect":
            return ForcedDisconnect(
                reason=str(data.get("reason", "Disconnected by the server"))
            )
    except (KeyError, TypeError) as e:
        logger.warning("Malformed %s event: %s", event_type, e)

    return UnknownEvent(type=event_type, data=data if isinstance(data, dict) else {})

