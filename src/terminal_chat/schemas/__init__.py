"""
Schemas Package

This package contains the frame schemas exchanged with the chat coordinator.
Schemas are organized by category: room, session, and message operations.

The package provides base classes (BaseRequest, BaseReply, ErrorReply)
that eliminate code duplication for serialization and deserialization methods.
"""

from .base import (
    BaseRequest,
    BaseReply,
    ErrorReply,
    REPLY_TYPE,
    STATUS_OK,
    STATUS_ERROR,
    is_error_reply,
)
from .room import (
    ListRoomsRequest,
    RoomsListReply,
    CreateRoomRequest,
    JoinRoomRequest,
    GetHistoryRequest,
    HistoryEntry,
    HistoryReply,
    Timestamp,
)
from .session import (
    WhereisRequest,
    WhereisReply,
    AuthenticateRequest,
    AuthenticatedReply,
    ListUsersRequest,
    UsersListReply,
    DeregisterRequest,
)
from .message import (
    SendMessageRequest,
    ChatEvent,
    Message,
    SystemNotice,
    ForcedDisconnect,
    LinkDown,
    UnknownEvent,
    parse_event,
)

__all__ = [
    # Base classes
    "BaseRequest",
    "BaseReply",
    "ErrorReply",
    "REPLY_TYPE",
    "STATUS_OK",
    "STATUS_ERROR",
    "is_error_reply",
    # Room schemas
    "ListRoomsRequest",
    "RoomsListReply",
    "CreateRoomRequest",
    "JoinRoomRequest",
    "GetHistoryRequest",
    "HistoryEntry",
    "HistoryReply",
    "Timestamp",
    # Session schemas
    "WhereisRequest",
    "WhereisReply",
    "AuthenticateRequest",
    "AuthenticatedReply",
    "ListUsersRequest",
    "UsersListReply",
    "DeregisterRequest",
    # Message schemas and events
    "SendMessageRequest",
    "ChatEvent",
    "Message",
    "SystemNotice",
    "ForcedDisconnect",
    "LinkDown",
    "UnknownEvent",
    "parse_event",
]
