"""
Terminal Chat Package

This package provides a terminal chat client session for a room-based chat
coordinator: the room menu and active room state machine, the per-room
listener task, and reconnection with bounded exponential backoff.

Wire schemas are organized in the `schemas` subpackage by category:
    - room: Room listing, creation, joining and history
    - session: Coordinator lookup, authentication and user listing
    - message: Outgoing messages and incoming coordinator events
"""

from .config import ClientConfig
from .discovery import CoordinatorDiscovery
from .errors import (
    ChatClientError,
    CoordinatorError,
    CoordinatorTimeout,
    CoordinatorUnavailable,
    RoomExistsError,
)
from .link import CoordinatorLink
from .listener import Listener, ReconnectRequired, ReplayGuard, Stop, Terminate
from .reconnect import ReconnectAttempt, ReconnectionController, backoff_schedule
from .service import CoordinatorClient
from .session import ChatSession, SessionState
from .terminal import Terminal

__all__ = [
    # Session
    "ChatSession",
    "SessionState",
    "Listener",
    "ReplayGuard",
    "Terminal",
    # Control signals
    "Stop",
    "ReconnectRequired",
    "Terminate",
    # Coordinator access
    "ClientConfig",
    "CoordinatorClient",
    "CoordinatorDiscovery",
    "CoordinatorLink",
    # Reconnection
    "ReconnectAttempt",
    "ReconnectionController",
    "backoff_schedule",
    # Errors
    "ChatClientError",
    "CoordinatorError",
    "CoordinatorTimeout",
    "CoordinatorUnavailable",
    "RoomExistsError",
]
