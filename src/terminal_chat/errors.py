"""
Client Errors

Exceptions raised by the coordinator client stub and the transport link.

Coordinator-reported failures derive from ValueError and link failures
derive from ConnectionError, so callers that only care about the broad
category can keep catching the builtin types.
"""

from typing import Optional


class ChatClientError(Exception):
    """Base class for chat client errors."""


class CoordinatorError(ChatClientError, ValueError):
    """
    The coordinator answered a request with an error.

    Attributes:
        reason: Error reason reported by the coordinator
    """

    def __init__(self, reason: str, message: Optional[str] = None):
        super().__init__(message or reason)
        self.reason = reason


class RoomExistsError(CoordinatorError):
    """A room with the requested name already exists."""

    def __init__(self, room_name: str):
        super().__init__(
            "room_exists", f"Room '{room_name}' already exists"
        )
        self.room_name = room_name


class CoordinatorUnavailable(ChatClientError, ConnectionError):
    """The link to the coordinator is down or was never established."""


class CoordinatorTimeout(CoordinatorUnavailable):
    """A request to the coordinator did not complete within its timeout."""

    def __init__(self, operation: str, timeout: float):
        super().__init__(
            f"Timed out after {timeout:g}s waiting for {operation} response"
        )
        self.operation = operation
        self.timeout = timeout
