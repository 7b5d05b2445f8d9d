"""
Session Schema Definitions

This module defines the message structures for user session operations:
coordinator lookup, authentication, user listing and deregistration.
"""

from dataclasses import dataclass
from typing import Any, Dict, List

from .base import BaseRequest, BaseReply


@dataclass
class WhereisRequest(BaseRequest):
    """
    Request to resolve a well-known process name into a handle.

    Attributes:
        name: Registered name to look up
    """

    name: str

    @property
    def _message_type(self) -> str:
        return "whereis"


@dataclass
class WhereisReply(BaseReply):
    """
    Reply to a name lookup.

    Attributes:
        handle: Handle of the registered process, None if not registered
    """

    handle: Any

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "WhereisReply":
        """Create from reply data dictionary."""
        return cls(handle=data.get("handle"))


@dataclass
class AuthenticateRequest(BaseRequest):
    """
    Request to authenticate a user with the coordinator.

    Attributes:
        username: Username to authenticate
        credential: Password, empty when re-authenticating after a drop
        session_ref: Unique reference of this client session
        caller_address: Address the coordinator can reach this client at
    """

    username: str
    credential: str
    session_ref: str
    caller_address: str

    @property
    def _message_type(self) -> str:
        """Return the message type for authentication requests."""
        return "authenticate"


@dataclass
class AuthenticatedReply(BaseReply):
    """
    Reply to a successful authentication.

    Attributes:
        handle: Handle of the coordinator process serving this session
    """

    handle: Any

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "AuthenticatedReply":
        """Create from reply data dictionary."""
        return cls(handle=data.get("handle"))


@dataclass
class ListUsersRequest(BaseRequest):
    """Request for the usernames currently connected."""

    @property
    def _message_type(self) -> str:
        return "list_users"


@dataclass
class UsersListReply(BaseReply):
    """
    Reply containing connected usernames.

    Attributes:
        users: Unique usernames in the order the coordinator reports them
    """

    users: List[str]

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "UsersListReply":
        """Create from reply data dictionary, dropping duplicates."""
        users: List[str] = []
        for user in data.get("users", []):
            if str(user) not in users:
                users.append(str(user))
        return cls(users=users)


@dataclass
class DeregisterRequest(BaseRequest):
    """
    Notification that a user is leaving the chat.

    Attributes:
        username: Username to deregister
    """

    username: str

    @property
    def _message_type(self) -> str:
        return "deregister"
