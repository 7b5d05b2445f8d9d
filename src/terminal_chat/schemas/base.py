"""
Base Schema Classes

This module provides base classes for request and reply schemas with
common serialization and deserialization methods to avoid code duplication.

Frame Format:
    Every frame exchanged with the coordinator is a JSON object:
    {
        "type": "message_type",
        "data": { ... message-specific data ... }
    }
    Requests that expect a reply also carry a "ref" correlation number.
"""

import json
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional, TypeVar

T = TypeVar("T", bound="BaseReply")

REPLY_TYPE = "reply"
STATUS_OK = "ok"
STATUS_ERROR = "error"


class BaseRequest:
    """
    Base class for request schemas.

    Provides common serialization methods for converting request objects
    to dictionary and JSON formats.
    """

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Returns:
            Dictionary with 'type' key and optional 'data' key.
            If the request has no fields, only 'type' is included.
        """
        # Check if the dataclass has any fields
        if hasattr(self, "__dataclass_fields__") and fields(self):
            return {"type": self._message_type, "data": asdict(self)}
        return {"type": self._message_type}

    def to_json(self) -> str:
        """
        Convert to JSON string.

        Returns:
            JSON string representation of the request.
        """
        return json.dumps(self.to_dict())

    @property
    def operation(self) -> str:
        """Public name of the operation, used in logs and timeouts."""
        return self._message_type

    @property
    def _message_type(self) -> str:
        """
        Message type identifier for the request.

        Should be overridden by subclasses to provide the specific type.
        """
        raise NotImplementedError("Subclasses must define _message_type")


class BaseReply:
    """
    Base class for successful reply schemas.

    Provides common deserialization methods for creating reply objects
    from dictionary and JSON formats.
    """

    @classmethod
    def from_dict(cls: type[T], data: Dict[str, Any]) -> T:
        """
        Create instance from dictionary.

        Args:
            data: Dictionary containing reply data, either the whole
                  frame or only its 'data' part.

        Returns:
            Instance of the reply class.
        """
        reply_data = data.get("data", data)
        return cls._from_data(reply_data)

    @classmethod
    def from_json(cls: type[T], json_str: str) -> T:
        """
        Create instance from JSON string.

        Args:
            json_str: JSON string containing reply data.

        Returns:
            Instance of the reply class.
        """
        data = json.loads(json_str)
        return cls.from_dict(data)

    @classmethod
    def _from_data(cls: type[T], data: Dict[str, Any]) -> T:
        """
        Create instance from reply data dictionary.

        Should be overridden by subclasses for custom deserialization.

        Args:
            data: Dictionary containing reply data.

        Returns:
            Instance of the reply class.
        """
        return cls(**data)


@dataclass
class ErrorReply(BaseReply):
    """
    Reply indicating that the coordinator rejected a request.

    Attributes:
        reason: Error reason (e.g., room_exists, room_not_found)
        message: Optional human readable description
    """

    reason: str
    message: Optional[str] = None

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "ErrorReply":
        """Create from reply data dictionary."""
        return cls(
            reason=str(data.get("reason", "unknown_error")),
            message=data.get("message"),
        )


def is_error_reply(data: Dict[str, Any]) -> bool:
    """Return True if the reply payload reports an error status."""
    return data.get("status") == STATUS_ERROR
