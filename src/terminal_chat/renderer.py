"""
Message Renderer

Formats chat events, history, menus and notices into display lines. Both
the history replay and the live listener go through these functions, so a
message looks the same whether it was replayed or delivered live.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from rich.theme import Theme

from .schemas import HistoryEntry, Message, Timestamp

SELF_MARKER = "self"
PEER_MARKER = "peer"

SELF_LABEL = "YOU"
NO_MESSAGES = "No messages."

THEME = Theme(
    {
        "chat.self": "cyan",
        "chat.peer": "green",
        "chat.system": "yellow",
        "chat.error": "bold red",
        "chat.info": "blue",
    }
)

COMMANDS = [
    ("/usuarios", "Show connected users"),
    ("/volver", "Go back to the room menu"),
    ("/historial", "Show this room's message history"),
    ("/ayuda", "Show this help"),
    ("/salir", "Leave the chat"),
]


@dataclass(frozen=True)
class RenderedLine:
    """
    A display line and how to style it.

    Attributes:
        text: Plain text of the line
        style: Theme style name, None for the default style
        marker: SELF_MARKER or PEER_MARKER for chat messages, else None
    """

    text: str
    style: Optional[str] = None
    marker: Optional[str] = None


def format_timestamp(timestamp: Timestamp) -> str:
    """
    Format a message timestamp as "YYYY-MM-DD HH:MM:SS" in UTC.

    Args:
        timestamp: Epoch milliseconds, or an ISO 8601 string

    Returns:
        The formatted time, or the original value if it cannot be parsed
    """
    if isinstance(timestamp, bool):
        return str(timestamp)
    if isinstance(timestamp, (int, float)):
        moment = datetime.fromtimestamp(timestamp / 1000, tz=timezone.utc)
    else:
        try:
            moment = datetime.fromisoformat(str(timestamp).replace("Z", "+00:00"))
        except ValueError:
            return str(timestamp)
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def render_chat_line(
    author: str, body: str, timestamp: Timestamp, username: str
) -> RenderedLine:
    """Render one chat message, marking the session user's own messages."""
    when = format_timestamp(timestamp)
    if author == username:
        return RenderedLine(
            f"[{when}] {SELF_LABEL}: {body}", "chat.self", SELF_MARKER
        )
    return RenderedLine(f"[{when}] {author}: {body}", "chat.peer", PEER_MARKER)


def render_history_entry(entry: HistoryEntry, username: str) -> RenderedLine:
    return render_chat_line(entry.author, entry.body, entry.timestamp, username)


def render_message(message: Message, username: str) -> RenderedLine:
    return render_chat_line(
        message.author, message.body, message.timestamp, username
    )


def render_history(
    entries: Sequence[HistoryEntry], username: str
) -> List[RenderedLine]:
    """
    Render a room's history in its original order.

    An empty history renders as the explicit "no messages" notice.
    """
    if not entries:
        return [RenderedLine(f"  {NO_MESSAGES}", "chat.info")]
    return [render_history_entry(entry, username) for entry in entries]


def render_system_notice(body: str) -> RenderedLine:
    return RenderedLine(f"[SYSTEM] {body}", "chat.system")


def render_notice(body: str) -> RenderedLine:
    """Render a coordinator eviction or other warning."""
    return RenderedLine(f"[NOTICE] {body}", "chat.error")


def render_error(body: str) -> RenderedLine:
    return RenderedLine(f"[ERROR] {body}", "chat.error")


def render_info(body: str) -> RenderedLine:
    return RenderedLine(body, "chat.info")


def render_users(users: Iterable[str], username: str) -> List[RenderedLine]:
    """Render the connected users list, marking the session user."""
    lines = [RenderedLine("Connected users:")]
    for user in users:
        if user == username:
            lines.append(RenderedLine(f"  - {user} ({SELF_LABEL})", "chat.self"))
        else:
            lines.append(RenderedLine(f"  - {user}"))
    return lines


def render_help() -> List[RenderedLine]:
    lines = [RenderedLine("Available commands:")]
    lines.extend(
        RenderedLine(f"  {command} - {description}")
        for command, description in COMMANDS
    )
    return lines


def render_room_menu(rooms: Sequence[str], username: str) -> List[RenderedLine]:
    """
    Render the room selection menu.

    Rooms are numbered from 1; the two indices after the last room are
    reserved for creating a room and exiting.
    """
    lines = [
        RenderedLine(""),
        RenderedLine("===== CHAT ROOMS =====", "chat.info"),
        RenderedLine(f"Current user: {username}"),
        RenderedLine("Available rooms:"),
    ]
    if not rooms:
        lines.append(RenderedLine("  No rooms available."))
    for index, room in enumerate(rooms, 1):
        lines.append(RenderedLine(f"  {index}. {room}"))
    lines.append(RenderedLine(f"  {len(rooms) + 1}. Create new room"))
    lines.append(RenderedLine(f"  {len(rooms) + 2}. Exit"))
    return lines


def room_prompt(room_name: str) -> str:
    return f"[{room_name}]> "
