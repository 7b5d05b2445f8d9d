"""
Client Configuration

Runtime settings for the terminal chat client. Every value has a module
level default that can be overridden through an environment variable and,
in the command line entry point, through a flag.

Timeouts:
    - CALL_TIMEOUT applies to short metadata requests (rooms, users,
      create, join, authenticate)
    - HISTORY_TIMEOUT is longer because history payloads may be large
"""

import os
from dataclasses import dataclass

DEFAULT_SERVER_URL = "ws://localhost:8000"

# Well-known name the coordinator registers under
COORDINATOR_NAME = "chat_server"

CALL_TIMEOUT = 5.0
HISTORY_TIMEOUT = 10.0
PROBE_TIMEOUT = 2.0

MAX_RECONNECT_ATTEMPTS = 5
RECONNECT_BASE_DELAY = 1.0

LOG_FILE = "chat_client.log"
LOG_LEVEL = "WARNING"


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return int(value)


@dataclass
class ClientConfig:
    """
    Runtime configuration for the chat client.

    Attributes:
        server_url: WebSocket URL of the coordinator host
        coordinator_name: Well-known name resolved after (re)connecting
        call_timeout: Seconds to wait for short request/response calls
        history_timeout: Seconds to wait for a history fetch
        probe_timeout: Seconds to wait for a liveness probe
        max_reconnect_attempts: Attempts before reconnection gives up
        reconnect_base_delay: Delay before the first attempt; doubled each time
        log_file: File receiving log records
        log_level: Logging level name
    """

    server_url: str = DEFAULT_SERVER_URL
    coordinator_name: str = COORDINATOR_NAME
    call_timeout: float = CALL_TIMEOUT
    history_timeout: float = HISTORY_TIMEOUT
    probe_timeout: float = PROBE_TIMEOUT
    max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS
    reconnect_base_delay: float = RECONNECT_BASE_DELAY
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL

    def __post_init__(self) -> None:
        if self.max_reconnect_attempts < 1:
            raise ValueError("max_reconnect_attempts must be at least 1")
        if self.reconnect_base_delay < 0:
            raise ValueError("reconnect_base_delay cannot be negative")

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """Build a configuration from CHAT_* environment variables."""
        return cls(
            server_url=os.getenv("CHAT_SERVER_URL", DEFAULT_SERVER_URL),
            coordinator_name=os.getenv(
                "CHAT_COORDINATOR_NAME", COORDINATOR_NAME
            ),
            call_timeout=_env_float("CHAT_CALL_TIMEOUT", CALL_TIMEOUT),
            history_timeout=_env_float("CHAT_HISTORY_TIMEOUT", HISTORY_TIMEOUT),
            probe_timeout=_env_float("CHAT_PROBE_TIMEOUT", PROBE_TIMEOUT),
            max_reconnect_attempts=_env_int(
                "CHAT_RECONNECT_ATTEMPTS", MAX_RECONNECT_ATTEMPTS
            ),
            reconnect_base_delay=_env_float(
                "CHAT_RECONNECT_BASE_DELAY", RECONNECT_BASE_DELAY
            ),
            log_file=os.getenv("CHAT_LOG_FILE", LOG_FILE),
            log_level=os.getenv("CHAT_LOG_LEVEL", LOG_LEVEL),
        )
