"""
Reconnection Controller

Recovers the session's coordinator handle after the link dropped.

Algorithm:
    for attempt in 1..max_attempts:
        sleep(base_delay * 2 ** (attempt - 1))
        if the coordinator host answers a ping:
            resolve the well-known coordinator name
            re-authenticate with the original username
            on success, stop and return the new handle
        else:
            try to re-establish the link and go on to the next attempt

The original credential is not kept client-side, so re-authentication
sends an empty one.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, NamedTuple, Optional

from .config import (
    COORDINATOR_NAME,
    MAX_RECONNECT_ATTEMPTS,
    PROBE_TIMEOUT,
    RECONNECT_BASE_DELAY,
)
from .discovery import CoordinatorDiscovery
from .errors import CoordinatorError, CoordinatorUnavailable
from .renderer import render_error, render_info
from .service import CoordinatorClient
from .terminal import Terminal

logger = logging.getLogger(__name__)


class ReconnectAttempt(NamedTuple):
    attempt_number: int
    base_delay: float
    computed_delay: float


def backoff_schedule(
    max_attempts: int = MAX_RECONNECT_ATTEMPTS,
    base_delay: float = RECONNECT_BASE_DELAY,
) -> List[ReconnectAttempt]:
    """
    Compute the exponential backoff schedule.

    With the defaults the delays are 1, 2, 4, 8 and 16 seconds.
    """
    return [
        ReconnectAttempt(attempt, base_delay, base_delay * 2 ** (attempt - 1))
        for attempt in range(1, max_attempts + 1)
    ]


class ReconnectionController:
    """
    Bounded retry loop that re-establishes the coordinator handle.

    Attributes:
        discovery: Locates the coordinator and owns the transport link
        terminal: Terminal for progress messages
        coordinator_name: Well-known name to resolve
        max_attempts: Attempts before giving up
        base_delay: Delay before the first attempt, doubled each attempt
        probe_timeout: Timeout for each liveness probe
    """

    def __init__(
        self,
        discovery: CoordinatorDiscovery,
        terminal: Terminal,
        coordinator_name: str = COORDINATOR_NAME,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
        base_delay: float = RECONNECT_BASE_DELAY,
        probe_timeout: float = PROBE_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.discovery = discovery
        self.terminal = terminal
        self.coordinator_name = coordinator_name
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.probe_timeout = probe_timeout
        self._sleep = sleep

    async def reconnect(
        self, username: str, session_ref: str
    ) -> Optional[CoordinatorClient]:
        """
        Run the retry loop.

        Args:
            username: Username to re-authenticate
            session_ref: Reference of this client session

        Returns:
            A client bound to the new coordinator handle, or None once
            every attempt has failed
        """
        self.terminal.show(
            render_error("Connection lost with the server. Trying to reconnect...")
        )

        for attempt in backoff_schedule(self.max_attempts, self.base_delay):
            self.terminal.show(
                render_info(
                    f"Reconnection attempt "
                    f"{attempt.attempt_number}/{self.max_attempts}..."
                )
            )
            logger.info(
                "Reconnection attempt %d/%d in %.1fs",
                attempt.attempt_number,
                self.max_attempts,
                attempt.computed_delay,
            )
            await self._sleep(attempt.computed_delay)

            client = await self._try_attempt(username, session_ref)
            if client is not None:
                self.terminal.show(render_info("Reconnected!"))
                logger.info(
                    "Reconnected on attempt %d", attempt.attempt_number
                )
                return client

        logger.error("Giving up after %d reconnection attempts", self.max_attempts)
        return None

    async def _try_attempt(
        self, username: str, session_ref: str
    ) -> Optional[CoordinatorClient]:
        if not await self.discovery.ping(self.probe_timeout):
            logger.info("Coordinator host not answering, re-establishing link")
            await self.discovery.reconnect_link()
            return None

        client = await self.discovery.resolve(self.coordinator_name)
        if client is None:
            return None

        try:
            await client.authenticate(
                username, "", session_ref, self.discovery.caller_address
            )
        except (CoordinatorError, CoordinatorUnavailable) as e:
            logger.warning(f"Re-authentication of '{username}' failed: {e}")
            return None
        return client
