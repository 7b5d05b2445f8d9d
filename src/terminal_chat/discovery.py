"""
Coordinator Discovery

This module locates the coordinator on its host. It owns the transport
link and offers the three primitives the reconnection controller needs:

    - ping: is the coordinator host alive?
    - reconnect_link: re-establish the transport connection
    - resolve: turn the coordinator's well-known name into a client handle
"""

import asyncio
import logging
from typing import Callable, Optional
from urllib.parse import urlparse

from .config import CALL_TIMEOUT, HISTORY_TIMEOUT
from .errors import CoordinatorUnavailable
from .link import CoordinatorLink
from .schemas import WhereisReply, WhereisRequest, is_error_reply
from .service import CoordinatorClient
from .utils import detect_local_ip

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"ws": 80, "wss": 443}


class CoordinatorDiscovery:
    """
    Finds the coordinator over a WebSocket link to its host.

    Attributes:
        url: WebSocket URL of the coordinator host (the node identity)
        inbox: Queue receiving events pushed over the link
        link: Current transport link, None before the first connection
    """

    def __init__(
        self,
        url: str,
        inbox: asyncio.Queue,
        websocket_factory: Optional[Callable] = None,
        connect_timeout: float = CALL_TIMEOUT,
        call_timeout: float = CALL_TIMEOUT,
        history_timeout: float = HISTORY_TIMEOUT,
    ):
        self.url = url
        self.inbox = inbox
        self.link: Optional[CoordinatorLink] = None
        self._websocket_factory = websocket_factory
        self.connect_timeout = connect_timeout
        self.call_timeout = call_timeout
        self.history_timeout = history_timeout

    @property
    def caller_address(self) -> str:
        """Local address of the current link, used when authenticating."""
        if self.link is not None and self.link.local_address:
            return self.link.local_address
        return detect_local_ip()

    async def ping(self, timeout: float) -> bool:
        """
        Liveness probe for the coordinator host.

        Pings over the open link when there is one, otherwise checks that
        the host accepts a TCP connection on the coordinator port.
        """
        if self.link is not None and self.link.is_open:
            return await self.link.ping(timeout)

        parsed = urlparse(self.url)
        host = parsed.hostname or "localhost"
        port = parsed.port or DEFAULT_PORTS.get(parsed.scheme, 80)
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"Ping to {host}:{port} failed: {e}")
            return False

        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass
        logger.debug(f"Ping to {host}:{port} succeeded")
        return True

    async def reconnect_link(self) -> bool:
        """
        Replace the current link with a freshly opened one.

        Returns:
            True if the new link is open, False if the attempt failed
        """
        if self.link is not None:
            await self.link.close()
            self.link = None

        link = CoordinatorLink(self.url, self.inbox, self._websocket_factory)
        try:
            await asyncio.wait_for(link.open(), self.connect_timeout)
        except (CoordinatorUnavailable, asyncio.TimeoutError) as e:
            logger.warning(f"Could not re-establish link to {self.url}: {e}")
            return False

        self.link = link
        return True

    async def resolve(self, name: str) -> Optional[CoordinatorClient]:
        """
        Resolve a well-known coordinator name into a client handle.

        Opens a link first if none is open.

        Returns:
            A CoordinatorClient bound to the resolved handle, or None when
            the host is unreachable or nothing is registered under the name
        """
        if self.link is None or not self.link.is_open:
            if not await self.reconnect_link():
                return None

        try:
            data = await self.link.request(
                WhereisRequest(name), timeout=self.call_timeout
            )
        except CoordinatorUnavailable as e:
            logger.warning(f"Could not resolve '{name}': {e}")
            return None

        reply = WhereisReply.from_dict(data)
        if is_error_reply(data) or reply.handle is None:
            logger.warning(f"'{name}' is not registered on {self.url}")
            return None

        logger.info(f"Resolved '{name}' to {reply.handle}")
        return CoordinatorClient(
            self.link,
            reply.handle,
            call_timeout=self.call_timeout,
            history_timeout=self.history_timeout,
        )

