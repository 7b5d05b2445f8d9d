"""
Coordinator Link

This module provides the transport connection between the client and the
coordinator host. A single WebSocket connection carries both the replies
to this client's requests and the events the coordinator pushes to it.

Architecture:
    - One reader task owns the receive side of the WebSocket
    - Replies are matched to waiting requests by their "ref" number
    - Every other frame is parsed into a ChatEvent and put on the inbox
    - When the connection drops, pending requests fail and a LinkDown
      event is put on the inbox so the active listener can react
    - Supports dependency injection for the network layer (for testability)
"""

import asyncio
import itertools
import json
import logging
from typing import Any, Callable, Dict, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import CoordinatorTimeout, CoordinatorUnavailable
from .schemas import REPLY_TYPE, BaseRequest, LinkDown, parse_event

logger = logging.getLogger(__name__)


class CoordinatorLink:
    """
    WebSocket connection to the coordinator host.

    Attributes:
        url: WebSocket URL of the coordinator host
        inbox: Queue receiving ChatEvents pushed by the coordinator
        websocket: Active WebSocket connection (None if not connected)
    """

    def __init__(
        self,
        url: str,
        inbox: asyncio.Queue,
        websocket_factory: Optional[Callable] = None,
    ):
        """
        Initialize the link.

        Args:
            url: WebSocket URL of the coordinator host
            inbox: Queue that receives pushed events and LinkDown
            websocket_factory: Optional factory for creating WebSocket
                             connections (for dependency injection/testing)
        """
        self.url = url
        self.inbox = inbox
        self.websocket = None
        self._websocket_factory = websocket_factory or websockets.connect
        self._pending: Dict[int, asyncio.Future] = {}
        self._refs = itertools.count(1)
        self._reader_task: Optional[asyncio.Task] = None
        self._connected = False
        self._closing = False

    async def open(self) -> None:
        """
        Establish the WebSocket connection and start the reader task.

        Raises:
            CoordinatorUnavailable: If the connection cannot be established
        """
        try:
            logger.info(f"Connecting to {self.url}...")
            self.websocket = await self._websocket_factory(self.url)
        except Exception as e:
            logger.error(f"Failed to connect to coordinator: {e}")
            raise CoordinatorUnavailable(
                f"Could not connect to {self.url}: {e}"
            ) from e

        self._connected = True
        self._closing = False
        self._reader_task = asyncio.create_task(self._read_frames())
        logger.info("Link to coordinator established")

    async def close(self) -> None:
        """Close the connection without reporting a link loss."""
        self._closing = True
        if self.websocket is not None and hasattr(self.websocket, "close"):
            try:
                await self.websocket.close()
            except WebSocketException as e:
                logger.debug("Error while closing link: %s", e)
        if self._reader_task is not None:
            await self._reader_task
            self._reader_task = None
        self._connected = False
        logger.info("Link to coordinator closed")

    @property
    def is_open(self) -> bool:
        """Check if the connection is currently usable."""
        return self._connected and self.websocket is not None

    @property
    def local_address(self) -> Optional[str]:
        """Local "host:port" of the connection, if known."""
        address = getattr(self.websocket, "local_address", None)
        if not address:
            return None
        return f"{address[0]}:{address[1]}"

    async def request(
        self,
        request: BaseRequest,
        timeout: float,
        to: Any = None,
    ) -> Dict[str, Any]:
        """
        Send a request and wait for its reply.

        Args:
            request: Request schema to send
            timeout: Seconds to wait for the reply
            to: Optional handle of the process the request is addressed to

        Returns:
            The 'data' part of the reply frame

        Raises:
            CoordinatorUnavailable: If the link is down or drops while waiting
            CoordinatorTimeout: If no reply arrives within the timeout
        """
        if not self.is_open:
            raise CoordinatorUnavailable("Not connected to the coordinator")

        ref = next(self._refs)
        frame = request.to_dict()
        frame["ref"] = ref
        if to is not None:
            frame["to"] = to

        future = asyncio.get_running_loop().create_future()
        self._pending[ref] = future
        try:
            await self._send_frame(frame)
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "No reply to %s (ref %s) within %ss",
                request.operation,
                ref,
                timeout,
            )
            raise CoordinatorTimeout(request.operation, timeout) from None
        finally:
            self._pending.pop(ref, None)

    async def cast(self, request: BaseRequest, to: Any = None) -> bool:
        """
        Send a request without waiting for any reply.

        A cast over a dead link is dropped; the link loss itself is
        reported through the inbox.

        Returns:
            True if the frame was handed to the connection
        """
        if not self.is_open:
            logger.warning("Dropping %s: link is down", request.operation)
            return False

        frame = request.to_dict()
        if to is not None:
            frame["to"] = to
        try:
            await self._send_frame(frame)
        except CoordinatorUnavailable as e:
            logger.warning("Dropping %s: %s", request.operation, e)
            return False
        return True

    async def ping(self, timeout: float) -> bool:
        """
        Check that the coordinator host still answers on this link.

        Returns:
            True if a pong arrived within the timeout
        """
        if not self.is_open:
            return False
        try:
            pong_waiter = await self.websocket.ping()
            await asyncio.wait_for(pong_waiter, timeout)
        except (asyncio.TimeoutError, ConnectionClosed):
            logger.debug("Ping over link failed")
            return False
        return True

    async def _send_frame(self, frame: Dict[str, Any]) -> None:
        try:
            await self.websocket.send(json.dumps(frame))
        except ConnectionClosed as e:
            self._connected = False
            raise CoordinatorUnavailable(f"Connection closed: {e}") from e

    async def _read_frames(self) -> None:
        """
        Receive frames until the connection closes.

        Runs as the link's reader task; it is the only consumer of the
        WebSocket's receive side.
        """
        try:
            async for raw in self.websocket:
                self._dispatch(raw)
        except ConnectionClosed:
            logger.warning("Connection closed by coordinator")
        finally:
            self._connected = False
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(
                        CoordinatorUnavailable(
                            "Connection to the coordinator was lost"
                        )
                    )
            if not self._closing:
                logger.warning("Link to %s is down", self.url)
                self.inbox.put_nowait(LinkDown())

    def _dispatch(self, raw: str) -> None:
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Failed to parse frame JSON: %s", e)
            return

        if not isinstance(frame, dict):
            logger.warning("Ignoring non-object frame: %r", frame)
            return

        if frame.get("type") == REPLY_TYPE:
            future = self._pending.get(frame.get("ref"))
            if future is None or future.done():
                logger.debug("Dropping late reply ref=%s", frame.get("ref"))
                return
            future.set_result(frame.get("data") or {})
            return

        event = parse_event(frame)
        logger.debug("Received event: %s", event)
        self.inbox.put_nowait(event)
