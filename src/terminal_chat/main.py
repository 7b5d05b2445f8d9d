#!/usr/bin/env python3
"""
Terminal Chat Client

Command line entry point: connects to the chat coordinator, logs the user
in and runs the interactive chat session until it ends.
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import List, Optional
from urllib.parse import urlparse

from .config import ClientConfig
from .discovery import CoordinatorDiscovery
from .errors import CoordinatorError, CoordinatorUnavailable
from .reconnect import ReconnectionController
from .renderer import RenderedLine, render_error, render_info
from .session import ChatSession
from .terminal import Terminal
from .utils import detect_local_ip, generate_client_name

logger = logging.getLogger(__name__)

EXIT_LOGIN_FAILED = 1

BANNER = [
    "===============================================",
    "               TERMINAL CHAT CLIENT            ",
    "===============================================",
]


def build_server_url(server: str, port: Optional[int] = None) -> str:
    """
    Normalize the --server value into a WebSocket URL.

    A bare host (or host:port) gets the ws:// scheme; --port overrides
    the port in either form.
    """
    if "://" not in server:
        server = f"ws://{server}"
    if port is None:
        return server
    parsed = urlparse(server)
    return parsed._replace(netloc=f"{parsed.hostname}:{port}").geturl()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Terminal chat client")
    parser.add_argument(
        "--server",
        default=None,
        help="Coordinator host or WebSocket URL (default: CHAT_SERVER_URL "
        "or ws://localhost:8000)",
    )
    parser.add_argument("--port", type=int, default=None, help="Coordinator port")
    parser.add_argument(
        "--username", default=None, help="Username (prompted when omitted)"
    )
    parser.add_argument("--log-file", default=None, help="Log file path")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level",
    )
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ClientConfig:
    """Apply command line flags on top of the environment configuration."""
    config = ClientConfig.from_env()
    overrides = {}
    if args.server is not None or args.port is not None:
        overrides["server_url"] = build_server_url(
            args.server or config.server_url, args.port
        )
    if args.log_file is not None:
        overrides["log_file"] = args.log_file
    if args.log_level is not None:
        overrides["log_level"] = args.log_level
    return replace(config, **overrides)


def configure_logging(config: ClientConfig) -> None:
    # Log to a file so records never interleave with the chat output
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.FileHandler(config.log_file, mode="a")],
    )


async def run_client(
    config: ClientConfig,
    username: Optional[str] = None,
    terminal: Optional[Terminal] = None,
    discovery: Optional[CoordinatorDiscovery] = None,
) -> int:
    """
    Log in and run the chat session.

    Args:
        config: Client configuration
        username: Username to log in with; prompted for when None
        terminal: Terminal to use (defaults to stdin/stdout)
        discovery: Coordinator discovery (defaults to one for config.server_url)

    Returns:
        The process exit status
    """
    inbox: asyncio.Queue = asyncio.Queue()
    terminal = terminal or Terminal()
    if discovery is None:
        discovery = CoordinatorDiscovery(
            config.server_url,
            inbox,
            call_timeout=config.call_timeout,
            history_timeout=config.history_timeout,
        )
    else:
        inbox = discovery.inbox

    try:
        terminal.show_all(RenderedLine(line, "chat.info") for line in BANNER)
        terminal.show(render_info(f"Connecting to {config.server_url}..."))
        if not await discovery.ping(config.probe_timeout):
            terminal.show(
                render_error(f"Warning: cannot reach {config.server_url}.")
            )

        coordinator = await discovery.resolve(config.coordinator_name)
        if coordinator is None:
            terminal.show(
                render_error(
                    f"Could not find the chat server '{config.coordinator_name}'."
                )
            )
            return EXIT_LOGIN_FAILED

        if not username:
            username = await terminal.read_line("Username: ")
        if not username:
            terminal.show(render_error("A username is required."))
            return EXIT_LOGIN_FAILED
        password = await terminal.read_line("Password: ") or ""

        session_ref = generate_client_name()
        try:
            await coordinator.authenticate(
                username, password, session_ref, detect_local_ip()
            )
        except CoordinatorError as e:
            terminal.show(render_error(f"Authentication failed: {e.reason}"))
            return EXIT_LOGIN_FAILED
        except CoordinatorUnavailable as e:
            logger.error(f"Login failed: {e}")
            terminal.show(render_error(f"Could not log in: {e}"))
            return EXIT_LOGIN_FAILED

        terminal.show(render_info(f"Welcome, {username}!"))
        reconnector = ReconnectionController(
            discovery,
            terminal,
            coordinator_name=config.coordinator_name,
            max_attempts=config.max_reconnect_attempts,
            base_delay=config.reconnect_base_delay,
            probe_timeout=config.probe_timeout,
        )
        session = ChatSession(
            username,
            coordinator,
            terminal,
            inbox,
            reconnector,
            session_ref,
            node_identity=config.server_url,
        )
        return await session.run()
    finally:
        if discovery.link is not None:
            await discovery.link.close()
        await terminal.close()


def main(argv: Optional[List[str]] = None):
    """Main entry point for the chat client."""
    args = parse_args(argv)
    config = build_config(args)
    configure_logging(config)
    logger.info("Starting chat client...")

    try:
        code = asyncio.run(run_client(config, args.username))
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)
    sys.exit(code)


if __name__ == "__main__":
    main()
