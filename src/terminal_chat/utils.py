"""
Client Utilities

Helpers for identifying this client to the coordinator.
"""

import logging
import os
import random
import socket
import time

logger = logging.getLogger(__name__)

LOOPBACK_ADDRESS = "127.0.0.1"


def _usable(address: str) -> bool:
    return not (
        address.startswith("127.")
        or address.startswith("169.254.")
        or ":" in address
    )


def detect_local_ip() -> str:
    """
    Find the local IPv4 address other hosts can reach this client at.

    Loopback, link-local and IPv6 addresses are skipped. Falls back to
    the loopback address, in which case only local coordinators work.
    """
    candidates = []
    probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # No packet is sent; connecting only selects the outgoing interface
        probe.connect(("10.255.255.255", 1))
        candidates.append(probe.getsockname()[0])
    except OSError as e:
        logger.debug(f"Route probe failed: {e}")
    finally:
        probe.close()

    try:
        candidates.extend(
            info[4][0]
            for info in socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
        )
    except OSError as e:
        logger.debug(f"Hostname lookup failed: {e}")

    for address in candidates:
        if _usable(address):
            logger.info(f"Using local IP: {address}")
            return address

    logger.warning(
        f"No suitable local IP found, using {LOOPBACK_ADDRESS}; "
        "only a coordinator on this machine will reach the client"
    )
    return LOOPBACK_ADDRESS


def generate_client_name() -> str:
    """Generate a unique reference for this client session."""
    timestamp = int(time.time() * 1000)
    nonce = random.randint(1, 1_000_000_000)
    return f"chat_client_{timestamp}_{nonce}_{os.getpid()}"
