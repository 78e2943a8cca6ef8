"""Local IPv4 address lookup, shown to users so clients know where to connect."""

from __future__ import annotations

import logging
import socket

logger = logging.getLogger(__name__)

NOT_FOUND = "not found"

# Never contacted: connecting a UDP socket only selects a route.
_PROBE_ADDRESS = ("192.0.2.1", 9)


def local_ipv4() -> str:
    """Return the primary non-loopback IPv4 address, or ``NOT_FOUND``."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(_PROBE_ADDRESS)
            address: str = sock.getsockname()[0]
    except OSError as exc:
        logger.debug(f"Local address lookup failed: {exc}")
        return NOT_FOUND

    if not address or address.startswith("127.") or address == "0.0.0.0":
        return NOT_FOUND
    return address
