"""Local port allocation for the discovery server."""

from __future__ import annotations

import random
import socket

from fnprobe.errors import AllocationError
from fnprobe.logging import get_logger

MAX_PORT = 65535

logger = get_logger(__name__)


def _can_bind(host: str, port: int) -> bool:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.bind((host, port))
        return True
    except OSError:
        return False
    finally:
        sock.close()


def find_open_port(base: int, host: str = "127.0.0.1") -> int:
    """Return the first port at or above *base* that can be bound on *host*."""
    for port in range(base, MAX_PORT + 1):
        if _can_bind(host, port):
            return port
    raise AllocationError(f"No open port found at or above {base}")


def find_random_open_port(low: int = 10000, high: int = 50000, host: str = "127.0.0.1") -> int:
    """Scan for a free port from a random base in [low, high).

    The random base keeps concurrent invocations from racing for the same port.
    """
    base = random.randrange(low, high)
    port = find_open_port(base, host=host)
    logger.debug("Allocated port %d (base %d)", port, base)
    return port
