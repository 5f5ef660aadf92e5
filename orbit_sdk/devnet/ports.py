"""Free local TCP port allocation."""

from __future__ import annotations

import socket
from typing import Callable

__all__ = ["PortAllocator", "free_port"]

PortAllocator = Callable[[], int]


def free_port(host: str = "127.0.0.1") -> int:
    """Ask the OS for an unused port on `host`."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        s.bind((host, 0))
        return s.getsockname()[1]
