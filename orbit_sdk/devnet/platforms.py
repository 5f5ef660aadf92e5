"""
Supported devnet platforms.

A platform fixes what a devnet node is: the container image (or local daemon)
that runs it, the log line that means "ready", and which of the node's APIs
the SDK talks to. The port mode decides both the default port and the
environment variable the node entrypoint reads to bind it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List

from ..errors import ConfigurationError

__all__ = [
    "PortMode",
    "Platform",
    "PLATFORMS",
    "DEFAULT_PLATFORM",
    "get_platform",
]


class PortMode(str, Enum):
    HTTP = "http"
    RPC = "rpc"
    GRPC = "grpc"
    GRPC_WEB = "grpcWeb"

    @property
    def default_port(self) -> int:
        return _DEFAULT_PORTS[self]

    @property
    def env_var(self) -> str:
        return _PORT_ENV[self]


_DEFAULT_PORTS: Dict[PortMode, int] = {
    PortMode.HTTP: 1317,
    PortMode.RPC: 26657,
    PortMode.GRPC: 9090,
    PortMode.GRPC_WEB: 9091,
}

_PORT_ENV: Dict[PortMode, str] = {
    PortMode.HTTP: "HTTP_PORT",
    PortMode.RPC: "RPC_PORT",
    PortMode.GRPC: "GRPC_PORT",
    PortMode.GRPC_WEB: "GRPC_WEB_PORT",
}


@dataclass(frozen=True)
class Platform:
    id: str
    image: str
    ready_phrase: str
    daemon: str
    port_mode: PortMode
    protocol: str = "http"

    def node_command(self, home: Path) -> List[str]:
        """Command line that runs the node outside a container."""
        return [self.daemon, "start", "--home", str(home)]


PLATFORMS: Dict[str, Platform] = {
    "orbit_1.0": Platform(
        id="orbit_1.0",
        image="ghcr.io/orbit-chain/devnet:1.0",
        ready_phrase="indexed block",
        daemon="orbitd",
        port_mode=PortMode.HTTP,
    ),
    "orbit_1.1": Platform(
        id="orbit_1.1",
        image="ghcr.io/orbit-chain/devnet:1.1",
        ready_phrase="Validating proposal",
        daemon="orbitd",
        port_mode=PortMode.RPC,
    ),
    "orbit_2.0": Platform(
        id="orbit_2.0",
        image="ghcr.io/orbit-chain/devnet:2.0",
        ready_phrase="Done verifying block height",
        daemon="orbitd",
        port_mode=PortMode.GRPC_WEB,
    ),
}

DEFAULT_PLATFORM = "orbit_1.0"


def get_platform(platform_id: str) -> Platform:
    try:
        return PLATFORMS[platform_id]
    except KeyError:
        known = ", ".join(sorted(PLATFORMS))
        raise ConfigurationError(f"unknown devnet platform {platform_id!r} (known: {known})") from None
