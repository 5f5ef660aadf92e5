"""
Ephemeral development chains.

- ``LocalDevnet`` drives a node through a container engine (docker, or a
  local process).
- ``RemoteDevnet`` asks a devnet manager to do it over HTTP.

The manager itself (``orbit_sdk.devnet.manager``) is imported on demand, since
it pulls in FastAPI.
"""

from .base import DEFAULT_GENESIS_ACCOUNTS, Devnet, DevnetState, DevnetStatus, StateFile
from .engine import ContainerEngine, ContainerSpec, DockerEngine, ProcessEngine
from .genesis import GenesisStore, generate_chain_id
from .local import LocalDevnet
from .platforms import PLATFORMS, Platform, PortMode, get_platform
from .remote import RemoteDevnet

__all__ = [
    "DEFAULT_GENESIS_ACCOUNTS",
    "Devnet",
    "DevnetState",
    "DevnetStatus",
    "StateFile",
    "ContainerEngine",
    "ContainerSpec",
    "DockerEngine",
    "ProcessEngine",
    "GenesisStore",
    "generate_chain_id",
    "LocalDevnet",
    "RemoteDevnet",
    "PLATFORMS",
    "Platform",
    "PortMode",
    "get_platform",
]
