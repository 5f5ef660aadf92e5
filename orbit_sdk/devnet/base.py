"""
Devnet lifecycle types shared by the local and remote variants.

    UNINITIALIZED -> SPAWNING -> (GENESIS, first spawn only) -> RUNNING
    RUNNING -> reset -> SPAWNING
    RUNNING -> terminate/erase -> TERMINATED

``DevnetState`` is the one persisted record (``devnet.json``) that says
whether a devnet already exists for a project. It is always written
atomically, since a concurrent ``respawn()`` may be reading it.
"""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol, Union, runtime_checkable

from ..chain import ChainHandle
from ..errors import StateError
from ..identity import GenesisAccount
from ..utils.files import atomic_write_json, read_json

__all__ = [
    "DevnetStatus",
    "DevnetState",
    "StateFile",
    "Devnet",
    "DEFAULT_GENESIS_ACCOUNTS",
]

# names of the pre-funded accounts created at genesis; the first one is the validator
DEFAULT_GENESIS_ACCOUNTS = ("Admin", "Alice", "Bob", "Charlie", "Mallory")


class DevnetStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    SPAWNING = "spawning"
    GENESIS = "genesis"
    RUNNING = "running"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class DevnetState:
    chain_id: str
    port: int
    container_id: Optional[str] = None
    status: DevnetStatus = DevnetStatus.SPAWNING
    platform: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def with_status(self, status: DevnetStatus, **changes: Any) -> "DevnetState":
        return replace(self, status=status, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "containerId": self.container_id,
            "port": self.port,
            "status": self.status.value,
            "platform": self.platform,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DevnetState":
        return cls(
            chain_id=str(data["chainId"]),
            port=int(data["port"]),
            container_id=data.get("containerId"),
            status=DevnetStatus(data.get("status", DevnetStatus.RUNNING.value)),
            platform=data.get("platform"),
            created_at=float(data.get("createdAt") or 0.0),
        )


class StateFile:
    """The ``devnet.json`` record of one project."""

    def __init__(self, path: Union[str, "os.PathLike[str]"]) -> None:
        self.path = Path(path)

    def load(self) -> Optional[DevnetState]:
        try:
            data = read_json(self.path)
            if data is None:
                return None
            return DevnetState.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StateError(f"unreadable devnet state: {e}", str(self.path)) from e

    def save(self, state: DevnetState) -> DevnetState:
        atomic_write_json(self.path, state.to_dict())
        return state

    def delete(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass

    def exists(self) -> bool:
        return self.path.exists()


@runtime_checkable
class Devnet(Protocol):
    """What both devnet variants offer; ``connect()`` only needs the lookup."""

    @property
    def chain(self) -> ChainHandle: ...

    async def spawn(self, timeout: Optional[float] = None) -> DevnetState: ...

    async def respawn(self, timeout: Optional[float] = None) -> DevnetState: ...

    async def get_genesis_account(self, name: str) -> GenesisAccount: ...

    async def terminate(self) -> None: ...

    async def erase(self) -> None: ...
