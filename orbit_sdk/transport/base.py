"""
The chain transport capability.

Everything above this layer (submitter, agent, bundle) talks to a chain
through ``ChainTransport``; the HTTP JSON-RPC client and the in-process
mocknet both implement it. Wire formats stay behind this line.

Only three calls matter to the reliable submitter: ``submit_tx``,
``get_block_height`` and ``get_tx_by_id`` (which raises ``TxNotFound`` while
the node does not know the hash). ``broadcast_commit`` is used instead when
the transport runs in ``BroadcastMode.BLOCK``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable

__all__ = [
    "BroadcastMode",
    "TxResult",
    "ChainTransport",
    "EXECUTION_FAILURE_MARKER",
    "OUT_OF_GAS_MARKER",
]

# raw_log substrings that mean the tx landed but did not execute
EXECUTION_FAILURE_MARKER = "failed to execute message"
OUT_OF_GAS_MARKER = "out of gas"


class BroadcastMode(str, Enum):
    SYNC = "sync"  # returns once the tx passed mempool checks
    ASYNC = "async"  # returns immediately
    BLOCK = "block"  # returns once the tx is in a block, with its result


@dataclass
class TxResult:
    """Outcome of an included transaction."""

    tx_hash: str
    height: int
    code: int = 0
    raw_log: str = ""
    logs: List[Dict[str, Any]] = field(default_factory=list)
    gas_wanted: int = 0
    gas_used: int = 0

    @property
    def failed(self) -> bool:
        log = self.raw_log or ""
        return self.code != 0 or EXECUTION_FAILURE_MARKER in log or OUT_OF_GAS_MARKER in log

    def attribute(self, msg_index: int, key: str, event_type: Optional[str] = None) -> Optional[str]:
        """
        First event attribute named `key` emitted by message `msg_index`.

        logs: [{"msg_index": 0, "events": [{"type": "instantiate",
                                            "attributes": [{"key": ..., "value": ...}]}]}]
        """
        for entry in self.logs:
            if int(entry.get("msg_index", -1)) != msg_index:
                continue
            for event in entry.get("events", []):
                if event_type is not None and event.get("type") != event_type:
                    continue
                for attr in event.get("attributes", []):
                    if attr.get("key") == key:
                        return attr.get("value")
        return None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        return {
            "txHash": d["tx_hash"],
            "height": d["height"],
            "code": d["code"],
            "rawLog": d["raw_log"],
            "logs": d["logs"],
            "gasWanted": d["gas_wanted"],
            "gasUsed": d["gas_used"],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TxResult":
        return cls(
            tx_hash=str(data.get("txHash") or data.get("tx_hash") or ""),
            height=int(data.get("height") or 0),
            code=int(data.get("code") or 0),
            raw_log=str(data.get("rawLog") or data.get("raw_log") or ""),
            logs=list(data.get("logs") or []),
            gas_wanted=int(data.get("gasWanted") or data.get("gas_wanted") or 0),
            gas_used=int(data.get("gasUsed") or data.get("gas_used") or 0),
        )


@runtime_checkable
class ChainTransport(Protocol):
    broadcast_mode: BroadcastMode

    async def submit_tx(self, signed: bytes) -> str:
        """Hand signed bytes to the network; return the tx hash."""
        ...

    async def broadcast_commit(self, signed: bytes) -> TxResult:
        """Submit and wait for inclusion in one call (BLOCK mode)."""
        ...

    async def get_block_height(self) -> int: ...

    async def get_tx_by_id(self, tx_hash: str) -> TxResult:
        """Return the included tx or raise TxNotFound."""
        ...

    async def query_contract(self, address: str, msg: Any) -> Any: ...

    async def get_balance(self, address: str, denom: str) -> int: ...

    async def get_contract_info(self, address: str) -> Dict[str, Any]:
        """{"codeId": int, "codeHash": str, "label": str} for a deployed contract."""
        ...

    async def close(self) -> None: ...
