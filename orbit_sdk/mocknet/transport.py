"""
``ChainTransport`` over an in-process ``MocknetBackend``.

Defaults to ``BroadcastMode.BLOCK``: the backend commits synchronously, so
there is nothing for the reliable submitter to poll. Set ``broadcast_mode`` to
``SYNC`` to drive the full submit/await/poll machine against it instead.
"""

from __future__ import annotations

from typing import Any, Dict

from ..errors import JsonRpcCode, RpcError, TxNotFound
from ..transport.base import BroadcastMode, TxResult
from .backend import ContractError, MocknetBackend

__all__ = ["MocknetTransport"]


class MocknetTransport:
    def __init__(self, backend: MocknetBackend, *, broadcast_mode: BroadcastMode = BroadcastMode.BLOCK) -> None:
        self.backend = backend
        self.broadcast_mode = BroadcastMode(broadcast_mode)

    def _deliver(self, signed: bytes) -> TxResult:
        try:
            return self.backend.deliver(signed)
        except ValueError as e:  # TxRejected or a malformed envelope
            raise RpcError(method="tx_broadcast", code=JsonRpcCode.TX_REJECTED, message=str(e)) from e

    async def submit_tx(self, signed: bytes) -> str:
        return self._deliver(signed).tx_hash

    async def broadcast_commit(self, signed: bytes) -> TxResult:
        return self._deliver(signed)

    async def get_block_height(self) -> int:
        return self.backend.height

    async def get_tx_by_id(self, tx_hash: str) -> TxResult:
        try:
            return self.backend.txs[tx_hash]
        except KeyError:
            raise TxNotFound(tx_hash) from None

    async def query_contract(self, address: str, msg: Any) -> Any:
        try:
            return self.backend.query(address, msg)
        except ContractError as e:
            raise RpcError(method="contract_query", code=JsonRpcCode.SERVER_ERROR, message=str(e)) from e

    async def get_balance(self, address: str, denom: str) -> int:
        return self.backend.balance(address, denom)

    async def get_contract_info(self, address: str) -> Dict[str, Any]:
        try:
            return self.backend.contract_info(address)
        except ContractError as e:
            raise RpcError(method="contract_info", code=JsonRpcCode.SERVER_ERROR, message=str(e)) from e

    async def close(self) -> None:
        return None
