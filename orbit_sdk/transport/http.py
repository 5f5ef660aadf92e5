from __future__ import annotations

"""
JSON-RPC 2.0 chain transport over httpx.AsyncClient.

- One POST per call to the node's RPC endpoint.
- Network errors, timeouts and 429/502/503/504 become ``TransportError`` so the
  reliable submitter can budget them.
- Read-only calls (contract queries, balances, contract info) are retried here
  with jittered exponential backoff; tx calls are not, the submitter owns those
  budgets.

Example:
    rpc = HttpTransport("http://127.0.0.1:26657")
    height = await rpc.get_block_height()
    await rpc.aclose()

Methods used on the node:
    chain_getHeight      []                      -> int
    tx_broadcast         {tx, mode}              -> {"txHash": str}
    tx_broadcastCommit   {tx}                    -> TxResult dict
    tx_getById           {hash}                  -> TxResult dict | error -32004
    contract_query       {address, msg}          -> any
    contract_info        {address}               -> {codeId, codeHash, label}
    bank_getBalance      {address, denom}        -> str
"""

import asyncio
import json
import random
import time
from itertools import count
from typing import Any, Dict, Iterator, Mapping, Optional

import httpx

from ..errors import JsonRpcCode, RpcError, TransportError, TxNotFound, raise_for_jsonrpc_result
from ..logging import get_logger
from ..version import user_agent
from .base import BroadcastMode, TxResult

log = get_logger(__name__)

_READ_METHODS = frozenset({"contract_query", "contract_info", "bank_getBalance"})


def _is_retriable_http(status: int) -> bool:
    return status in (429, 502, 503, 504)


def _jitter_backoff(base: float, factor: float, attempt: int, jitter: float) -> float:
    return base * (factor ** max(attempt - 1, 0)) + random.random() * jitter


class HttpTransport:
    """``ChainTransport`` for a node's JSON-RPC endpoint."""

    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        broadcast_mode: BroadcastMode = BroadcastMode.SYNC,
        headers: Optional[Mapping[str, str]] = None,
        max_read_retries: int = 2,
        backoff_base: float = 0.15,
        backoff_factor: float = 1.8,
        backoff_jitter: float = 0.2,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.broadcast_mode = BroadcastMode(broadcast_mode)
        self.max_read_retries = max_read_retries
        self.backoff_base = backoff_base
        self.backoff_factor = backoff_factor
        self.backoff_jitter = backoff_jitter
        self._ids: Iterator[int] = count(start=int(time.time() * 1000))
        merged: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": user_agent(),
        }
        if headers:
            merged.update(dict(headers))
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout, headers=merged)

    # --- context manager -------------------------------------------------

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    aclose = close

    # --- ChainTransport --------------------------------------------------

    async def submit_tx(self, signed: bytes) -> str:
        res = await self.request("tx_broadcast", {"tx": signed.hex(), "mode": self.broadcast_mode.value})
        try:
            return str(res["txHash"])
        except (TypeError, KeyError):
            raise RpcError(method="tx_broadcast", code=JsonRpcCode.INTERNAL_ERROR, message="missing txHash", data=res) from None

    async def broadcast_commit(self, signed: bytes) -> TxResult:
        res = await self.request("tx_broadcastCommit", {"tx": signed.hex()})
        return TxResult.from_dict(res)

    async def get_block_height(self) -> int:
        return int(await self.request("chain_getHeight"))

    async def get_tx_by_id(self, tx_hash: str) -> TxResult:
        try:
            res = await self.request("tx_getById", {"hash": tx_hash})
        except RpcError as e:
            if e.code == JsonRpcCode.TX_NOT_FOUND:
                raise TxNotFound(tx_hash) from None
            raise
        if res is None:
            raise TxNotFound(tx_hash)
        return TxResult.from_dict(res)

    async def query_contract(self, address: str, msg: Any) -> Any:
        return await self.request("contract_query", {"address": address, "msg": msg})

    async def get_balance(self, address: str, denom: str) -> int:
        return int(await self.request("bank_getBalance", {"address": address, "denom": denom}) or 0)

    async def get_contract_info(self, address: str) -> Dict[str, Any]:
        return dict(await self.request("contract_info", {"address": address}))

    # --- JSON-RPC --------------------------------------------------------

    async def request(self, method: str, params: Any = None) -> Any:
        """Perform one JSON-RPC call and return `result` or raise."""
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": method,
            "params": [] if params is None else params,
        }
        retries = self.max_read_retries if method in _READ_METHODS else 0
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._send_once(method, payload)
            except TransportError as e:
                if attempt > retries:
                    raise
                delay = _jitter_backoff(self.backoff_base, self.backoff_factor, attempt, self.backoff_jitter)
                log.debug("rpc_retry", method=method, attempt=attempt, delay=round(delay, 3), error=str(e))
                await asyncio.sleep(delay)

    async def _send_once(self, method: str, payload: Dict[str, Any]) -> Any:
        body = json.dumps(payload, separators=(",", ":"), ensure_ascii=False)
        try:
            r = await self._client.post(self.url, content=body)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransportError(f"{method}: {e.__class__.__name__}: {e}") from e
        if _is_retriable_http(r.status_code) or r.status_code >= 500 and not r.content:
            raise TransportError(f"{method}: HTTP {r.status_code}")
        try:
            resp = r.json()
        except ValueError as e:
            raise RpcError(
                method=method,
                code=JsonRpcCode.INTERNAL_ERROR,
                message="Non-JSON response from RPC",
                data=r.text[:256],
                http_status=r.status_code,
            ) from e
        if not isinstance(resp, dict):
            raise RpcError(method=method, code=JsonRpcCode.INTERNAL_ERROR, message="Invalid JSON-RPC response", data=resp)
        raise_for_jsonrpc_result(resp, method=method, http_status=r.status_code)
        if "result" not in resp:
            raise RpcError(method=method, code=JsonRpcCode.INTERNAL_ERROR, message="Malformed JSON-RPC response", data=resp)
        return resp["result"]


__all__ = ["HttpTransport"]
