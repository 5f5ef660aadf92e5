"""
Agent: a chain connection bound to one signing identity.

An Agent is cheap. It owns a ChainHandle, a resolved identity (signer), a fee
schedule and a transport, and routes every state-changing call through one
``ReliableSubmitter``:

    agent = await connect(ChainHandle.mocknet(), "Admin")
    code = await agent.upload(wasm_bytes)
    token = await agent.instantiate(code, "token-1", {"name": "T"})
    await agent.execute(token, {"mint": {"amount": "10"}})
    print(await agent.query(token, {"balance": {}}))

Batches go through ``agent.bundle()``, see ``orbit_sdk.tx.bundle``.
"""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Union

from .chain import DEFAULT_FEES, ChainHandle, Coin, Fee, fee_for, normalize_funds
from .contracts import ContractInstance, UploadedCode
from .errors import ExecutionFailed
from .identity import Identity
from .logging import get_logger
from .transport.base import ChainTransport, TxResult
from .tx.bundle import Bundle
from .tx.encode import build_signed_tx, make_body
from .tx.messages import InstantiateMsg, Message, SendMsg, UploadMsg, execute_msg, instantiate_msg
from .tx.submit import ReliableSubmitter
from .wallet.signer import Signer

log = get_logger(__name__)

__all__ = ["Agent"]


class Agent:
    def __init__(
        self,
        chain: ChainHandle,
        transport: ChainTransport,
        signer: Signer,
        *,
        identity: Optional[Identity] = None,
        fees: Optional[Mapping[str, int]] = None,
        gas_price: float = 0.25,
        denom: str = "uorb",
        state_dir: Union[str, Path] = "state",
        submitter: Optional[ReliableSubmitter] = None,
        block_poll_interval: float = 1.0,
    ) -> None:
        self.chain = chain
        self.transport = transport
        self.signer = signer
        self.identity = identity or Identity(address=signer.address)
        self.fees: Dict[str, int] = dict(DEFAULT_FEES)
        if fees:
            self.fees.update(fees)
        self.gas_price = gas_price
        self.denom = denom
        self.state_dir = Path(state_dir)
        self.submitter = submitter or ReliableSubmitter(transport)
        self.block_poll_interval = block_poll_interval
        self._bundle: Optional[Bundle] = None

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"Agent(name={self.name!r}, address={self.address!r}, chain={self.chain.id!r})"

    @classmethod
    async def connect(cls, chain: ChainHandle, identity: Any = None, **kwargs: Any) -> "Agent":
        from .connect import connect

        return await connect(chain, identity, **kwargs)

    async def __aenter__(self) -> "Agent":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        await self.transport.close()

    # --- identity ---------------------------------------------------------

    @property
    def address(self) -> str:
        return self.signer.address

    @property
    def name(self) -> Optional[str]:
        return self.identity.name

    @property
    def transactions_dir(self) -> Path:
        return self.state_dir / self.chain.id / "transactions"

    # --- bundles ----------------------------------------------------------

    def bundle(self) -> Bundle:
        """Open a bundle, or go one level deeper into the one already open."""
        if self._bundle is None or self._bundle.depth == 0:
            self._bundle = Bundle(self)
        return self._bundle.open()

    # --- transactions -----------------------------------------------------

    def fee(self, kind: str, multiplier: int = 1) -> Fee:
        return fee_for(kind, self.fees, gas_price=self.gas_price, denom=self.denom, multiplier=multiplier)

    async def broadcast(self, messages: Sequence[Message], *, fee: Fee, memo: str = "") -> TxResult:
        """Sign `messages` as one transaction and submit it reliably."""
        body = make_body(
            chain_id=self.chain.id,
            sender=self.address,
            messages=messages,
            fee=fee,
            memo=memo,
        )
        signed = build_signed_tx(self.signer, body)
        log.debug("tx_signed", tx_hash=signed.hash, messages=len(messages), gas=fee.gas)
        return await self.submitter.submit(signed)

    def instance_from_result(self, result: TxResult, index: int, msg: InstantiateMsg) -> ContractInstance:
        address = result.attribute(index, "contract_address")
        if not address:
            raise ExecutionFailed(
                tx_hash=result.tx_hash,
                raw_log=f"no contract address in logs for message index {index}",
                code=result.code,
                height=result.height,
            )
        return ContractInstance(
            address=address,
            code_id=msg.code_id,
            code_hash=msg.code_hash,
            label=msg.label,
            chain_id=self.chain.id,
            init_by=self.address,
            init_tx=result.tx_hash,
        )

    async def upload(self, code: bytes, memo: str = "") -> UploadedCode:
        result = await self.broadcast([UploadMsg(bytes(code))], fee=self.fee("upload"), memo=memo)
        code_id = result.attribute(0, "code_id")
        if code_id is None:
            raise ExecutionFailed(
                tx_hash=result.tx_hash, raw_log="no code_id in upload logs", code=result.code, height=result.height
            )
        code_hash = result.attribute(0, "code_hash") or hashlib.sha256(code).hexdigest()
        log.info("code_uploaded", code_id=code_id, code_hash=code_hash, tx_hash=result.tx_hash)
        return UploadedCode(
            code_id=int(code_id),
            code_hash=code_hash,
            chain_id=self.chain.id,
            uploaded_by=self.address,
            upload_tx=result.tx_hash,
        )

    async def instantiate(
        self,
        code: Union[UploadedCode, int],
        label: str,
        msg: Any,
        *,
        code_hash: Optional[str] = None,
        funds: Optional[Iterable[Any]] = None,
        memo: str = "",
    ) -> ContractInstance:
        message = instantiate_msg(code, label, msg, code_hash=code_hash, funds=funds)
        result = await self.broadcast([message], fee=self.fee("init"), memo=memo)
        instance = self.instance_from_result(result, 0, message)
        log.info("contract_instantiated", label=label, address=instance.address, tx_hash=result.tx_hash)
        return instance

    async def execute(
        self,
        contract: Union[ContractInstance, str],
        msg: Any,
        *,
        code_hash: Optional[str] = None,
        funds: Optional[Iterable[Any]] = None,
        memo: str = "",
    ) -> TxResult:
        message = execute_msg(contract, msg, code_hash=code_hash, funds=funds)
        return await self.broadcast([message], fee=self.fee("exec"), memo=memo)

    async def send(self, recipient: str, amounts: Union[Iterable[Any], int], memo: str = "") -> TxResult:
        if isinstance(amounts, int):
            coins_ = [Coin(amounts, self.denom)]
        else:
            coins_ = normalize_funds(amounts)
        return await self.broadcast([SendMsg(recipient=recipient, amount=coins_)], fee=self.fee("send"), memo=memo)

    # --- reads ------------------------------------------------------------

    async def query(self, contract: Union[ContractInstance, str], msg: Any) -> Any:
        address = contract.address if isinstance(contract, ContractInstance) else str(contract)
        return await self.transport.query_contract(address, msg)

    async def height(self) -> int:
        return await self.transport.get_block_height()

    async def next_block(self) -> int:
        """Wait until the chain height increases; return the new height."""
        start = await self.height()
        while True:
            await asyncio.sleep(self.block_poll_interval)
            now = await self.height()
            if now > start:
                return now

    async def get_balance(self, denom: Optional[str] = None, address: Optional[str] = None) -> int:
        return await self.transport.get_balance(address or self.address, denom or self.denom)

    async def get_code_id(self, address: str) -> int:
        return int((await self.transport.get_contract_info(address))["codeId"])

    async def get_code_hash(self, address: str) -> str:
        return str((await self.transport.get_contract_info(address))["codeHash"])

    async def get_label(self, address: str) -> str:
        return str((await self.transport.get_contract_info(address))["label"])
