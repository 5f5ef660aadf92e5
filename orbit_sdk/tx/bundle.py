"""
Bundles: several instantiate/execute messages committed as one transaction.

    bundle = agent.bundle()                     # depth 1
    a = bundle.instantiate(code, "a", {...})    # queued, nothing sent yet
    b = bundle.execute(other, {"poke": {}})
    result = await bundle.submit(memo="setup")  # one tx, messages in queue order
    instance = await a                          # resolves after the broadcast

Bundles are re-entrant. ``agent.bundle()`` while a bundle is open returns the
same object one level deeper, and ``submit()`` at a nested level only steps
back out; the outermost ``submit()`` (depth 1 -> 0) is the one that
broadcasts. Helpers can therefore open their own bundle without knowing
whether a caller already has one:

    async def deploy_pair(agent):
        async with agent.bundle() as b:
            b.instantiate(...)
            b.instantiate(...)

    async with agent.bundle() as outer:      # deploy_pair's messages join this tx
        await deploy_pair(agent)
        outer.execute(...)

Queries, uploads and anything else that needs committed state raise
``DisallowedInBundle``. A failed broadcast leaves depth and queue untouched so
``submit()`` can simply be called again.

``save()`` is the offline alternative to ``submit()``: it writes an unsigned
transaction for multisig signing to ``<state_dir>/<chain_id>/transactions``.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass
from itertools import count
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from ..chain import Fee, fee_for
from ..contracts import ContractInstance, UploadedCode
from ..errors import DisallowedInBundle, EmptyBundle, ExecutionFailed, NotBundling
from ..logging import get_logger
from ..transport.base import TxResult
from ..utils.files import atomic_write_json, read_json
from .encode import make_body
from .messages import BundleMessage, ExecuteMsg, InstantiateMsg, execute_msg, instantiate_msg, message_from_dict

if TYPE_CHECKING:  # pragma: no cover
    from ..agent import Agent

log = get_logger(__name__)

__all__ = ["Bundle", "SavedBundle"]

_SAVE_COUNTER = count(1)


@dataclass(frozen=True)
class SavedBundle:
    """A bundle written by ``Bundle.save``: the JSON document and where it lives."""

    path: Path
    document: Dict[str, Any]

    @property
    def name(self) -> str:
        return str(self.document["name"])

    @property
    def messages(self) -> List[BundleMessage]:
        return [message_from_dict(m) for m in self.document["messages"]]  # type: ignore[misc]

    @property
    def fee(self) -> Fee:
        return Fee.from_dict(self.document["fee"])


class Bundle:
    def __init__(self, agent: "Agent") -> None:
        self.agent = agent
        self.depth = 0
        self.messages: List[BundleMessage] = []
        self._pending: List["asyncio.Future[Any]"] = []

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"Bundle(agent={self.agent.address!r}, depth={self.depth}, messages={len(self.messages)})"

    # --- nesting ----------------------------------------------------------

    def open(self) -> "Bundle":
        self.depth += 1
        if self.depth > 1:
            log.debug("bundle_nested", depth=self.depth, queued=len(self.messages))
        return self

    async def __aenter__(self) -> "Bundle":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        if exc_type is None:
            await self.submit()
        elif self.depth > 0:
            # the body failed: step out without broadcasting
            self.depth -= 1
            log.warning("bundle_aborted", depth=self.depth, queued=len(self.messages), error=str(exc))

    async def wrap(
        self,
        callback: Callable[["Bundle"], Union[Awaitable[Any], Any]],
        memo: str = "",
    ) -> Optional[TxResult]:
        """Run `callback(self)`, then ``submit(memo)``."""
        res = callback(self)
        if inspect.isawaitable(res):
            await res
        return await self.submit(memo)

    # --- queued operations ------------------------------------------------

    def instantiate(
        self,
        code: Union[UploadedCode, int],
        label: str,
        msg: Any,
        *,
        code_hash: Optional[str] = None,
        funds: Optional[Iterable[Any]] = None,
    ) -> "asyncio.Future[ContractInstance]":
        return self._queue(instantiate_msg(code, label, msg, code_hash=code_hash, funds=funds))

    def execute(
        self,
        contract: Union[ContractInstance, str],
        msg: Any,
        *,
        code_hash: Optional[str] = None,
        funds: Optional[Iterable[Any]] = None,
    ) -> "asyncio.Future[TxResult]":
        return self._queue(execute_msg(contract, msg, code_hash=code_hash, funds=funds))

    def add(self, message: BundleMessage) -> "asyncio.Future[Any]":
        if not isinstance(message, (InstantiateMsg, ExecuteMsg)):
            raise DisallowedInBundle(getattr(message, "type", type(message).__name__))
        return self._queue(message)

    def _queue(self, message: BundleMessage) -> "asyncio.Future[Any]":
        if self.depth <= 0:
            raise NotBundling(f"queue {message.type}")
        fut: "asyncio.Future[Any]" = asyncio.get_running_loop().create_future()
        self.messages.append(message)
        self._pending.append(fut)
        return fut

    # --- rejected operations ----------------------------------------------

    async def query(self, contract: Any, msg: Any) -> Any:
        raise DisallowedInBundle("query")

    async def upload(self, code: bytes) -> Any:
        raise DisallowedInBundle("upload")

    async def get_balance(self, denom: Optional[str] = None, address: Optional[str] = None) -> Any:
        raise DisallowedInBundle("get_balance")

    async def height(self) -> Any:
        raise DisallowedInBundle("height")

    async def next_block(self) -> Any:
        raise DisallowedInBundle("next_block")

    async def send(self, recipient: str, amounts: Any, memo: str = "") -> Any:
        raise DisallowedInBundle("send")

    # --- lookups that do not depend on uncommitted state --------------------

    async def get_code_id(self, address: str) -> int:
        return await self.agent.get_code_id(address)

    async def get_code_hash(self, address: str) -> str:
        return await self.agent.get_code_hash(address)

    async def get_label(self, address: str) -> str:
        return await self.agent.get_label(address)

    # --- terminal actions -------------------------------------------------

    @property
    def fee(self) -> Fee:
        return fee_for(
            "exec",
            self.agent.fees,
            gas_price=self.agent.gas_price,
            denom=self.agent.denom,
            multiplier=len(self.messages),
        )

    async def submit(self, memo: str = "") -> Optional[TxResult]:
        """
        Broadcast the queue as one transaction if this is the outermost level.

        Returns the TxResult, or None when only a nested level was closed.
        """
        if self.depth <= 0:
            raise NotBundling("submit")
        if self.depth > 1:
            self.depth -= 1
            log.debug("bundle_nested_exit", depth=self.depth, queued=len(self.messages))
            return None
        if not self.messages:
            raise EmptyBundle("submit")

        messages = list(self.messages)
        log.info("bundle_submit", messages=len(messages), memo=memo)
        result = await self.agent.broadcast(messages, fee=self.fee, memo=memo)

        self._resolve(result, messages)
        self.depth = 0
        self.messages.clear()
        self._pending.clear()
        return result

    def _resolve(self, result: TxResult, messages: List[BundleMessage]) -> None:
        for index, (message, fut) in enumerate(zip(messages, self._pending)):
            if fut.done():
                continue
            if isinstance(message, InstantiateMsg):
                try:
                    fut.set_result(self.agent.instance_from_result(result, index, message))
                except ExecutionFailed as e:
                    fut.set_exception(e)
            else:
                fut.set_result(result)

    async def save(self, name: Optional[str] = None, memo: Optional[str] = None) -> SavedBundle:
        """
        Write the queue as an unsigned transaction instead of broadcasting it.

        The queue, depth and pending placeholders are left as they are.
        """
        if self.depth <= 0:
            raise NotBundling("save")
        if not self.messages:
            raise EmptyBundle("save")

        n = next(_SAVE_COUNTER)
        now_ms = int(time.time() * 1000)
        name = name or f"TX.{n}.{now_ms}"
        chain_id = self.agent.chain.id
        fee = self.fee
        body = make_body(
            chain_id=chain_id,
            sender=self.agent.address,
            messages=self.messages,
            fee=fee,
            memo=name if memo is None else memo,
        )
        doc: Dict[str, Any] = {
            "N": n,
            "name": name,
            "chainId": chain_id,
            "signer": self.agent.address,
            "fee": fee.to_dict(),
            "memo": body["memo"],
            "messages": body["messages"],
            "unsignedTx": {
                "body": body,
                "authInfo": {
                    "signerInfos": [{"address": self.agent.address, "publicKey": self.agent.signer.public_key.hex()}],
                    "fee": fee.to_dict(),
                },
                "signatures": [],
            },
            "createdAt": now_ms,
        }
        path = self.agent.transactions_dir / f"{name}.json"
        atomic_write_json(path, doc)
        log.info("bundle_saved", name=name, path=str(path), messages=len(self.messages))
        return SavedBundle(path=path, document=doc)

    @staticmethod
    def load_saved(path: Union[str, Path]) -> SavedBundle:
        data = read_json(path)
        if data is None:
            raise FileNotFoundError(str(path))
        return SavedBundle(path=Path(path), document=data)
