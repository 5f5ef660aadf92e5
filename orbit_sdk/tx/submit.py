"""
Reliable transaction submission.

Turns "post a transaction, get a hash back" into "the transaction is in a
block, here is its result", over a chain whose nodes accept transactions
before they are committed and answer "not found" until some time later.

Per logical transaction the submitter runs a small state machine:

    SUBMIT       read the height (`sent`), post the signed bytes, get the hash.
                 A transport failure spends one unit of the submit budget and,
                 after `submit_delay`, tries again.
    AWAIT_BLOCK  poll the height every `block_poll_interval` until it exceeds
                 `sent`. Not budgeted: block times are chain-dependent.
    POLL_RESULT  look the hash up. "Not found" spends one unit of the result
                 budget and retries after `result_retry_delay`; when the result
                 budget runs out the broadcast is presumed lost and the machine
                 goes back to SUBMIT with whatever submit budget remains.

Each raw submission (successful or not) spends one unit of the submit budget,
so a transaction is posted at most `submit_retries` times. A found result whose
raw log reports a failure raises ``ExecutionFailed`` at once: it is on chain,
and posting it again would only repeat the failure.

The signed bytes are produced once by the caller, so every resubmission
carries the same hash. A lookup that returns a transaction with a different
hash is treated as "not found".

When the transport already broadcasts in ``BroadcastMode.BLOCK`` the node
waits for inclusion itself; the machine is skipped and only the failure
check applies.

    submitter = ReliableSubmitter(transport)
    result = await submitter.submit(signed_tx)
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from ..errors import ExecutionFailed, ResultUnavailable, SubmissionExhausted, TransportError, TxNotFound
from ..logging import get_logger
from ..transport.base import BroadcastMode, ChainTransport, TxResult
from .encode import SignedTx, tx_hash

log = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]

__all__ = ["Phase", "RetryBudgets", "ReliableSubmitter"]


class Phase(str, Enum):
    SUBMIT = "submit"
    AWAIT_BLOCK = "await_block"
    POLL_RESULT = "poll_result"


@dataclass
class RetryBudgets:
    """The two independent budgets of one logical submission."""

    submit_left: int
    result_left: int
    submissions: int = 0
    polls: int = 0

    def spend_submit(self) -> None:
        self.submit_left -= 1
        self.submissions += 1

    def spend_result(self) -> None:
        self.result_left -= 1
        self.polls += 1


@dataclass
class _Attempt:
    phase: Phase
    budgets: RetryBudgets
    sent_height: int = 0
    tx_hash: Optional[str] = None
    last_error: Optional[BaseException] = None


class ReliableSubmitter:
    def __init__(
        self,
        transport: ChainTransport,
        *,
        submit_retries: int = 10,
        result_retries: int = 10,
        submit_delay: float = 1.0,
        block_poll_interval: float = 1.0,
        result_retry_delay: float = 2.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if submit_retries < 1 or result_retries < 1:
            raise ValueError("retry budgets must be at least 1")
        self.transport = transport
        self.submit_retries = submit_retries
        self.result_retries = result_retries
        self.submit_delay = submit_delay
        self.block_poll_interval = block_poll_interval
        self.result_retry_delay = result_retry_delay
        self._sleep = sleep

    async def submit(self, tx: Union[SignedTx, bytes]) -> TxResult:
        raw = tx.to_bytes() if isinstance(tx, SignedTx) else bytes(tx)

        if self.transport.broadcast_mode is BroadcastMode.BLOCK:
            log.debug("tx_submit_block_mode", tx_hash=tx_hash(raw))
            return self._check(await self.transport.broadcast_commit(raw))

        state = _Attempt(
            phase=Phase.SUBMIT,
            budgets=RetryBudgets(submit_left=self.submit_retries, result_left=self.result_retries),
        )
        while True:
            if state.phase is Phase.SUBMIT:
                await self._submit(state, raw)
            elif state.phase is Phase.AWAIT_BLOCK:
                await self._await_block(state)
            else:
                result = await self._poll_result(state)
                if result is not None:
                    return self._check(result)

    # --- phases -----------------------------------------------------------

    async def _submit(self, state: _Attempt, raw: bytes) -> None:
        budgets = state.budgets
        try:
            state.sent_height = await self.transport.get_block_height()
            txid = await self.transport.submit_tx(raw)
        except TransportError as e:
            budgets.spend_submit()
            state.last_error = e
            if budgets.submit_left <= 0:
                log.error("tx_submit_exhausted", attempts=budgets.submissions, error=str(e))
                raise SubmissionExhausted(attempts=budgets.submissions, last_error=e) from e
            log.warning("tx_submit_retry", submit_left=budgets.submit_left, error=str(e))
            await self._sleep(self.submit_delay)
            return
        budgets.spend_submit()
        budgets.result_left = self.result_retries
        state.tx_hash = txid
        state.phase = Phase.AWAIT_BLOCK
        log.info(
            "tx_submit_attempt",
            tx_hash=txid,
            sent_height=state.sent_height,
            submit_left=budgets.submit_left,
        )

    async def _await_block(self, state: _Attempt) -> None:
        await self._sleep(self.block_poll_interval)
        try:
            height = await self.transport.get_block_height()
        except TransportError as e:
            log.debug("tx_await_block_error", tx_hash=state.tx_hash, error=str(e))
            return
        if height > state.sent_height:
            state.phase = Phase.POLL_RESULT

    async def _poll_result(self, state: _Attempt) -> Optional[TxResult]:
        budgets = state.budgets
        assert state.tx_hash is not None
        try:
            result = await self.transport.get_tx_by_id(state.tx_hash)
            if result.tx_hash and result.tx_hash.upper() != state.tx_hash.upper():
                raise TxNotFound(state.tx_hash)
        except TransportError as e:
            budgets.spend_result()
            state.last_error = e
            if budgets.result_left > 0:
                log.info("tx_result_pending", tx_hash=state.tx_hash, result_left=budgets.result_left)
                await self._sleep(self.result_retry_delay)
                return None
            if budgets.submit_left <= 0:
                log.error(
                    "tx_result_unavailable",
                    tx_hash=state.tx_hash,
                    submissions=budgets.submissions,
                    polls=budgets.polls,
                )
                raise ResultUnavailable(
                    tx_hash=state.tx_hash, submissions=budgets.submissions, polls=budgets.polls
                ) from e
            log.warning("tx_result_lost", tx_hash=state.tx_hash, submit_left=budgets.submit_left)
            state.phase = Phase.SUBMIT
            return None
        budgets.polls += 1
        if not result.tx_hash:
            result.tx_hash = state.tx_hash
        return result

    @staticmethod
    def _check(result: TxResult) -> TxResult:
        if result.failed:
            log.warning("tx_failed", tx_hash=result.tx_hash, code=result.code, raw_log=result.raw_log)
            raise ExecutionFailed(
                tx_hash=result.tx_hash, raw_log=result.raw_log, code=result.code, height=result.height
            )
        log.info("tx_committed", tx_hash=result.tx_hash, height=result.height, gas_used=result.gas_used)
        return result
