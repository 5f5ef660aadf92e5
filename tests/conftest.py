"""
Shared pytest fixtures:
- Fast SDK config (zero delays, per-test state dir)
- Fake container engine for devnet lifecycle tests
- Fake chain transport with scripted failures for submitter tests
"""
from __future__ import annotations

import asyncio
from itertools import count
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional

import pytest

from orbit_sdk.config import SDKConfig
from orbit_sdk.devnet import LocalDevnet
from orbit_sdk.devnet.engine import ContainerSpec
from orbit_sdk.errors import TransportError, TxNotFound
from orbit_sdk.mocknet import MockContract, MocknetBackend
from orbit_sdk.mocknet.backend import ContractError
from orbit_sdk.transport.base import BroadcastMode, TxResult


async def no_sleep(_: float) -> None:
    await asyncio.sleep(0)


# ---------- CONFIG ----------


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    return tmp_path / "state"


@pytest.fixture
def config(state_dir: Path) -> SDKConfig:
    return SDKConfig(
        state_dir=state_dir,
        submit_delay=0.0,
        block_poll_interval=0.0,
        result_retry_delay=0.0,
        devnet_settle_delay=0.0,
    )


# ---------- MOCKNET ----------


class Counter(MockContract):
    def init(self, ctx, msg):
        self.count = int(msg.get("start", 0))
        self.owner = ctx.sender
        return {"count": self.count}

    def handle(self, ctx, msg):
        if "inc" in msg:
            self.count += 1
            return {"count": self.count}
        if "fail" in msg:
            raise ContractError("asked to fail")
        raise ContractError("unknown message")

    def query(self, msg):
        return {"count": self.count, "owner": self.owner}


@pytest.fixture
def backend() -> MocknetBackend:
    return MocknetBackend("mocknet")


@pytest.fixture
def counter_code(backend: MocknetBackend) -> bytes:
    return backend.register(Counter)


# ---------- FAKE ENGINE ----------


class FakeEngine:
    """
    In-memory ContainerEngine. Every started node prints `lines`; with `hang`
    the log stream then stays open forever, like a node that never gets ready.
    """

    runs_images = True

    def __init__(self, lines: Optional[List[str]] = None, *, hang: bool = False) -> None:
        self.lines = list(lines) if lines is not None else ["starting node", "indexed block height=1"]
        self.hang = hang
        self.specs: List[ContainerSpec] = []
        self.running: Dict[str, bool] = {}
        self.killed: List[str] = []
        self.removed: List[str] = []
        self._ids = count(1)

    async def create_and_start(self, spec: ContainerSpec) -> str:
        handle = f"{next(self._ids):08x}{'c' * 56}"
        self.specs.append(spec)
        self.running[handle] = True
        return handle

    async def is_running(self, handle: str) -> bool:
        return self.running.get(handle, False)

    async def stream_logs(self, handle: str) -> AsyncIterator[str]:
        for line in self.lines:
            yield line
        if self.hang:
            await asyncio.Event().wait()

    async def kill(self, handle: str) -> None:
        self.killed.append(handle)
        if handle in self.running:
            self.running[handle] = False

    async def remove(self, handle: str) -> None:
        self.removed.append(handle)
        self.running.pop(handle, None)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


class PortCounter:
    """Port allocator that records how often it was asked."""

    def __init__(self, start: int = 41000) -> None:
        self.calls = 0
        self._next = start

    def __call__(self) -> int:
        self.calls += 1
        self._next += 1
        return self._next


@pytest.fixture
def ports() -> PortCounter:
    return PortCounter()


# ---------- FAKE CHAIN TRANSPORT ----------


class ScriptedTransport:
    """
    ChainTransport whose failures are scripted per call.

    `submit_failures` raw submissions fail before the first succeeds;
    `not_found` lookups answer "not found" before a result is returned
    (None = never found). Each accepted submission produces a new block.
    """

    def __init__(
        self,
        *,
        submit_failures: int = 0,
        not_found: Optional[int] = 0,
        raw_log: str = "[]",
        code: int = 0,
        broadcast_mode: BroadcastMode = BroadcastMode.SYNC,
    ) -> None:
        self.broadcast_mode = broadcast_mode
        self.submit_failures = submit_failures
        self.not_found = not_found
        self.raw_log = raw_log
        self.code = code
        self.height = 100
        self.submissions: List[bytes] = []
        self.failed_submissions = 0
        self.lookups = 0
        self.commits = 0
        self.closed = False

    def _result(self, tx_hash: str) -> TxResult:
        return TxResult(tx_hash=tx_hash, height=self.height, code=self.code, raw_log=self.raw_log)

    async def submit_tx(self, signed: bytes) -> str:
        if self.failed_submissions < self.submit_failures:
            self.failed_submissions += 1
            raise TransportError("connection reset")
        self.submissions.append(signed)
        self.height += 1
        return f"HASH{len(self.submissions)}"

    async def broadcast_commit(self, signed: bytes) -> TxResult:
        self.commits += 1
        self.height += 1
        return self._result("COMMITTED")

    async def get_block_height(self) -> int:
        return self.height

    async def get_tx_by_id(self, tx_hash: str) -> TxResult:
        self.lookups += 1
        if self.not_found is None or self.lookups <= self.not_found:
            raise TxNotFound(tx_hash)
        return self._result(tx_hash)

    async def query_contract(self, address: str, msg: Any) -> Any:
        return {"address": address, "msg": msg}

    async def get_balance(self, address: str, denom: str) -> int:
        return 0

    async def get_contract_info(self, address: str) -> Dict[str, Any]:
        return {"codeId": 1, "codeHash": "ab" * 32, "label": "x"}

    async def close(self) -> None:
        self.closed = True


# ---------- DEVNET MANAGER ----------


def devnet_factory(root: Path, engine: FakeEngine):
    """Manager factory building fast LocalDevnets under `root` on `engine`."""

    def make(chain_id: str, genesis: List[str], port: Optional[int]) -> LocalDevnet:
        return LocalDevnet(
            state_dir=root / chain_id,
            chain_id=chain_id,
            genesis_accounts=genesis,
            engine=engine,
            port=port,
            settle_delay=0.0,
            launch_timeout=5,
        )

    return make
