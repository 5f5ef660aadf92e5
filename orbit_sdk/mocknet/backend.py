"""
Mocknet: an in-process chain.

No node, no container: ``MocknetBackend`` keeps a bank, a code store and
contract instances in memory and commits each transaction in its own block.
Contracts are plain Python classes registered against the code bytes that
"implement" them:

    class Counter(MockContract):
        def init(self, ctx, msg):
            self.count = msg.get("start", 0)

        def handle(self, ctx, msg):
            if "inc" in msg:
                self.count += 1
                return {"count": self.count}
            raise ContractError("unknown message")

        def query(self, msg):
            return {"count": self.count}

    backend = MocknetBackend("mocknet")
    code = backend.register(Counter)          # bytes to upload
    agent = await connect(ChainHandle.mocknet(), "Admin", mocknet=backend)
    template = await agent.upload(code)

Transactions are atomic: every message runs against a snapshot, and if any
message raises, all state changes are rolled back and the tx is still
included with ``code=1`` and a raw log of the form
``failed to execute message; message index: <i>: <reason>``.
Envelopes are signature-checked like on a real chain; fees are not charged.
"""

from __future__ import annotations

import copy
import hashlib
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type

from ..chain import Coin, normalize_funds
from ..errors import NoGenesisAccount
from ..identity import GenesisAccount
from ..logging import get_logger
from ..transport.base import EXECUTION_FAILURE_MARKER, TxResult
from ..tx.encode import decode_tx, tx_hash
from ..tx.messages import ExecuteMsg, InstantiateMsg, SendMsg, UploadMsg, message_from_dict
from ..utils.bech32 import DEFAULT_HRP, encode_bytes
from ..wallet.mnemonic import create_mnemonic
from ..wallet.signer import Ed25519Signer, address_from_public_key

log = get_logger(__name__)

__all__ = [
    "ContractError",
    "TxRejected",
    "Context",
    "MockContract",
    "MocknetBackend",
    "GENESIS_BALANCE",
]

GENESIS_BALANCE = 1_000_000_000_000_000_000


class ContractError(Exception):
    """Raised by contract code to abort the current transaction."""


class TxRejected(ValueError):
    """The envelope never made it into a block (bad signature, wrong chain...)."""


class _Bank:
    def __init__(self, balances: Dict[Tuple[str, str], int]) -> None:
        self._balances = balances

    def balance(self, address: str, denom: str) -> int:
        return self._balances.get((address, denom), 0)

    def mint(self, address: str, coin: Coin) -> None:
        key = (address, coin.denom)
        self._balances[key] = self._balances.get(key, 0) + int(coin.amount)

    def transfer(self, sender: str, recipient: str, coins_: List[Coin]) -> None:
        for c in coins_:
            have = self.balance(sender, c.denom)
            if have < c.amount:
                raise ContractError(f"insufficient funds: {sender} has {have}{c.denom}, needs {c.amount}{c.denom}")
            self._balances[(sender, c.denom)] = have - c.amount
            self.mint(recipient, c)


@dataclass
class Context:
    """What a contract sees while handling one message."""

    sender: str
    contract: str
    funds: List[Coin]
    height: int
    chain_id: str
    _bank: _Bank = field(repr=False)

    def balance(self, denom: str, address: Optional[str] = None) -> int:
        return self._bank.balance(address or self.contract, denom)

    def send(self, recipient: str, amount: int, denom: str) -> None:
        """Pay out of the contract's own balance."""
        self._bank.transfer(self.contract, recipient, [Coin(amount, denom)])


class MockContract:
    """Base class for mocknet contracts; subclass and override what you need."""

    def init(self, ctx: Context, msg: Any) -> Optional[Mapping[str, Any]]:
        return None

    def handle(self, ctx: Context, msg: Any) -> Optional[Mapping[str, Any]]:
        raise ContractError("this contract does not handle messages")

    def query(self, msg: Any) -> Any:
        raise ContractError("this contract does not answer queries")


@dataclass
class _Code:
    code_id: int
    code_hash: str
    code: bytes
    uploader: str


@dataclass
class _Instance:
    address: str
    code_id: int
    code_hash: str
    label: str
    creator: str
    contract: MockContract


@dataclass
class _State:
    balances: Dict[Tuple[str, str], int] = field(default_factory=dict)
    codes: Dict[int, _Code] = field(default_factory=dict)
    instances: Dict[str, _Instance] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)
    next_code_id: int = 1
    next_instance: int = 1


def _attrs(pairs: Mapping[str, Any]) -> List[Dict[str, str]]:
    return [{"key": str(k), "value": str(v)} for k, v in pairs.items()]


class MocknetBackend:
    def __init__(
        self,
        chain_id: str = "mocknet",
        *,
        hrp: str = DEFAULT_HRP,
        denom: str = "uorb",
        genesis_balance: int = GENESIS_BALANCE,
    ) -> None:
        self.chain_id = chain_id
        self.hrp = hrp
        self.denom = denom
        self.genesis_balance = genesis_balance
        self.height = 0
        self.accounts: Dict[str, GenesisAccount] = {}
        self.txs: Dict[str, TxResult] = {}
        self._impls: Dict[str, Type[MockContract]] = {}
        self._state = _State()

    # --- setup ------------------------------------------------------------

    def register(self, contract_cls: Type[MockContract], code: Optional[bytes] = None) -> bytes:
        """Bind `contract_cls` to `code` (default: derived from the class name); return the code."""
        code = code if code is not None else f"mocknet:{contract_cls.__module__}.{contract_cls.__qualname__}".encode()
        self._impls[hashlib.sha256(code).hexdigest()] = contract_cls
        return code

    def get_genesis_account(self, name: str, *, create: bool = True) -> GenesisAccount:
        """Pre-funded account `name`; created on first request unless `create` is False."""
        account = self.accounts.get(name)
        if account is not None:
            return account
        if not create:
            raise NoGenesisAccount(name, self.chain_id)
        mnemonic = create_mnemonic(24)
        signer = Ed25519Signer.from_mnemonic(mnemonic, hrp=self.hrp)
        account = GenesisAccount(name=name, address=signer.address, mnemonic=mnemonic)
        self.accounts[name] = account
        _Bank(self._state.balances).mint(account.address, Coin(self.genesis_balance, self.denom))
        log.debug("mocknet_genesis_account", name=name, address=account.address)
        return account

    # --- reads ------------------------------------------------------------

    def balance(self, address: str, denom: str) -> int:
        return _Bank(self._state.balances).balance(address, denom)

    def contract_info(self, address: str) -> Dict[str, Any]:
        inst = self._instance(address)
        return {"codeId": inst.code_id, "codeHash": inst.code_hash, "label": inst.label}

    def query(self, address: str, msg: Any) -> Any:
        # queries run on a copy so they can never mutate state
        return copy.deepcopy(self._instance(address).contract).query(msg)

    def _instance(self, address: str) -> _Instance:
        try:
            return self._state.instances[address]
        except KeyError:
            raise ContractError(f"no contract at {address}") from None

    # --- transactions -----------------------------------------------------

    def deliver(self, raw: bytes) -> TxResult:
        """Verify, execute and commit one envelope in a new block."""
        txid = tx_hash(raw)
        if txid in self.txs:
            # identical bytes were already committed
            return self.txs[txid]

        tx = decode_tx(raw)
        body = tx.body
        if body.get("chainId") != self.chain_id:
            raise TxRejected(f"wrong chain id {body.get('chainId')!r}, expected {self.chain_id!r}")
        if not tx.verify():
            raise TxRejected("signature verification failed")
        sender = str(body.get("sender"))
        if address_from_public_key(tx.public_key, self.hrp) != sender:
            raise TxRejected(f"public key does not belong to sender {sender}")
        messages = [message_from_dict(m) for m in body.get("messages", [])]
        if not messages:
            raise TxRejected("transaction has no messages")

        height = self.height + 1
        snapshot = copy.deepcopy(self._state)
        logs: List[Dict[str, Any]] = []
        code, raw_log = 0, ""
        for index, msg in enumerate(messages):
            try:
                events = self._apply(msg, sender, height)
            except Exception as e:  # noqa: BLE001 - contract code is untrusted
                self._state = snapshot
                logs = []
                code = 1
                raw_log = f"{EXECUTION_FAILURE_MARKER}; message index: {index}: {e}"
                break
            logs.append({"msg_index": index, "events": events})

        self.height = height
        gas = int(body.get("fee", {}).get("gas", 0))
        result = TxResult(
            tx_hash=txid,
            height=height,
            code=code,
            raw_log=raw_log or "[]",
            logs=logs,
            gas_wanted=gas,
            gas_used=gas // 2,
        )
        self.txs[txid] = result
        log.debug("mocknet_block", height=height, tx_hash=txid, code=code, messages=len(messages))
        return result

    def _apply(self, msg: Any, sender: str, height: int) -> List[Dict[str, Any]]:
        st = self._state
        bank = _Bank(st.balances)
        action = {"type": "message", "attributes": _attrs({"action": msg.type, "sender": sender})}

        if isinstance(msg, UploadMsg):
            code_hash = hashlib.sha256(msg.code).hexdigest()
            code_id = st.next_code_id
            st.next_code_id += 1
            st.codes[code_id] = _Code(code_id=code_id, code_hash=code_hash, code=msg.code, uploader=sender)
            return [action, {"type": "store_code", "attributes": _attrs({"code_id": code_id, "code_hash": code_hash})}]

        if isinstance(msg, InstantiateMsg):
            stored = st.codes.get(msg.code_id)
            if stored is None:
                raise ContractError(f"no code with id {msg.code_id}")
            if msg.code_hash and msg.code_hash != stored.code_hash:
                raise ContractError(f"code hash mismatch for code {msg.code_id}")
            if msg.label in st.labels:
                raise ContractError(f"label {msg.label!r} already in use")
            impl = self._impls.get(stored.code_hash)
            if impl is None:
                raise ContractError(f"no implementation registered for code hash {stored.code_hash}")
            seed = f"{self.chain_id}:{msg.code_id}:{st.next_instance}:{msg.label}".encode()
            st.next_instance += 1
            address = encode_bytes(self.hrp, hashlib.sha256(seed).digest()[:20])
            funds = normalize_funds(msg.funds)
            bank.transfer(sender, address, funds)
            contract = impl()
            response = contract.init(Context(sender, address, funds, height, self.chain_id, bank), msg.msg)
            st.instances[address] = _Instance(
                address=address,
                code_id=msg.code_id,
                code_hash=stored.code_hash,
                label=msg.label,
                creator=sender,
                contract=contract,
            )
            st.labels[msg.label] = address
            events = [
                action,
                {"type": "instantiate", "attributes": _attrs({"contract_address": address, "code_id": msg.code_id})},
            ]
            if response:
                events.append({"type": "wasm", "attributes": _attrs(response)})
            return events

        if isinstance(msg, ExecuteMsg):
            inst = self._instance(msg.address)
            if msg.code_hash and msg.code_hash != inst.code_hash:
                raise ContractError(f"code hash mismatch for contract {msg.address}")
            funds = normalize_funds(msg.funds)
            bank.transfer(sender, msg.address, funds)
            response = inst.contract.handle(Context(sender, msg.address, funds, height, self.chain_id, bank), msg.msg)
            events = [action, {"type": "execute", "attributes": _attrs({"contract_address": msg.address})}]
            if response:
                events.append({"type": "wasm", "attributes": _attrs(response)})
            return events

        if isinstance(msg, SendMsg):
            bank.transfer(sender, msg.recipient, msg.amount)
            return [action, {"type": "transfer", "attributes": _attrs({"recipient": msg.recipient, "sender": sender})}]

        raise ContractError(f"unsupported message type {type(msg).__name__}")
