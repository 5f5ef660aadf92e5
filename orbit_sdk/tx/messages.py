"""
Transaction messages.

``InstantiateMsg`` and ``ExecuteMsg`` are the two message kinds a bundle may
queue (``BundleMessage``); ``UploadMsg`` only ever travels alone. Each
serializes to a JSON object tagged by ``"type"`` so saved bundles and tx bodies
can be decoded back with ``message_from_dict``.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..chain import Coin, normalize_funds
from ..contracts import ContractInstance, UploadedCode
from ..errors import ConfigurationError

__all__ = [
    "InstantiateMsg",
    "ExecuteMsg",
    "UploadMsg",
    "SendMsg",
    "BundleMessage",
    "Message",
    "message_from_dict",
    "instantiate_msg",
    "execute_msg",
]


@dataclass(frozen=True)
class InstantiateMsg:
    code_id: int
    code_hash: str
    label: str
    msg: Any
    funds: List[Coin] = field(default_factory=list)

    type = "instantiate"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "codeId": str(self.code_id),
            "codeHash": self.code_hash,
            "label": self.label,
            "msg": self.msg,
            "funds": [c.to_dict() for c in self.funds],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "InstantiateMsg":
        return cls(
            code_id=int(data["codeId"]),
            code_hash=str(data["codeHash"]),
            label=str(data["label"]),
            msg=data.get("msg"),
            funds=normalize_funds(data.get("funds")),
        )


@dataclass(frozen=True)
class ExecuteMsg:
    address: str
    code_hash: str
    msg: Any
    funds: List[Coin] = field(default_factory=list)

    type = "execute"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "contract": self.address,
            "codeHash": self.code_hash,
            "msg": self.msg,
            "funds": [c.to_dict() for c in self.funds],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ExecuteMsg":
        return cls(
            address=str(data["contract"]),
            code_hash=str(data.get("codeHash", "")),
            msg=data.get("msg"),
            funds=normalize_funds(data.get("funds")),
        )


@dataclass(frozen=True)
class UploadMsg:
    code: bytes

    type = "upload"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "code": base64.b64encode(self.code).decode("ascii")}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UploadMsg":
        return cls(code=base64.b64decode(data["code"]))


@dataclass(frozen=True)
class SendMsg:
    recipient: str
    amount: List[Coin]

    type = "send"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "to": self.recipient, "amount": [c.to_dict() for c in self.amount]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SendMsg":
        return cls(recipient=str(data["to"]), amount=normalize_funds(data.get("amount")))


BundleMessage = Union[InstantiateMsg, ExecuteMsg]
Message = Union[InstantiateMsg, ExecuteMsg, UploadMsg, SendMsg]

_BY_TYPE = {cls.type: cls for cls in (InstantiateMsg, ExecuteMsg, UploadMsg, SendMsg)}


def message_from_dict(data: Mapping[str, Any]) -> Message:
    try:
        cls = _BY_TYPE[data["type"]]
    except KeyError:
        raise ValueError(f"unknown message type: {data.get('type')!r}") from None
    return cls.from_dict(data)


# --- builders shared by Agent and Bundle ------------------------------------


def instantiate_msg(
    code: Union[UploadedCode, int],
    label: str,
    msg: Any,
    *,
    code_hash: Optional[str] = None,
    funds: Optional[Iterable[Any]] = None,
) -> InstantiateMsg:
    if isinstance(code, UploadedCode):
        code_id, code_hash = code.code_id, code_hash or code.code_hash
    else:
        code_id = int(code)
    if not code_hash:
        raise ConfigurationError(f"instantiate of code {code_id}: code hash is required")
    if not label:
        raise ConfigurationError(f"instantiate of code {code_id}: label is required")
    return InstantiateMsg(code_id=code_id, code_hash=code_hash, label=label, msg=msg, funds=normalize_funds(funds))


def execute_msg(
    contract: Union[ContractInstance, str],
    msg: Any,
    *,
    code_hash: Optional[str] = None,
    funds: Optional[Iterable[Any]] = None,
) -> ExecuteMsg:
    if isinstance(contract, ContractInstance):
        address, code_hash = contract.address, code_hash or contract.code_hash
    else:
        address = str(contract)
    return ExecuteMsg(address=address, code_hash=code_hash or "", msg=msg, funds=normalize_funds(funds))
