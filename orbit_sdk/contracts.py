"""
Result records for code uploads and contract instances.

These are what ``Agent.upload`` and ``Agent.instantiate`` (directly or through
a bundle) hand back. They are plain values; pass ``instance.address`` and
``instance.code_hash`` to ``Agent.execute`` / ``Agent.query``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

__all__ = ["UploadedCode", "ContractInstance"]


@dataclass(frozen=True)
class UploadedCode:
    code_id: int
    code_hash: str
    chain_id: str
    uploaded_by: Optional[str] = None
    upload_tx: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ContractInstance:
    address: str
    code_id: int
    code_hash: str
    label: str
    chain_id: str
    init_by: Optional[str] = None
    init_tx: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ContractInstance":
        return cls(
            address=str(data["address"]),
            code_id=int(data["code_id"]),
            code_hash=str(data["code_hash"]),
            label=str(data["label"]),
            chain_id=str(data["chain_id"]),
            init_by=data.get("init_by"),
            init_tx=data.get("init_tx"),
        )
