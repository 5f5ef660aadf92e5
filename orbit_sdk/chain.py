"""
Chain descriptors.

A ``ChainHandle`` names a target network: its chain id, the URL of its API and
its *mode*. The mode is a tag, not a class: ``orbit_sdk.connect`` looks it up to
pick the transport and identity-resolution strategy for an Agent.

    mainnet = ChainHandle.mainnet("orbit-1", "https://rpc.example.org")
    local   = ChainHandle.mocknet()

Also defines the small value types shared by every mode: coins, fees and the
per-operation gas schedule.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import ConfigurationError

__all__ = [
    "ChainMode",
    "ChainHandle",
    "Coin",
    "Fee",
    "DEFAULT_FEES",
    "coins",
    "fee_for",
    "normalize_funds",
]


class ChainMode(str, Enum):
    MAINNET = "Mainnet"
    TESTNET = "Testnet"
    DEVNET = "Devnet"
    MOCKNET = "Mocknet"

    @classmethod
    def parse(cls, value: "str | ChainMode") -> "ChainMode":
        if isinstance(value, ChainMode):
            return value
        v = str(value).strip().lower()
        for mode in cls:
            if mode.value.lower() == v:
                return mode
        raise ConfigurationError(f"unknown chain mode: {value!r}")


@dataclass(frozen=True)
class ChainHandle:
    """Immutable identifier of a target network."""

    id: str
    url: str
    mode: ChainMode

    def __post_init__(self) -> None:
        if not self.id:
            raise ConfigurationError("chain id must not be empty")
        if self.mode is not ChainMode.MOCKNET and not self.url:
            raise ConfigurationError(f"chain {self.id}: url must not be empty")

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.mode.value}: {self.id} @ {self.url or '(in-process)'}"

    # --- constructors per mode ---------------------------------------------

    @classmethod
    def mainnet(cls, id: str, url: str) -> "ChainHandle":
        return cls(id=id, url=url, mode=ChainMode.MAINNET)

    @classmethod
    def testnet(cls, id: str, url: str) -> "ChainHandle":
        return cls(id=id, url=url, mode=ChainMode.TESTNET)

    @classmethod
    def devnet(cls, id: str, url: str) -> "ChainHandle":
        return cls(id=id, url=url, mode=ChainMode.DEVNET)

    @classmethod
    def mocknet(cls, id: str = "mocknet", url: str = "") -> "ChainHandle":
        return cls(id=id, url=url, mode=ChainMode.MOCKNET)

    # --- mode predicates ----------------------------------------------------

    @property
    def is_mainnet(self) -> bool:
        return self.mode is ChainMode.MAINNET

    @property
    def is_testnet(self) -> bool:
        return self.mode is ChainMode.TESTNET

    @property
    def is_devnet(self) -> bool:
        return self.mode is ChainMode.DEVNET

    @property
    def is_mocknet(self) -> bool:
        return self.mode is ChainMode.MOCKNET

    @property
    def dev_mode(self) -> bool:
        """Devnet or mocknet: state is disposable and identities are pre-funded."""
        return self.is_devnet or self.is_mocknet


@dataclass(frozen=True)
class Coin:
    amount: int
    denom: str

    def __post_init__(self) -> None:
        if int(self.amount) < 0:
            raise ValueError("coin amount must be non-negative")

    def to_dict(self) -> Dict[str, str]:
        # amounts travel as strings so 128-bit values survive JSON
        return {"amount": str(int(self.amount)), "denom": self.denom}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Coin":
        return cls(amount=int(data["amount"]), denom=str(data["denom"]))


def coins(amount: int, denom: str) -> List[Coin]:
    """Shorthand for a single-denomination coin list."""
    return [Coin(int(amount), denom)]


@dataclass(frozen=True)
class Fee:
    gas: int
    amount: List[Coin] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"gas": str(self.gas), "amount": [c.to_dict() for c in self.amount]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Fee":
        return cls(
            gas=int(data["gas"]),
            amount=[Coin.from_dict(c) for c in data.get("amount", [])],
        )


# Gas limits per operation kind.
DEFAULT_FEES: Dict[str, int] = {
    "upload": 10_000_000,
    "init": 10_000_000,
    "exec": 1_000_000,
    "send": 1_000_000,
}


def fee_for(
    kind: str,
    fees: Mapping[str, int],
    *,
    gas_price: float,
    denom: str,
    multiplier: int = 1,
) -> Fee:
    """Build a Fee for `kind` from a gas schedule; `multiplier` scales gas (bundles)."""
    try:
        gas = int(fees[kind]) * max(1, int(multiplier))
    except KeyError:
        raise ConfigurationError(f"no gas limit configured for {kind!r}") from None
    amount = math.ceil(gas * gas_price)
    return Fee(gas=gas, amount=[Coin(amount, denom)] if amount else [])


def normalize_funds(funds: Optional[Iterable[Any]]) -> List[Coin]:
    out: List[Coin] = []
    for c in funds or ():
        out.append(c if isinstance(c, Coin) else Coin.from_dict(c))
    return out
