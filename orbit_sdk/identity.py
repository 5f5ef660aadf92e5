"""
Identities and how an Agent resolves one.

An ``Identity`` is what the caller hands over: a mnemonic (self-sufficient),
or, on dev chains, just the name of a genesis account. ``resolve_identity``
turns it into a signer:

- ``mnemonic`` given: derive the signer from it.
- only ``name`` given: ask the chain's genesis-account lookup (devnet/mocknet).
- ``address`` given as well: it must match what was derived or looked up.

Anything else is a ``ConfigurationError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError
from .logging import get_logger
from .utils.bech32 import DEFAULT_HRP
from .wallet.signer import Ed25519Signer

log = get_logger(__name__)

GenesisLookup = Callable[[str], Awaitable["GenesisAccount"]]

__all__ = [
    "Identity",
    "GenesisAccount",
    "GenesisLookup",
    "resolve_identity",
]


@dataclass(frozen=True)
class Identity:
    name: Optional[str] = None
    address: Optional[str] = None
    mnemonic: Optional[str] = None

    def __repr__(self) -> str:
        # keep mnemonics out of tracebacks and logs
        masked = "***" if self.mnemonic else None
        return f"Identity(name={self.name!r}, address={self.address!r}, mnemonic={masked!r})"

    @classmethod
    def coerce(cls, value: "Identity | Mapping[str, Any] | str | None") -> "Identity":
        """Accept an Identity, a {name, address, mnemonic} mapping or a bare name."""
        if value is None:
            return cls()
        if isinstance(value, Identity):
            return value
        if isinstance(value, str):
            return cls(name=value)
        return cls(
            name=value.get("name"),
            address=value.get("address"),
            mnemonic=value.get("mnemonic"),
        )


@dataclass(frozen=True)
class GenesisAccount:
    """A pre-funded devnet identity; immutable for the life of the devnet."""

    name: str
    address: str
    mnemonic: str

    def __repr__(self) -> str:
        return f"GenesisAccount(name={self.name!r}, address={self.address!r})"

    def to_dict(self) -> Dict[str, str]:
        # on-disk format of wallet/<name>.json
        return {"address": self.address, "mnemonic": self.mnemonic}

    @classmethod
    def from_dict(cls, name: str, data: Mapping[str, Any]) -> "GenesisAccount":
        try:
            return cls(name=name, address=str(data["address"]), mnemonic=str(data["mnemonic"]))
        except KeyError as e:
            raise ConfigurationError(f"genesis account {name!r} is missing {e.args[0]!r}") from None

    def identity(self) -> Identity:
        return Identity(name=self.name, address=self.address, mnemonic=self.mnemonic)


async def resolve_identity(
    identity: Identity,
    *,
    lookup: Optional[GenesisLookup] = None,
    hrp: str = DEFAULT_HRP,
) -> Tuple[Identity, Ed25519Signer]:
    """Return the completed identity and its signer, or raise ConfigurationError."""
    if identity.mnemonic:
        try:
            signer = Ed25519Signer.from_mnemonic(identity.mnemonic, hrp=hrp)
        except ValueError as e:
            raise ConfigurationError(f"identity {identity.name or ''}: {e}") from None
        resolved = Identity(name=identity.name, address=signer.address, mnemonic=identity.mnemonic)
    elif identity.name:
        if lookup is None:
            raise ConfigurationError(
                f"identity {identity.name!r} has no mnemonic and this chain has no genesis accounts"
            )
        account = await lookup(identity.name)
        try:
            signer = Ed25519Signer.from_mnemonic(account.mnemonic, hrp=hrp)
        except ValueError as e:
            raise ConfigurationError(f"genesis account {account.name!r}: {e}") from None
        if signer.address != account.address:
            raise ConfigurationError(
                f"genesis account {account.name!r}: stored address {account.address} "
                f"does not match its mnemonic ({signer.address})"
            )
        resolved = Identity(name=identity.name, address=account.address, mnemonic=account.mnemonic)
    else:
        raise ConfigurationError("identity needs a mnemonic, or a genesis account name on a dev chain")

    if identity.address and identity.address != resolved.address:
        raise ConfigurationError(
            f"address {identity.address} does not match the identity's key ({resolved.address})"
        )
    log.debug("identity_resolved", name=resolved.name, address=resolved.address)
    return resolved, signer
