"""
orbit_sdk.wallet.signer
=======================

Ed25519 signers for orbit accounts.

A signer is derived deterministically from a mnemonic (see
``orbit_sdk.wallet.mnemonic.derive_key_seed``); its address is the bech32
encoding of the first 20 bytes of SHA-256(public key).

    signer = Ed25519Signer.from_mnemonic(phrase, hrp="orb")
    sig = signer.sign(sign_bytes)
    assert verify_signature(signer.public_key, sign_bytes, sig)

The rest of the SDK only relies on the small ``Signer`` protocol below, so a
hardware or remote signer can be dropped in by implementing it.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ..utils.bech32 import DEFAULT_HRP, encode_bytes
from .mnemonic import derive_key_seed, validate_mnemonic

__all__ = [
    "Signer",
    "SignerInfo",
    "Ed25519Signer",
    "address_from_public_key",
    "verify_signature",
]


@runtime_checkable
class Signer(Protocol):
    @property
    def address(self) -> str: ...

    @property
    def public_key(self) -> bytes: ...

    def sign(self, message: bytes) -> bytes: ...


@dataclass(frozen=True)
class SignerInfo:
    alg_name: str
    public_key: bytes
    address: str


def address_from_public_key(public_key: bytes, hrp: str = DEFAULT_HRP) -> str:
    return encode_bytes(hrp, hashlib.sha256(public_key).digest()[:20])


def verify_signature(public_key: bytes, message: bytes, signature: bytes) -> bool:
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
    except (InvalidSignature, ValueError):
        return False
    return True


class Ed25519Signer:
    """Signs with an Ed25519 key; never exposes the private key bytes."""

    alg_name = "ed25519"

    def __init__(self, private_key: Ed25519PrivateKey, *, hrp: str = DEFAULT_HRP) -> None:
        self._sk = private_key
        self._pk = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        self._address = address_from_public_key(self._pk, hrp)

    @classmethod
    def from_seed(cls, seed: bytes, *, hrp: str = DEFAULT_HRP) -> "Ed25519Signer":
        if len(seed) != 32:
            raise ValueError("Ed25519 seed must be 32 bytes")
        return cls(Ed25519PrivateKey.from_private_bytes(seed), hrp=hrp)

    @classmethod
    def from_mnemonic(cls, phrase: str, *, hrp: str = DEFAULT_HRP, index: int = 0) -> "Ed25519Signer":
        if not validate_mnemonic(phrase):
            raise ValueError("invalid mnemonic phrase")
        return cls.from_seed(derive_key_seed(phrase, purpose="ed25519", index=index), hrp=hrp)

    @property
    def address(self) -> str:
        return self._address

    @property
    def public_key(self) -> bytes:
        return self._pk

    def sign(self, message: bytes) -> bytes:
        return self._sk.sign(message)

    def info(self) -> SignerInfo:
        return SignerInfo(alg_name=self.alg_name, public_key=self._pk, address=self._address)

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"Ed25519Signer(address={self._address!r})"
