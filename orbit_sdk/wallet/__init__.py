"""
orbit_sdk.wallet
================

Convenience exports for wallet helpers:

- Mnemonic utilities (create/validate, seed derivation).
- Ed25519 signer derived from a mnemonic, address derivation.
"""

from .mnemonic import create_mnemonic, derive_key_seed, mnemonic_to_seed, validate_mnemonic
from .signer import Ed25519Signer, Signer, address_from_public_key, verify_signature

__all__ = [
    # mnemonic
    "create_mnemonic",
    "validate_mnemonic",
    "mnemonic_to_seed",
    "derive_key_seed",
    # signers
    "Signer",
    "Ed25519Signer",
    "address_from_public_key",
    "verify_signature",
]
