"""
Mnemonic helpers: BIP-39 English phrases -> deterministic 32-byte key seeds.

Generation and checksum validation use the `mnemonic` (Trezor) package. The
64-byte BIP-39 seed is then narrowed with HKDF-SHA256 (from `cryptography`)
under a domain-separated `info` string, so one phrase can feed several key
types without reusing material:

    seed64  = BIP39(mnemonic, passphrase)
    keyseed = HKDF-SHA256(salt=b"orbit-sdk", info=b"orbit:<purpose>:<index>", L=32)

The same derivation runs on every devnet genesis account, so an address stored
next to a mnemonic can always be re-derived and checked.
"""

from __future__ import annotations

import unicodedata

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from mnemonic import Mnemonic

_WORDLIST = Mnemonic("english")
_HKDF_SALT = b"orbit-sdk"


def create_mnemonic(num_words: int = 24) -> str:
    """Create a new English mnemonic (12 or 24 words)."""
    if num_words not in (12, 24):
        raise ValueError("num_words must be 12 or 24")
    strength = 128 if num_words == 12 else 256
    return _WORDLIST.generate(strength=strength)


def validate_mnemonic(phrase: str) -> bool:
    """True if `phrase` is a checksum-valid English mnemonic."""
    words = [w for w in phrase.strip().split() if w]
    if len(words) not in (12, 15, 18, 21, 24):
        return False
    return bool(_WORDLIST.check(" ".join(words)))


def mnemonic_to_seed(phrase: str, passphrase: str = "") -> bytes:
    """Standard BIP-39 64-byte seed (PBKDF2-HMAC-SHA512, 2048 rounds)."""
    phrase_n = " ".join(unicodedata.normalize("NFKD", phrase).split())
    return Mnemonic.to_seed(phrase_n, passphrase=passphrase)


def derive_key_seed(phrase: str, *, purpose: str = "ed25519", index: int = 0, passphrase: str = "") -> bytes:
    """32 bytes of key material for `purpose`/`index`, derived from the phrase."""
    if index < 0:
        raise ValueError("index must be non-negative")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=_HKDF_SALT,
        info=f"orbit:{purpose}:{index}".encode("utf-8"),
    )
    return hkdf.derive(mnemonic_to_seed(phrase, passphrase))


__all__ = [
    "create_mnemonic",
    "validate_mnemonic",
    "mnemonic_to_seed",
    "derive_key_seed",
]
