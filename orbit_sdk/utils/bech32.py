"""
Bech32 address codec (BIP-0173), the format orbit account addresses use.

    addr = encode_bytes("orb", bytes(20))
    hrp, payload, spec = decode_bytes(addr, expected_hrp="orb")   # spec == "bech32"

Bech32m (BIP-0350) strings are accepted by ``decode`` and reported as such, but
addresses are always produced with the classic constant.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple

__all__ = [
    "encode",
    "decode",
    "encode_bytes",
    "decode_bytes",
    "convertbits",
    "is_valid_address",
    "Bech32Error",
    "DEFAULT_HRP",
]

DEFAULT_HRP = "orb"

CHARSET = "qpzry9x8gf2tvdw0s3jn54khce6mua7l"
CHARSET_REV = {c: i for i, c in enumerate(CHARSET)}

_CONSTS = {"bech32": 1, "bech32m": 0x2BC830A3}
_GENERATORS = (0x3B6A57B2, 0x26508E6D, 0x1EA119FA, 0x3D4233DD, 0x2A1462B3)

# BIP-0173 length limit
MAX_LENGTH = 90


class Bech32Error(ValueError):
    pass


def _polymod(values: Iterable[int]) -> int:
    chk = 1
    for v in values:
        top = chk >> 25
        chk = ((chk & 0x1FFFFFF) << 5) ^ v
        for i, gen in enumerate(_GENERATORS):
            if (top >> i) & 1:
                chk ^= gen
    return chk


def _hrp_expand(hrp: str) -> List[int]:
    return [ord(x) >> 5 for x in hrp] + [0] + [ord(x) & 31 for x in hrp]


def _checksum(hrp: str, data: Sequence[int], spec: str) -> List[int]:
    pm = _polymod(_hrp_expand(hrp) + list(data) + [0] * 6) ^ _CONSTS[spec]
    return [(pm >> 5 * (5 - i)) & 31 for i in range(6)]


def _check_hrp(hrp: str) -> None:
    if not hrp or not all("a" <= c <= "z" or "0" <= c <= "9" for c in hrp):
        raise Bech32Error(f"invalid HRP {hrp!r} (lowercase alphanumeric only)")


def encode(hrp: str, data5: Iterable[int], *, spec: str = "bech32") -> str:
    """Encode 5-bit groups under `hrp`."""
    if spec not in _CONSTS:
        raise Bech32Error(f"unknown checksum variant {spec!r}")
    _check_hrp(hrp)
    data = list(data5)
    if any(v < 0 or v > 31 for v in data):
        raise Bech32Error("data values must be in 0..31")
    out = hrp + "1" + "".join(CHARSET[d] for d in data + _checksum(hrp, data, spec))
    if len(out) > MAX_LENGTH:
        raise Bech32Error("encoded string too long")
    return out


def decode(addr: str) -> Tuple[str, List[int], str]:
    """Return (hrp, data5, spec); raise Bech32Error on any malformation."""
    if len(addr) > MAX_LENGTH:
        raise Bech32Error("string too long")
    if any(ord(x) < 33 or ord(x) > 126 for x in addr):
        raise Bech32Error("invalid characters")
    if addr.lower() != addr and addr.upper() != addr:
        raise Bech32Error("mixed case not allowed")
    addr = addr.lower()
    pos = addr.rfind("1")
    if pos < 1 or len(addr) - pos - 1 < 6:
        raise Bech32Error("missing separator or checksum")
    hrp, rest = addr[:pos], addr[pos + 1 :]
    _check_hrp(hrp)
    try:
        data = [CHARSET_REV[c] for c in rest]
    except KeyError:
        raise Bech32Error("invalid charset") from None
    check = _polymod(_hrp_expand(hrp) + data)
    for spec, const in _CONSTS.items():
        if check == const:
            return hrp, data[:-6], spec
    raise Bech32Error("invalid checksum")


def convertbits(data: Iterable[int], from_bits: int, to_bits: int, *, pad: bool = True) -> List[int]:
    """Regroup a sequence of `from_bits`-wide ints into `to_bits`-wide ints."""
    acc = 0
    bits = 0
    ret: List[int] = []
    maxv = (1 << to_bits) - 1
    max_acc = (1 << (from_bits + to_bits - 1)) - 1
    for value in data:
        if value < 0 or value >> from_bits:
            raise Bech32Error("invalid value for convertbits")
        acc = ((acc << from_bits) | value) & max_acc
        bits += from_bits
        while bits >= to_bits:
            bits -= to_bits
            ret.append((acc >> bits) & maxv)
    if pad:
        if bits:
            ret.append((acc << (to_bits - bits)) & maxv)
    elif bits >= from_bits or ((acc << (to_bits - bits)) & maxv):
        raise Bech32Error("non-zero padding")
    return ret


def encode_bytes(hrp: str, payload: bytes, *, spec: str = "bech32") -> str:
    return encode(hrp, convertbits(payload, 8, 5, pad=True), spec=spec)


def decode_bytes(addr: str, *, expected_hrp: Optional[str] = None) -> Tuple[str, bytes, str]:
    hrp, data5, spec = decode(addr)
    if expected_hrp is not None and hrp != expected_hrp:
        raise Bech32Error(f"HRP mismatch: expected {expected_hrp}, got {hrp}")
    return hrp, bytes(convertbits(data5, 5, 8, pad=False)), spec


def is_valid_address(addr: str, expected_hrp: Optional[str] = None) -> bool:
    try:
        decode_bytes(addr, expected_hrp=expected_hrp)
    except Bech32Error:
        return False
    return True
