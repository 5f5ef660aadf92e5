"""
Utility helpers for the orbit SDK.

Re-exports:
- bech32: address codec primitives
- files: atomic JSON writes
"""

from .bech32 import Bech32Error, decode_bytes, encode_bytes, is_valid_address
from .files import atomic_write_json, read_json, safe_name

__all__ = [
    "Bech32Error",
    "encode_bytes",
    "decode_bytes",
    "is_valid_address",
    "atomic_write_json",
    "read_json",
    "safe_name",
]
