"""
Transaction encoding.

    body     = {chainId, sender, messages, fee, memo, nonce}   (canonical JSON)
    envelope = {body, pubKey, signature}                       (hex strings)
    tx hash  = uppercase hex SHA-256 of the envelope bytes

A logical transaction is built and signed exactly once (``build_signed_tx``),
so every resubmission of it carries identical bytes and the same hash. The
random ``nonce`` keeps two otherwise identical transactions apart.
"""

from __future__ import annotations

import hashlib
import json
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from ..chain import Fee
from ..wallet.signer import Signer, verify_signature
from .messages import Message

__all__ = [
    "canonical_json",
    "make_body",
    "SignedTx",
    "build_signed_tx",
    "decode_tx",
    "tx_hash",
]


def canonical_json(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def tx_hash(envelope: bytes) -> str:
    return hashlib.sha256(envelope).hexdigest().upper()


def make_body(
    *,
    chain_id: str,
    sender: str,
    messages: Iterable[Message],
    fee: Fee,
    memo: str = "",
    nonce: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "chainId": chain_id,
        "sender": sender,
        "messages": [m.to_dict() for m in messages],
        "fee": fee.to_dict(),
        "memo": memo or "",
        "nonce": nonce or secrets.token_hex(8),
    }


@dataclass(frozen=True)
class SignedTx:
    body: Dict[str, Any]
    public_key: bytes
    signature: bytes

    def to_bytes(self) -> bytes:
        return canonical_json(
            {"body": self.body, "pubKey": self.public_key.hex(), "signature": self.signature.hex()}
        )

    @property
    def hash(self) -> str:
        return tx_hash(self.to_bytes())

    def verify(self) -> bool:
        return verify_signature(self.public_key, canonical_json(self.body), self.signature)


def build_signed_tx(signer: Signer, body: Mapping[str, Any]) -> SignedTx:
    body = dict(body)
    if body.get("sender") != signer.address:
        raise ValueError(f"tx sender {body.get('sender')} is not the signer {signer.address}")
    return SignedTx(body=body, public_key=signer.public_key, signature=signer.sign(canonical_json(body)))


def decode_tx(raw: bytes) -> SignedTx:
    """Parse envelope bytes; raise ValueError if malformed."""
    try:
        env = json.loads(raw.decode("utf-8"))
        return SignedTx(
            body=dict(env["body"]),
            public_key=bytes.fromhex(env["pubKey"]),
            signature=bytes.fromhex(env["signature"]),
        )
    except (UnicodeDecodeError, KeyError, TypeError) as e:
        raise ValueError(f"malformed tx envelope: {e}") from e
