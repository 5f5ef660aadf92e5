"""
Transactions: message types, canonical encoding and signing, reliable
submission and bundles.
"""

from .bundle import Bundle, SavedBundle
from .encode import SignedTx, build_signed_tx, canonical_json, decode_tx, make_body, tx_hash
from .messages import ExecuteMsg, InstantiateMsg, SendMsg, UploadMsg, execute_msg, instantiate_msg, message_from_dict
from .submit import Phase, ReliableSubmitter, RetryBudgets

__all__ = [
    "Bundle",
    "SavedBundle",
    "SignedTx",
    "build_signed_tx",
    "canonical_json",
    "decode_tx",
    "make_body",
    "tx_hash",
    "ExecuteMsg",
    "InstantiateMsg",
    "SendMsg",
    "UploadMsg",
    "execute_msg",
    "instantiate_msg",
    "message_from_dict",
    "Phase",
    "ReliableSubmitter",
    "RetryBudgets",
]
