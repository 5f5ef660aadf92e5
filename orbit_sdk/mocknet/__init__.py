"""
In-process simulated chain: no node, no container, same transport capability.
"""

from .backend import GENESIS_BALANCE, Context, ContractError, MockContract, MocknetBackend, TxRejected
from .transport import MocknetTransport

__all__ = [
    "GENESIS_BALANCE",
    "Context",
    "ContractError",
    "MockContract",
    "MocknetBackend",
    "MocknetTransport",
    "TxRejected",
]
