"""
Chain transports: the capability the submitter, agent and bundle talk to.
"""

from .base import EXECUTION_FAILURE_MARKER, BroadcastMode, ChainTransport, TxResult
from .http import HttpTransport

__all__ = [
    "BroadcastMode",
    "ChainTransport",
    "TxResult",
    "EXECUTION_FAILURE_MARKER",
    "HttpTransport",
]
