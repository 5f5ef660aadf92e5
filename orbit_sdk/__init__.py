"""
Orbit SDK: Python client for Orbit chains.
Convenience exports for the most common client APIs.
"""

from .version import __version__  # noqa: F401

# Core config & errors
from .config import SDKConfig  # noqa: F401
from .errors import (  # noqa: F401
    BundleProtocolError,
    ConfigurationError,
    DevnetError,
    ExecutionFailed,
    OrbitSdkError,
    ResultUnavailable,
    SubmissionExhausted,
    TransportError,
)

# Chains & identities
from .chain import ChainHandle, ChainMode, Coin, Fee  # noqa: F401
from .identity import GenesisAccount, Identity  # noqa: F401
from .contracts import ContractInstance, UploadedCode  # noqa: F401

# Connections
from .agent import Agent  # noqa: F401
from .connect import connect  # noqa: F401
from .transport import BroadcastMode, HttpTransport, TxResult  # noqa: F401
from .tx import Bundle, ReliableSubmitter  # noqa: F401

# Dev chains
from .mocknet import MockContract, MocknetBackend, MocknetTransport  # noqa: F401
from .devnet import LocalDevnet, RemoteDevnet  # noqa: F401

# Logging
from .logging import get_logger, setup_logging  # noqa: F401

__all__ = [
    "__version__",
    # Core
    "SDKConfig",
    "OrbitSdkError", "TransportError", "SubmissionExhausted", "ResultUnavailable",
    "ExecutionFailed", "ConfigurationError", "BundleProtocolError", "DevnetError",
    # Chains
    "ChainHandle", "ChainMode", "Coin", "Fee",
    "Identity", "GenesisAccount",
    "UploadedCode", "ContractInstance",
    # Connections
    "Agent", "connect",
    "BroadcastMode", "HttpTransport", "TxResult",
    "Bundle", "ReliableSubmitter",
    # Dev chains
    "MockContract", "MocknetBackend", "MocknetTransport",
    "LocalDevnet", "RemoteDevnet",
    # Logging
    "setup_logging", "get_logger",
]
