"""
Typed error classes for the orbit SDK.

The taxonomy mirrors how failures behave, not where they come from:

- ``TransportError`` (and ``TxNotFound``) are *transient*: the reliable
  submitter absorbs them up to its retry budgets.
- ``SubmissionExhausted`` / ``ResultUnavailable`` are raised once those
  budgets are spent.
- ``ExecutionFailed`` means the transaction landed but its contract logic
  rejected it. It is never retried.
- ``ConfigurationError``, ``BundleProtocolError`` and ``DevnetError`` are
  programmer or setup errors and fail fast.
- ``StateError`` flags a stale devnet state record; ``respawn()`` handles it
  internally by discarding the record.

Everything derives from ``OrbitSdkError`` so callers can catch the whole family.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional

__all__ = [
    "OrbitSdkError",
    "TransportError",
    "TxNotFound",
    "RpcError",
    "JsonRpcCode",
    "SubmissionExhausted",
    "ResultUnavailable",
    "ExecutionFailed",
    "ConfigurationError",
    "StateError",
    "BundleProtocolError",
    "DisallowedInBundle",
    "EmptyBundle",
    "NotBundling",
    "DevnetError",
    "NoGenesisAccount",
    "DevnetAlreadyRunning",
    "DevnetNotReady",
    "from_jsonrpc_error",
    "raise_for_jsonrpc_result",
]


class OrbitSdkError(Exception):
    """Base class for all SDK errors."""


# --- Transport --------------------------------------------------------------


class TransportError(OrbitSdkError):
    """A network-level failure talking to a node. Safe to retry."""


@dataclass(eq=False)
class TxNotFound(TransportError):
    """The node does not (yet) know the transaction with this hash."""

    tx_hash: str

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"tx {self.tx_hash} not found"


class JsonRpcCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    SERVER_ERROR = -32000

    # Custom range used by chain nodes
    TX_NOT_FOUND = -32004
    TX_REJECTED = -32011


@dataclass(eq=False)
class RpcError(OrbitSdkError):
    """Raised when a JSON-RPC call returns an error object."""

    method: Optional[str]
    code: int
    message: str
    data: Optional[Any] = None
    http_status: Optional[int] = None

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:  # pragma: no cover - trivial
        parts = [f"RPC[{self.method or '-'}] code={self.code} msg={self.message!r}"]
        if self.http_status is not None:
            parts.append(f"http={self.http_status}")
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)

    @property
    def code_enum(self) -> Optional[JsonRpcCode]:
        try:
            return JsonRpcCode(self.code)
        except ValueError:
            return None


# --- Submission outcomes -----------------------------------------------------


@dataclass(eq=False)
class SubmissionExhausted(OrbitSdkError):
    """The network never accepted the transaction within the submit budget."""

    attempts: int
    last_error: Optional[BaseException] = None

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"submitting tx failed after {self.attempts} attempts: {self.last_error!r}"


@dataclass(eq=False)
class ResultUnavailable(OrbitSdkError):
    """The transaction was accepted but its result never became queryable."""

    tx_hash: Optional[str]
    submissions: int
    polls: int

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:  # pragma: no cover - trivial
        return (
            f"result of tx {self.tx_hash} unavailable after "
            f"{self.submissions} submissions and {self.polls} polls"
        )


@dataclass(eq=False)
class ExecutionFailed(OrbitSdkError):
    """
    Raised when a transaction was included in a block but its execution failed.

    ``raw_log`` is the chain's execution report, verbatim.
    """

    tx_hash: Optional[str]
    raw_log: str
    code: Optional[int] = None
    height: Optional[int] = None

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:  # pragma: no cover - trivial
        code = f" code={self.code}" if self.code is not None else ""
        return f"tx {self.tx_hash} failed{code}: {self.raw_log}"


# --- Setup / programmer errors -----------------------------------------------


class ConfigurationError(OrbitSdkError, ValueError):
    """Missing or inconsistent configuration (identity, devnet params, env)."""


@dataclass(eq=False)
class StateError(OrbitSdkError):
    """A persisted devnet state record refers to a node that is not running."""

    message: str
    path: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.message} ({self.path})" if self.path else self.message


class BundleProtocolError(OrbitSdkError):
    """Base for misuse of the bundle API."""


@dataclass(eq=False)
class DisallowedInBundle(BundleProtocolError):
    operation: str

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"operation not allowed in bundle: {self.operation}"


class EmptyBundle(BundleProtocolError):
    def __init__(self, action: str = "submit") -> None:
        super().__init__(f"can't {action} a bundle with no messages")


class NotBundling(BundleProtocolError):
    def __init__(self, action: str = "submit") -> None:
        super().__init__(f"can't {action}: bundle is not open (call agent.bundle() first)")


# --- Devnet ------------------------------------------------------------------


class DevnetError(OrbitSdkError):
    """Base for devnet lifecycle errors."""


@dataclass(eq=False)
class NoGenesisAccount(DevnetError):
    name: str
    chain_id: Optional[str] = None

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = f" on {self.chain_id}" if self.chain_id else ""
        return f"no genesis account named {self.name!r}{where}"


@dataclass(eq=False)
class DevnetAlreadyRunning(DevnetError):
    chain_id: Optional[str] = None
    port: Optional[int] = None

    def __post_init__(self) -> None:
        super().__init__(str(self))

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"Node already running ({self.chain_id or '?'} on port {self.port or '?'})"


class DevnetNotReady(DevnetError, TimeoutError):
    """The node did not report readiness before the caller's deadline."""


# --- JSON-RPC helpers --------------------------------------------------------


def from_jsonrpc_error(
    err_obj: Dict[str, Any],
    *,
    method: Optional[str] = None,
    http_status: Optional[int] = None,
) -> RpcError:
    """
    Convert a JSON-RPC error object into RpcError.

    `err_obj` should resemble: {"code": int, "message": str, "data": any?}
    """
    return RpcError(
        method=method,
        code=int(err_obj.get("code", JsonRpcCode.SERVER_ERROR)),
        message=str(err_obj.get("message", "Unknown JSON-RPC error")),
        data=err_obj.get("data"),
        http_status=http_status,
    )


def raise_for_jsonrpc_result(
    result: Dict[str, Any],
    *,
    method: Optional[str] = None,
    http_status: Optional[int] = None,
) -> None:
    """If `result` contains a non-null "error" field, raise RpcError."""
    if "error" in result and result["error"] is not None:
        raise from_jsonrpc_error(result["error"], method=method, http_status=http_status)
