"""
SDK configuration: chain endpoint, retry budgets, devnet settings.

- Loads sane defaults and supports overrides via environment variables (ORBIT_*).
- Validates URLs and numeric values up front; bad input raises ConfigurationError.
- `chain_handle()` turns the configured id/url/mode into a ChainHandle.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from .chain import ChainHandle, ChainMode
from .errors import ConfigurationError
from .version import user_agent

T = TypeVar("T")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v not in (None, "") else default


def _coerce(name: str, raw: Optional[str], conv: Callable[[str], T], default: T) -> T:
    if raw is None:
        return default
    try:
        return conv(raw)
    except ValueError:
        raise ConfigurationError(f"{name}: invalid value {raw!r}") from None


def _ensure_scheme(url: Optional[str], allowed: Tuple[str, ...]) -> Optional[str]:
    if not url:
        return url
    lower = url.lower()
    if not any(lower.startswith(f"{sch}://") for sch in allowed):
        raise ConfigurationError(f"URL must start with {allowed}, got: {url!r}")
    return url


@dataclass
class SDKConfig:
    # Target chain
    chain_id: str = "mocknet"
    chain_url: str = ""
    chain_mode: ChainMode = ChainMode.MOCKNET
    # Transport
    request_timeout: float = 10.0
    # Reliable submission budgets and delays (seconds)
    submit_retries: int = 10
    result_retries: int = 10
    submit_delay: float = 1.0
    block_poll_interval: float = 1.0
    result_retry_delay: float = 2.0
    # Fees and addresses
    gas_price: float = 0.25
    denom: str = "uorb"
    hrp: str = "orb"
    # Devnet
    state_dir: Path = field(default_factory=lambda: Path("state"))
    devnet_platform: str = "orbit_1.0"
    devnet_manager_url: Optional[str] = None
    devnet_launch_timeout: Optional[float] = 120.0
    devnet_settle_delay: float = 7.0
    # Identity
    user_agent: str = field(default_factory=user_agent)

    def __post_init__(self) -> None:
        self.chain_mode = ChainMode.parse(self.chain_mode)
        self.state_dir = Path(self.state_dir)
        if self.submit_retries < 1 or self.result_retries < 1:
            raise ConfigurationError("retry budgets must be at least 1")
        _ensure_scheme(self.chain_url or None, ("http", "https"))
        _ensure_scheme(self.devnet_manager_url, ("http", "https"))

    @classmethod
    def from_env(cls, prefix: str = "ORBIT_") -> "SDKConfig":
        """
        Create config from environment variables:

        ORBIT_CHAIN_ID             chain id (default: mocknet)
        ORBIT_CHAIN_URL            http/https API URL
        ORBIT_CHAIN_MODE           Mainnet | Testnet | Devnet | Mocknet
        ORBIT_TIMEOUT              float seconds, HTTP
        ORBIT_SUBMIT_RETRIES       int
        ORBIT_RESULT_RETRIES       int
        ORBIT_GAS_PRICE            float
        ORBIT_DENOM                str
        ORBIT_STATE_DIR            path (devnet state, saved bundles)
        ORBIT_DEVNET_PLATFORM      platform id, see orbit_sdk.devnet.platforms
        ORBIT_DEVNET_MANAGER_URL   base URL of a remote devnet manager
        ORBIT_DEVNET_TIMEOUT       float seconds to wait for the node to be ready
        """
        p = prefix
        return cls(
            chain_id=_env(f"{p}CHAIN_ID", "mocknet") or "mocknet",
            chain_url=_env(f"{p}CHAIN_URL", "") or "",
            chain_mode=ChainMode.parse(_env(f"{p}CHAIN_MODE", "Mocknet") or "Mocknet"),
            request_timeout=_coerce(f"{p}TIMEOUT", _env(f"{p}TIMEOUT"), float, 10.0),
            submit_retries=_coerce(f"{p}SUBMIT_RETRIES", _env(f"{p}SUBMIT_RETRIES"), int, 10),
            result_retries=_coerce(f"{p}RESULT_RETRIES", _env(f"{p}RESULT_RETRIES"), int, 10),
            gas_price=_coerce(f"{p}GAS_PRICE", _env(f"{p}GAS_PRICE"), float, 0.25),
            denom=_env(f"{p}DENOM", "uorb") or "uorb",
            state_dir=Path(_env(f"{p}STATE_DIR", "state") or "state"),
            devnet_platform=_env(f"{p}DEVNET_PLATFORM", "orbit_1.0") or "orbit_1.0",
            devnet_manager_url=_env(f"{p}DEVNET_MANAGER_URL"),
            devnet_launch_timeout=_coerce(
                f"{p}DEVNET_TIMEOUT", _env(f"{p}DEVNET_TIMEOUT"), float, 120.0
            ),
        )

    @classmethod
    def with_overrides(
        cls, base: Optional["SDKConfig"] = None, **overrides: Any
    ) -> "SDKConfig":
        """
        Build from an existing config plus keyword overrides.
        Unknown keys are ignored.
        """
        base = base or cls.from_env()
        data = base.to_dict()
        data.update({k: v for k, v in overrides.items() if k in data})
        return cls(**data)

    def chain_handle(self) -> ChainHandle:
        return ChainHandle(id=self.chain_id, url=self.chain_url, mode=self.chain_mode)

    def http_headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": self.user_agent,
        }

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


__all__ = ["SDKConfig"]
