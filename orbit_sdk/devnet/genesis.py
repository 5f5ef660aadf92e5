"""
One-time genesis of a devnet.

Layout under the devnet's state directory:

    wallet/<name>.json   {address, mnemonic} of each genesis account
    genesis.json         the canonical genesis artifact, mounted into the node

``genesis.json`` is written last, so its presence means genesis is complete
and is never re-run. Wallet files left behind by an interrupted run are reused
rather than regenerated.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from ..chain import Coin
from ..errors import ConfigurationError, NoGenesisAccount
from ..identity import GenesisAccount
from ..logging import get_logger
from ..utils.bech32 import DEFAULT_HRP
from ..utils.files import atomic_write_json, read_json, safe_name
from ..wallet.mnemonic import create_mnemonic
from ..wallet.signer import Ed25519Signer

log = get_logger(__name__)

__all__ = [
    "GENESIS_ALLOCATION",
    "GENESIS_SELF_STAKE",
    "GENESIS_FILE",
    "WALLET_DIR",
    "generate_chain_id",
    "GenesisStore",
]

GENESIS_ALLOCATION = 1_000_000_000_000_000_000
GENESIS_SELF_STAKE = 1_000_000
GENESIS_FILE = "genesis.json"
WALLET_DIR = "wallet"


def generate_chain_id(prefix: str = "devnet") -> str:
    return f"{prefix}-{secrets.token_hex(4)}"


class GenesisStore:
    def __init__(self, state_dir: Union[str, Path], *, hrp: str = DEFAULT_HRP, denom: str = "uorb") -> None:
        self.state_dir = Path(state_dir)
        self.hrp = hrp
        self.denom = denom

    @property
    def genesis_path(self) -> Path:
        return self.state_dir / GENESIS_FILE

    @property
    def wallet_dir(self) -> Path:
        return self.state_dir / WALLET_DIR

    def exists(self) -> bool:
        return self.genesis_path.exists()

    def load(self) -> Optional[Dict[str, Any]]:
        return read_json(self.genesis_path)

    def chain_id(self) -> Optional[str]:
        doc = self.load()
        return str(doc["chainId"]) if doc else None

    def names(self) -> List[str]:
        if not self.wallet_dir.is_dir():
            return []
        return sorted(p.stem for p in self.wallet_dir.glob("*.json"))

    def account(self, name: str, chain_id: Optional[str] = None) -> GenesisAccount:
        path = self.wallet_dir / f"{safe_name(name, 'account name')}.json"
        try:
            data = read_json(path)
        except ValueError as e:
            raise ConfigurationError(f"unreadable genesis account file {path}: {e}") from e
        if data is None:
            raise NoGenesisAccount(name, chain_id)
        if not isinstance(data, dict):
            raise ConfigurationError(f"genesis account file {path} is not an object")
        return GenesisAccount.from_dict(name, data)

    def _account_or_create(self, name: str) -> GenesisAccount:
        try:
            return self.account(name)
        except NoGenesisAccount:
            pass
        mnemonic = create_mnemonic(24)
        signer = Ed25519Signer.from_mnemonic(mnemonic, hrp=self.hrp)
        account = GenesisAccount(name=name, address=signer.address, mnemonic=mnemonic)
        atomic_write_json(self.wallet_dir / f"{name}.json", account.to_dict())
        log.info("genesis_account_created", name=name, address=account.address)
        return account

    def run(self, chain_id: str, names: Iterable[str]) -> Dict[str, Any]:
        """Create accounts and the genesis artifact; a no-op returning it if it exists."""
        existing = self.load()
        if existing is not None:
            if existing.get("chainId") != chain_id:
                raise ConfigurationError(
                    f"{self.genesis_path} belongs to {existing.get('chainId')!r}, not {chain_id!r}"
                )
            log.debug("genesis_exists", chain_id=chain_id, path=str(self.genesis_path))
            return existing

        safe_name(chain_id, "chain id")
        names = [safe_name(n, "account name") for n in names]
        if not names:
            raise ConfigurationError("a devnet needs at least one genesis account")
        if len(set(names)) != len(names):
            raise ConfigurationError(f"duplicate genesis account names: {names}")

        log.info("devnet_genesis", chain_id=chain_id, accounts=names)
        accounts = [self._account_or_create(name) for name in names]
        validator = accounts[0]
        doc: Dict[str, Any] = {
            "chainId": chain_id,
            "genesisTime": datetime.now(timezone.utc).isoformat(),
            "denom": self.denom,
            "accounts": [
                {
                    "name": a.name,
                    "address": a.address,
                    "coins": [Coin(GENESIS_ALLOCATION, self.denom).to_dict()],
                }
                for a in accounts
            ],
            "gentxs": [
                {
                    "validator": validator.name,
                    "address": validator.address,
                    "selfStake": Coin(GENESIS_SELF_STAKE, self.denom).to_dict(),
                }
            ],
        }
        atomic_write_json(self.genesis_path, doc)
        return doc
