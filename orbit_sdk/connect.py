"""
``connect()``: from a ChainHandle and an identity to a ready Agent.

The chain's mode picks the binding: which transport to talk through and
where names without a mnemonic are looked up.

    mode      transport         genesis lookup
    Mainnet   HttpTransport     none (a mnemonic is required)
    Testnet   HttpTransport     none (a mnemonic is required)
    Devnet    HttpTransport     the Devnet's genesis accounts
    Mocknet   MocknetTransport  the backend's genesis accounts

Examples:

    agent = await connect(ChainHandle.testnet("orbit-test-3", url), {"mnemonic": phrase})

    async with LocalDevnet(state_dir="state/devnet") as devnet:
        alice = await connect(devnet.chain, "Alice", devnet=devnet)

    backend = MocknetBackend()
    admin = await connect(ChainHandle.mocknet(), "Admin", mocknet=backend)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional, Tuple

from .agent import Agent
from .chain import ChainHandle, ChainMode
from .config import SDKConfig
from .errors import ConfigurationError
from .identity import GenesisAccount, GenesisLookup, Identity, resolve_identity
from .logging import get_logger
from .mocknet.backend import MocknetBackend
from .mocknet.transport import MocknetTransport
from .transport.base import ChainTransport
from .transport.http import HttpTransport
from .tx.submit import ReliableSubmitter

if TYPE_CHECKING:  # pragma: no cover
    from .devnet.base import Devnet

log = get_logger(__name__)

__all__ = ["ModeBinding", "connect", "binding_for", "register_binding"]


@dataclass(frozen=True)
class _BindArgs:
    chain: ChainHandle
    config: SDKConfig
    devnet: Optional["Devnet"]
    mocknet: Optional[MocknetBackend]


Binder = Callable[[_BindArgs], Tuple[ChainTransport, Optional[GenesisLookup]]]


@dataclass(frozen=True)
class ModeBinding:
    mode: ChainMode
    bind: Binder


def _bind_remote(args: _BindArgs) -> Tuple[ChainTransport, Optional[GenesisLookup]]:
    transport = HttpTransport(
        args.chain.url,
        timeout=args.config.request_timeout,
        headers=args.config.http_headers(),
    )
    return transport, None


def _bind_devnet(args: _BindArgs) -> Tuple[ChainTransport, Optional[GenesisLookup]]:
    transport, _ = _bind_remote(args)
    lookup = args.devnet.get_genesis_account if args.devnet is not None else None
    return transport, lookup


def _bind_mocknet(args: _BindArgs) -> Tuple[ChainTransport, Optional[GenesisLookup]]:
    backend = args.mocknet or MocknetBackend(args.chain.id, hrp=args.config.hrp, denom=args.config.denom)
    if backend.chain_id != args.chain.id:
        raise ConfigurationError(f"mocknet backend is {backend.chain_id!r}, chain handle is {args.chain.id!r}")

    async def lookup(name: str) -> GenesisAccount:
        return backend.get_genesis_account(name)

    return MocknetTransport(backend), lookup


_BINDINGS: Dict[ChainMode, ModeBinding] = {
    ChainMode.MAINNET: ModeBinding(ChainMode.MAINNET, _bind_remote),
    ChainMode.TESTNET: ModeBinding(ChainMode.TESTNET, _bind_remote),
    ChainMode.DEVNET: ModeBinding(ChainMode.DEVNET, _bind_devnet),
    ChainMode.MOCKNET: ModeBinding(ChainMode.MOCKNET, _bind_mocknet),
}


def binding_for(mode: ChainMode) -> ModeBinding:
    try:
        return _BINDINGS[ChainMode.parse(mode)]
    except KeyError:
        raise ConfigurationError(f"no binding for chain mode {mode!r}") from None


def register_binding(binding: ModeBinding) -> None:
    """Replace the binding of one mode (e.g. a different transport for Devnet)."""
    _BINDINGS[binding.mode] = binding


async def connect(
    chain: ChainHandle,
    identity: "Identity | Mapping[str, Any] | str | None" = None,
    *,
    config: Optional[SDKConfig] = None,
    devnet: Optional["Devnet"] = None,
    mocknet: Optional[MocknetBackend] = None,
    transport: Optional[ChainTransport] = None,
    fees: Optional[Mapping[str, int]] = None,
) -> Agent:
    """
    Resolve `identity` against `chain` and return an Agent for it.

    `identity` may be an Identity, a {name, address, mnemonic} mapping or a bare
    genesis account name. On Devnet chains a name without a mnemonic waits on
    ``devnet.get_genesis_account(name)``, which may itself wait for the node.
    Pass `transport` to bypass the mode's transport (tests, custom clients).
    """
    config = config or SDKConfig.from_env()
    if mocknet is None and isinstance(transport, MocknetTransport):
        mocknet = transport.backend
    ident = Identity.coerce(identity)
    if chain.is_devnet and devnet is None and not ident.mnemonic:
        raise ConfigurationError(
            f"devnet chain {chain.id}: pass devnet=... to log in as {ident.name!r}, or give a mnemonic"
        )

    bound_transport, lookup = binding_for(chain.mode).bind(_BindArgs(chain, config, devnet, mocknet))
    if transport is not None:
        await bound_transport.close()
        bound_transport = transport

    try:
        resolved, signer = await resolve_identity(ident, lookup=lookup, hrp=config.hrp)
    except BaseException:
        await bound_transport.close()
        raise

    submitter = ReliableSubmitter(
        bound_transport,
        submit_retries=config.submit_retries,
        result_retries=config.result_retries,
        submit_delay=config.submit_delay,
        block_poll_interval=config.block_poll_interval,
        result_retry_delay=config.result_retry_delay,
    )
    agent = Agent(
        chain,
        bound_transport,
        signer,
        identity=resolved,
        fees=fees,
        gas_price=config.gas_price,
        denom=config.denom,
        state_dir=config.state_dir,
        submitter=submitter,
        block_poll_interval=config.block_poll_interval,
    )
    log.info("agent_connected", chain_id=chain.id, mode=chain.mode.value, name=resolved.name, address=agent.address)
    return agent
