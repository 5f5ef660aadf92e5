"""
LocalDevnet: one ephemeral chain node per project, driven through a
``ContainerEngine``.

    async with LocalDevnet(state_dir="state/devnet", on_exit="terminate") as devnet:
        admin = await connect(devnet.chain, "Admin", devnet=devnet)

State directory layout:

    devnet.json          DevnetState (written atomically)
    genesis.json         genesis artifact; present = genesis done
    wallet/<name>.json   genesis accounts {address, mnemonic}
    node.log             node output (process engine)

``spawn()`` persists SPAWNING before it waits for the node's ready phrase, and
RUNNING only once the phrase was seen and the settle delay passed. A timeout
leaves the record at SPAWNING, which ``respawn()`` treats as a half-started
node: it is killed and spawned again rather than trusted.
"""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import Optional, Sequence, Union

from ..chain import ChainHandle
from ..errors import ConfigurationError, DevnetAlreadyRunning, DevnetError, DevnetNotReady, StateError
from ..identity import GenesisAccount
from ..logging import get_logger
from ..utils.files import safe_name
from .base import DEFAULT_GENESIS_ACCOUNTS, DevnetState, DevnetStatus, StateFile
from .engine import ContainerEngine, ContainerSpec, DockerEngine
from .genesis import GenesisStore, generate_chain_id
from .platforms import DEFAULT_PLATFORM, Platform, get_platform
from .ports import PortAllocator, free_port

log = get_logger(__name__)

__all__ = ["LocalDevnet", "is_log_noise", "EXIT_POLICIES"]

EXIT_POLICIES = ("terminate", "erase", "keep")

STATE_FILE = "devnet.json"
NODE_LOG = "node.log"

# where the state directory is mounted inside the node container
CONTAINER_STATE_DIR = "/state"

_NOISE_PREFIXES = ("TRACE ", "DEBUG ", "INFO ", "I[")
_NOISE_SUBSTRINGS = ('{"app_message":', "Storing key:", "configuration saved to")


def is_log_noise(line: str) -> bool:
    """Node output not worth echoing while waiting for readiness."""
    if not line.strip() or len(line) > 1024:
        return True
    if line.startswith(_NOISE_PREFIXES):
        return True
    if any(s in line for s in _NOISE_SUBSTRINGS):
        return True
    return not line.isprintable()


class LocalDevnet:
    def __init__(
        self,
        *,
        state_dir: Union[str, Path] = "state/devnet",
        platform: Union[str, Platform] = DEFAULT_PLATFORM,
        chain_id: Optional[str] = None,
        chain_id_prefix: str = "devnet",
        genesis_accounts: Sequence[str] = DEFAULT_GENESIS_ACCOUNTS,
        engine: Optional[ContainerEngine] = None,
        host: str = "127.0.0.1",
        port: Optional[int] = None,
        ports: Optional[PortAllocator] = None,
        launch_timeout: Optional[float] = None,
        settle_delay: float = 7.0,
        on_exit: str = "keep",
        node_command: Optional[Sequence[str]] = None,
        hrp: str = "orb",
        denom: str = "uorb",
    ) -> None:
        if on_exit not in EXIT_POLICIES:
            raise ConfigurationError(f"on_exit must be one of {EXIT_POLICIES}, got {on_exit!r}")
        self.state_dir = Path(state_dir)
        self.platform = platform if isinstance(platform, Platform) else get_platform(platform)
        self.genesis_accounts = [safe_name(n, "account name") for n in genesis_accounts]
        self.engine: ContainerEngine = engine or DockerEngine()
        self.host = host
        self.port = port
        self._ports: PortAllocator = ports or (lambda: free_port(self.host))
        self.launch_timeout = launch_timeout
        self.settle_delay = settle_delay
        self.on_exit = on_exit
        self.node_command = list(node_command) if node_command else None
        self.state_file = StateFile(self.state_dir / STATE_FILE)
        self.genesis = GenesisStore(self.state_dir, hrp=hrp, denom=denom)
        self._terminated = False

        # chain id: explicit > persisted state > genesis artifact > fresh
        persisted = self._load_state_quietly()
        self.chain_id = (
            chain_id
            or (persisted.chain_id if persisted else None)
            or self.genesis.chain_id()
            or generate_chain_id(chain_id_prefix)
        )
        safe_name(self.chain_id, "chain id")
        if persisted is not None:
            self.port = self.port or persisted.port

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"LocalDevnet(chain_id={self.chain_id!r}, state_dir={str(self.state_dir)!r})"

    def _load_state_quietly(self) -> Optional[DevnetState]:
        try:
            return self.state_file.load()
        except StateError as e:
            log.warning("devnet_state_unreadable", path=str(self.state_file.path), error=str(e))
            return None

    # --- descriptors -------------------------------------------------------

    @property
    def url(self) -> str:
        port = self.port or self.platform.port_mode.default_port
        return f"{self.platform.protocol}://{self.host}:{port}"

    @property
    def chain(self) -> ChainHandle:
        return ChainHandle.devnet(self.chain_id, self.url)

    @property
    def status(self) -> DevnetStatus:
        if self._terminated:
            return DevnetStatus.TERMINATED
        state = self._load_state_quietly()
        return state.status if state else DevnetStatus.UNINITIALIZED

    def load_state(self) -> Optional[DevnetState]:
        return self.state_file.load()

    async def is_running(self) -> bool:
        state = self._load_state_quietly()
        return bool(state and state.container_id and await self.engine.is_running(state.container_id))

    # --- lifecycle ---------------------------------------------------------

    async def spawn(self, timeout: Optional[float] = None) -> DevnetState:
        """
        Start a fresh node, running genesis first if it never ran.

        Waits for the platform's ready phrase plus the settle delay; `timeout`
        (default: ``launch_timeout``) bounds that wait.
        """
        existing = self._load_state_quietly()
        if existing and existing.container_id:
            if await self.engine.is_running(existing.container_id):
                raise DevnetAlreadyRunning(existing.chain_id, existing.port)
            # stale: the node is gone but its container may still hold the name
            await self.engine.remove(existing.container_id)

        self._terminated = False
        port = self.port or self._ports()
        self.port = port
        state = DevnetState(chain_id=self.chain_id, port=port, platform=self.platform.id)

        if not self.genesis.exists():
            self.state_file.save(state.with_status(DevnetStatus.GENESIS))
            self.genesis.run(self.chain_id, self.genesis_accounts)

        log.info("devnet_spawning", chain_id=self.chain_id, port=port, platform=self.platform.id)
        container_id = await self.engine.create_and_start(self._container_spec(port))
        state = self.state_file.save(state.with_status(DevnetStatus.SPAWNING, container_id=container_id))

        await self._wait_ready(state, self.launch_timeout if timeout is None else timeout)

        state = self.state_file.save(state.with_status(DevnetStatus.RUNNING))
        log.info("devnet_ready", chain_id=self.chain_id, port=port, container=container_id[:8])
        return state

    async def respawn(self, timeout: Optional[float] = None) -> DevnetState:
        """Reuse the recorded node if it is alive and ready, otherwise spawn."""
        try:
            state = await self._live_state()
        except StateError as e:
            # spawn() removes the dead node and overwrites the record
            log.info("devnet_state_stale", chain_id=self.chain_id, reason=str(e))
            return await self.spawn(timeout)
        if state is None:
            return await self.spawn(timeout)
        if state.status is DevnetStatus.RUNNING:
            log.info("devnet_reused", chain_id=state.chain_id, port=state.port)
            self.port = state.port
            self._terminated = False
            return state

        # alive but never confirmed ready
        log.warning("devnet_half_started", chain_id=state.chain_id, status=state.status.value)
        assert state.container_id is not None
        await self.engine.kill(state.container_id)
        await self.engine.remove(state.container_id)
        self.state_file.delete()
        return await self.spawn(timeout)

    async def _live_state(self) -> Optional[DevnetState]:
        """The persisted state if its node is running; StateError if it is not."""
        state = self.state_file.load()
        if state is None:
            return None
        if not state.container_id:
            raise StateError("devnet state has no node", str(self.state_file.path))
        if not await self.engine.is_running(state.container_id):
            raise StateError(f"node {state.container_id[:8]} is not running", str(self.state_file.path))
        return state

    async def get_genesis_account(self, name: str) -> GenesisAccount:
        if not self.genesis.exists():
            log.info("devnet_waking", chain_id=self.chain_id, account=name)
            await self.respawn()
        return self.genesis.account(name, self.chain_id)

    async def terminate(self) -> None:
        """Stop and remove the node and forget it; genesis data stays."""
        state = self._load_state_quietly()
        if state and state.container_id:
            log.info("devnet_terminating", chain_id=state.chain_id, container=state.container_id[:8])
            await self.engine.kill(state.container_id)
            await self.engine.remove(state.container_id)
        self.state_file.delete()
        self._terminated = True

    async def erase(self) -> None:
        """Terminate and delete all state; the next spawn runs genesis again."""
        await self.terminate()
        if self.state_dir.exists():
            log.info("devnet_erasing", chain_id=self.chain_id, path=str(self.state_dir))
            shutil.rmtree(self.state_dir)

    async def reset(self, timeout: Optional[float] = None) -> DevnetState:
        await self.erase()
        return await self.spawn(timeout)

    # --- context manager ---------------------------------------------------

    async def __aenter__(self) -> "LocalDevnet":
        await self.respawn()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        if self.on_exit == "terminate":
            await self.terminate()
        elif self.on_exit == "erase":
            await self.erase()
        else:
            log.info(
                "devnet_kept",
                chain_id=self.chain_id,
                hint=f"the node keeps running; terminate or erase it, or delete {self.state_dir}",
            )

    # --- internals ---------------------------------------------------------

    def _container_spec(self, port: int) -> ContainerSpec:
        mode = self.platform.port_mode
        env = {
            mode.env_var: str(port),
            "CHAIN_ID": self.chain_id,
            "GENESIS_ACCOUNTS": " ".join(self.genesis_accounts),
        }
        name = f"{self.chain_id}-{port}"
        if self.engine.runs_images:
            return ContainerSpec(
                name=name,
                image=self.platform.image,
                command=self.node_command,
                env=env,
                ports={port: port},
                mounts={str(self.state_dir.resolve()): f"{CONTAINER_STATE_DIR}/{self.chain_id}"},
            )
        home = self.state_dir.resolve()
        return ContainerSpec(
            name=name,
            image=self.platform.image,
            command=self.node_command or self.platform.node_command(home),
            env=env,
            workdir=str(home),
            log_path=home / NODE_LOG,
        )

    async def _wait_ready(self, state: DevnetState, timeout: Optional[float]) -> None:
        assert state.container_id is not None
        try:
            await asyncio.wait_for(self._await_phrase_and_settle(state.container_id), timeout)
        except asyncio.TimeoutError:
            log.error("devnet_not_ready", chain_id=state.chain_id, timeout=timeout, status=DevnetStatus.SPAWNING.value)
            raise DevnetNotReady(
                f"{state.chain_id}: no {self.platform.ready_phrase!r} from node within {timeout}s"
            ) from None

    async def _await_phrase_and_settle(self, container_id: str) -> None:
        phrase = self.platform.ready_phrase
        short = container_id[:8]
        found = False
        stream = self.engine.stream_logs(container_id)
        try:
            async for line in stream:
                if phrase in line:
                    found = True
                    break
                if not is_log_noise(line):
                    log.debug("devnet_node_output", container=short, line=line)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()
        if not found:
            raise DevnetError(f"node {short} stopped before printing {phrase!r}")
        log.info("devnet_phrase_seen", container=short, settle=self.settle_delay)
        await asyncio.sleep(self.settle_delay)
