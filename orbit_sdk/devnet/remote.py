"""
RemoteDevnet: the same lifecycle as ``LocalDevnet``, proxied to a devnet
manager (``orbit_sdk.devnet.manager``) over HTTP.

    devnet = RemoteDevnet("http://devnet:8082", state_dir="state/devnet")
    await devnet.respawn(timeout=120)
    alice = await connect(devnet.chain, "Alice", devnet=devnet)

The manager runs at most one node. ``spawn()`` against a busy manager raises
``DevnetAlreadyRunning``; ``respawn()`` instead adopts the running node if it
belongs to this chain id.

The manager only reports ``ready`` after its node passed its own settle
delay, so ``settle_delay`` here is an extra client-side wait and defaults to 0.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union
from urllib.parse import urlparse

import httpx

from ..chain import ChainHandle
from ..errors import (
    ConfigurationError,
    DevnetAlreadyRunning,
    DevnetError,
    DevnetNotReady,
    NoGenesisAccount,
    StateError,
)
from ..identity import GenesisAccount
from ..logging import get_logger
from ..utils.files import safe_name
from ..version import user_agent
from .base import DEFAULT_GENESIS_ACCOUNTS, DevnetState, DevnetStatus, StateFile
from .genesis import generate_chain_id
from .local import EXIT_POLICIES, STATE_FILE
from .platforms import DEFAULT_PLATFORM, Platform, get_platform

log = get_logger(__name__)

__all__ = ["RemoteDevnet"]

ALREADY_RUNNING = "already running"


class RemoteDevnet:
    def __init__(
        self,
        manager_url: str,
        *,
        chain_id: Optional[str] = None,
        chain_id_prefix: str = "devnet",
        genesis_accounts: Sequence[str] = DEFAULT_GENESIS_ACCOUNTS,
        platform: Union[str, Platform] = DEFAULT_PLATFORM,
        host: Optional[str] = None,
        port: Optional[int] = None,
        state_dir: Optional[Union[str, Path]] = None,
        ready_interval: float = 1.0,
        settle_delay: float = 0.0,
        launch_timeout: Optional[float] = None,
        on_exit: str = "keep",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        parsed = urlparse(manager_url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise ConfigurationError(f"devnet manager url must be http(s)://host[:port], got {manager_url!r}")
        if on_exit not in EXIT_POLICIES:
            raise ConfigurationError(f"on_exit must be one of {EXIT_POLICIES}, got {on_exit!r}")
        self.manager_url = manager_url.rstrip("/")
        self.platform = platform if isinstance(platform, Platform) else get_platform(platform)
        self.genesis_accounts = [safe_name(n, "account name") for n in genesis_accounts]
        self.host = host or parsed.hostname
        self.port = port
        self.ready_interval = ready_interval
        self.settle_delay = settle_delay
        self.launch_timeout = launch_timeout
        self.on_exit = on_exit
        self._sleep = sleep
        self.status = DevnetStatus.UNINITIALIZED
        self.state_file = StateFile(Path(state_dir) / STATE_FILE) if state_dir else None

        persisted = self._load_state_quietly()
        self.chain_id = chain_id or (persisted.chain_id if persisted else None) or generate_chain_id(chain_id_prefix)
        safe_name(self.chain_id, "chain id")
        if persisted is not None and self.port is None:
            self.port = persisted.port
        self._created_at: Optional[float] = persisted.created_at if persisted else None

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.manager_url,
            timeout=timeout,
            headers={"Accept": "application/json", "User-Agent": user_agent()},
        )

    def _load_state_quietly(self) -> Optional[DevnetState]:
        if self.state_file is None:
            return None
        try:
            return self.state_file.load()
        except StateError as e:
            log.warning("devnet_state_unreadable", path=str(self.state_file.path), error=str(e))
            return None

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"RemoteDevnet({self.manager_url!r}, chain_id={self.chain_id!r})"

    @property
    def url(self) -> str:
        port = self.port or self.platform.port_mode.default_port
        return f"{self.platform.protocol}://{self.host}:{port}"

    @property
    def chain(self) -> ChainHandle:
        return ChainHandle.devnet(self.chain_id, self.url)

    # --- manager calls -----------------------------------------------------

    async def _call(
        self, method: str, path: str, params: Optional[Mapping[str, Any]] = None
    ) -> Tuple[int, Dict[str, Any]]:
        try:
            resp = await self._client.request(method, path, params=params)
        except httpx.HTTPError as e:
            raise DevnetError(f"devnet manager {self.manager_url} unreachable: {e}") from e
        try:
            body = resp.json()
        except ValueError:
            raise DevnetError(f"{method} {path}: non-JSON reply (HTTP {resp.status_code})") from None
        if resp.status_code >= 500:
            raise DevnetError(f"{method} {path}: HTTP {resp.status_code}: {body}")
        return resp.status_code, body if isinstance(body, dict) else {"result": body}

    # --- lifecycle ---------------------------------------------------------

    async def spawn(self, timeout: Optional[float] = None) -> DevnetState:
        params: Dict[str, Any] = {"id": self.chain_id, "genesis": ",".join(self.genesis_accounts)}
        if self.port is not None:
            params["port"] = self.port
        log.info("devnet_spawning", chain_id=self.chain_id, manager=self.manager_url, port=self.port)
        status, body = await self._call("GET", "/spawn", params)
        error = body.get("error")
        if status == 400 and error and ALREADY_RUNNING in str(error).lower():
            raise DevnetAlreadyRunning(body.get("chainId"), body.get("port"))
        if status != 200 or error:
            raise ConfigurationError(f"devnet manager refused spawn: {error or body}")

        self.port = int(body["port"])
        self.status = DevnetStatus.SPAWNING
        self._persist()
        await self._wait_ready(self.launch_timeout if timeout is None else timeout, settle=True)
        return self._running()

    async def respawn(self, timeout: Optional[float] = None) -> DevnetState:
        try:
            return await self.spawn(timeout)
        except DevnetAlreadyRunning as e:
            if e.chain_id and e.chain_id != self.chain_id:
                raise DevnetError(
                    f"manager {self.manager_url} runs {e.chain_id!r}, not {self.chain_id!r}; terminate it first"
                ) from e
            log.info("devnet_reused", chain_id=self.chain_id, port=e.port)
            if e.port:
                self.port = int(e.port)
        settle = not await self._is_ready()
        if settle:
            await self._wait_ready(self.launch_timeout if timeout is None else timeout, settle=True)
        return self._running()

    async def get_genesis_account(self, name: str) -> GenesisAccount:
        status, body = await self._call("GET", "/identity", {"name": name})
        if status == 404 and body.get("error") == "no devnet spawned":
            log.info("devnet_waking", chain_id=self.chain_id, account=name)
            await self.respawn()
            status, body = await self._call("GET", "/identity", {"name": name})
        if status == 404:
            raise NoGenesisAccount(name, self.chain_id)
        if status != 200:
            raise DevnetError(f"identity lookup for {name!r} failed: {body.get('error') or body}")
        return GenesisAccount.from_dict(name, body)

    async def terminate(self) -> None:
        await self._call("POST", "/terminate")
        if self.state_file:
            self.state_file.delete()
        self.status = DevnetStatus.TERMINATED

    async def erase(self) -> None:
        await self._call("POST", "/erase")
        if self.state_file:
            self.state_file.delete()
        self.status = DevnetStatus.TERMINATED

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    aclose = close

    async def __aenter__(self) -> "RemoteDevnet":
        await self.respawn()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        try:
            if self.on_exit == "terminate":
                await self.terminate()
            elif self.on_exit == "erase":
                await self.erase()
        finally:
            await self.close()

    # --- internals ---------------------------------------------------------

    async def _is_ready(self) -> bool:
        _, body = await self._call("GET", "/ready")
        if body.get("port"):
            self.port = int(body["port"])
        if not body.get("ready") and body.get("error"):
            raise DevnetError(f"devnet manager failed to start {self.chain_id}: {body['error']}")
        return bool(body.get("ready"))

    async def _poll_ready(self) -> None:
        while not await self._is_ready():
            log.debug("devnet_waiting", chain_id=self.chain_id, interval=self.ready_interval)
            await self._sleep(self.ready_interval)

    async def _wait_ready(self, timeout: Optional[float], *, settle: bool) -> None:
        try:
            await asyncio.wait_for(self._poll_ready(), timeout)
        except asyncio.TimeoutError:
            log.error("devnet_not_ready", chain_id=self.chain_id, timeout=timeout)
            raise DevnetNotReady(f"{self.chain_id}: manager did not report ready within {timeout}s") from None
        if settle and self.settle_delay:
            await self._sleep(self.settle_delay)

    def _running(self) -> DevnetState:
        self.status = DevnetStatus.RUNNING
        state = self._persist()
        log.info("devnet_ready", chain_id=self.chain_id, port=self.port, manager=self.manager_url)
        return state

    def _persist(self) -> DevnetState:
        state = DevnetState(
            chain_id=self.chain_id,
            port=int(self.port or 0),
            status=self.status,
            platform=self.platform.id,
        )
        if self._created_at is None:
            self._created_at = state.created_at
        state = state.with_status(self.status, created_at=self._created_at)
        if self.state_file:
            self.state_file.save(state)
        return state
