"""
Devnet manager: a minimal HTTP control plane for one devnet node.

Runs next to the container engine (e.g. as a docker-compose sidecar) so a
client without engine access can still drive a devnet through ``RemoteDevnet``.

Endpoints:
  GET  /spawn?id=<chainId>&genesis=<Admin,Alice,...>[&port=<port>]
         200 {ok: true, chainId, port}
         400 {error: "Node already running", chainId, port} | 400 {error} on missing params
  GET  /ready                      200 {ready, chainId, port, error}
  GET  /identity?name=<name>       200 {address, mnemonic} | 404 {error}
  POST /terminate                  200 {ok: true}
  POST /erase                      200 {ok: true}

Usage:
  python -m orbit_sdk.devnet.manager [--host 0.0.0.0] [--port 8082]
                                     [--state-dir state/devnets]
                                     [--platform orbit_1.0] [--engine docker|process]
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Callable, Dict, List, Optional

import uvicorn
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse

from ..errors import ConfigurationError, NoGenesisAccount
from ..logging import UVICORN_LOGGERS, bind_context, get_logger, setup_logging
from ..utils.files import safe_name
from ..version import __version__
from .engine import ContainerEngine, DockerEngine, ProcessEngine
from .local import LocalDevnet
from .platforms import DEFAULT_PLATFORM
from .ports import PortAllocator, free_port

log = get_logger(__name__)

__all__ = [
    "ManagerSettings",
    "ManagerState",
    "DevnetFactory",
    "create_app",
    "main",
]

ALREADY_RUNNING = "Node already running"

# chain id, genesis names, port -> devnet
DevnetFactory = Callable[[str, List[str], Optional[int]], LocalDevnet]


@dataclass
class ManagerSettings:
    state_dir: Path = Path("state/devnets")
    platform: str = DEFAULT_PLATFORM
    engine: str = "docker"
    host: str = "127.0.0.1"
    launch_timeout: Optional[float] = None
    settle_delay: float = 7.0

    def make_engine(self) -> ContainerEngine:
        if self.engine == "process":
            return ProcessEngine(self.state_dir)
        return DockerEngine()

    def make_factory(self) -> DevnetFactory:
        engine = self.make_engine()

        def factory(chain_id: str, genesis: List[str], port: Optional[int]) -> LocalDevnet:
            return LocalDevnet(
                state_dir=self.state_dir / chain_id,
                platform=self.platform,
                chain_id=chain_id,
                genesis_accounts=genesis,
                engine=engine,
                host=self.host,
                port=port,
                launch_timeout=self.launch_timeout,
                settle_delay=self.settle_delay,
            )

        return factory


@dataclass
class ManagerState:
    """Everything the manager knows about its one node."""

    factory: DevnetFactory
    ports: PortAllocator = free_port
    devnet: Optional[LocalDevnet] = None
    ready: bool = False
    error: Optional[str] = None
    task: Optional["asyncio.Task[None]"] = field(default=None, repr=False)

    @property
    def chain_id(self) -> Optional[str]:
        return self.devnet.chain_id if self.devnet else None

    @property
    def port(self) -> Optional[int]:
        return self.devnet.port if self.devnet else None

    async def is_active(self) -> bool:
        """A node is starting, or ready and still alive; a failed spawn does not count."""
        if self.devnet is None:
            return False
        if self.task is not None and not self.task.done():
            return True
        if not self.ready:
            return False
        if await self.devnet.is_running():
            return True
        log.warning("manager_node_exited", chain_id=self.chain_id, port=self.port)
        self.ready = False
        self.error = "node exited"
        return False

    def forget(self) -> None:
        self.devnet = None
        self.ready = False
        self.error = None
        self.task = None


async def _bring_up(state: ManagerState, devnet: LocalDevnet) -> None:
    bind_context(chain_id=devnet.chain_id)
    try:
        await devnet.respawn()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        state.error = str(e)
        log.error("manager_spawn_failed", chain_id=devnet.chain_id, error=str(e))
        return
    state.ready = True
    log.info("manager_node_ready", chain_id=devnet.chain_id, port=devnet.port)


async def _stop(state: ManagerState, *, erase: bool) -> None:
    if state.task is not None and not state.task.done():
        state.task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await state.task
    if state.devnet is not None:
        if erase:
            await state.devnet.erase()
        else:
            await state.devnet.terminate()
    state.forget()


def _error(status: int, message: str, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status, content={"error": message, **extra})


router = APIRouter(tags=["devnet"])


def _state(request: Request) -> ManagerState:
    return request.app.state.manager


@router.get("/spawn")
async def spawn(
    request: Request,
    id: Optional[str] = None,
    genesis: Optional[str] = None,
    port: Optional[int] = None,
):
    state = _state(request)
    # one node per manager, checked before a port is allocated
    if await state.is_active():
        log.info("manager_spawn_rejected", chain_id=state.chain_id, port=state.port)
        return _error(400, ALREADY_RUNNING, chainId=state.chain_id, port=state.port)
    names = [n.strip() for n in (genesis or "").split(",") if n.strip()]
    if not id or not names:
        return _error(400, "missing parameters: id and genesis are required")
    try:
        safe_name(id, "chain id")
        for name in names:
            safe_name(name, "account name")
        devnet = state.factory(id, names, port)
    except ConfigurationError as e:
        return _error(400, str(e))

    if state.devnet is not None:
        # an exited or failed node: drop its container and record
        await state.devnet.terminate()
    if devnet.port is None:
        devnet.port = state.ports()
    state.forget()
    state.devnet = devnet
    state.task = asyncio.create_task(_bring_up(state, devnet))
    log.info("manager_spawning", chain_id=id, port=devnet.port, genesis=names)
    return {"ok": True, "chainId": id, "port": devnet.port}


@router.get("/ready")
async def ready(request: Request):
    state = _state(request)
    await state.is_active()
    return {"ready": state.ready, "chainId": state.chain_id, "port": state.port, "error": state.error}


@router.get("/identity")
async def identity(request: Request, name: Optional[str] = None):
    state = _state(request)
    if not name:
        return _error(400, "missing parameter: name")
    try:
        safe_name(name, "account name")
    except ConfigurationError as e:
        return _error(400, str(e))
    if state.devnet is None:
        return _error(404, "no devnet spawned")
    try:
        account = state.devnet.genesis.account(name, state.devnet.chain_id)
    except NoGenesisAccount as e:
        return _error(404, str(e))
    except ConfigurationError as e:
        log.error("manager_identity_unreadable", account=name, error=str(e))
        return _error(400, str(e))
    return account.to_dict()


@router.post("/terminate")
async def terminate(request: Request):
    await _stop(_state(request), erase=False)
    return {"ok": True}


@router.post("/erase")
async def erase(request: Request):
    await _stop(_state(request), erase=True)
    return {"ok": True}


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    try:
        yield
    finally:
        state: ManagerState = app.state.manager
        # the node outlives the manager; only a pending spawn is abandoned
        if state.task is not None and not state.task.done():
            state.task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await state.task


def create_app(
    settings: Optional[ManagerSettings] = None,
    *,
    factory: Optional[DevnetFactory] = None,
    ports: Optional[PortAllocator] = None,
) -> FastAPI:
    """
    FastAPI factory. `factory` and `ports` replace the settings-derived
    defaults (tests pass fakes).
    """
    settings = settings or ManagerSettings()
    app = FastAPI(title="Orbit Devnet Manager", version=__version__, lifespan=_lifespan)
    app.state.settings = settings
    app.state.manager = ManagerState(
        factory=factory or settings.make_factory(),
        ports=ports or (lambda: free_port(settings.host)),
    )
    app.include_router(router, prefix="")
    return app


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the Orbit devnet manager (uvicorn)")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"), help="Bind address (default: %(default)s)")
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8082")), help="Port (default: %(default)s)")
    parser.add_argument(
        "--state-dir",
        default=os.getenv("ORBIT_STATE_DIR", "state/devnets"),
        help="Directory holding one subdirectory per devnet (default: %(default)s)",
    )
    parser.add_argument("--platform", default=os.getenv("ORBIT_DEVNET_PLATFORM", DEFAULT_PLATFORM))
    parser.add_argument("--engine", choices=("docker", "process"), default="docker")
    parser.add_argument("--node-host", default="127.0.0.1", help="Host the node's API binds to")
    parser.add_argument("--launch-timeout", type=float, default=None)
    parser.add_argument("--settle-delay", type=float, default=7.0)
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "info"))
    args = parser.parse_args(argv)

    setup_logging(service_name="orbit-devnet-manager", level=args.log_level.upper(), adopt=UVICORN_LOGGERS)
    settings = ManagerSettings(
        state_dir=Path(args.state_dir),
        platform=args.platform,
        engine=args.engine,
        host=args.node_host,
        launch_timeout=args.launch_timeout,
        settle_delay=args.settle_delay,
    )
    log.info("manager_starting", host=args.host, port=args.port, **_settings_summary(settings))
    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_level=args.log_level)


def _settings_summary(settings: ManagerSettings) -> Dict[str, object]:
    return {"state_dir": str(settings.state_dir), "platform": settings.platform, "engine": settings.engine}


if __name__ == "__main__":
    main()
