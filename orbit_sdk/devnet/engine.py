"""
Container/process control for devnet nodes.

The lifecycle manager needs five operations from whatever runs the node:

    create_and_start(spec) -> handle
    is_running(handle)     -> bool
    stream_logs(handle)    -> async iterator of text lines
    kill(handle)
    remove(handle)

``DockerEngine`` drives the ``docker`` CLI through asyncio subprocesses.
``ProcessEngine`` runs the node daemon as a local process in its own session,
writing its output to a log file that ``stream_logs`` follows. Both are
idempotent on ``kill``/``remove`` of something already gone.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import signal
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from ..errors import ConfigurationError, DevnetError
from ..logging import get_logger

log = get_logger(__name__)

__all__ = ["ContainerSpec", "ContainerEngine", "DockerEngine", "ProcessEngine"]


@dataclass
class ContainerSpec:
    name: str
    image: str
    command: Optional[List[str]] = None
    env: Dict[str, str] = field(default_factory=dict)
    ports: Dict[int, int] = field(default_factory=dict)  # host -> container
    mounts: Dict[str, str] = field(default_factory=dict)  # host path -> container path
    workdir: Optional[str] = None
    log_path: Optional[Path] = None


@runtime_checkable
class ContainerEngine(Protocol):
    runs_images: bool

    async def create_and_start(self, spec: ContainerSpec) -> str: ...

    async def is_running(self, handle: str) -> bool: ...

    def stream_logs(self, handle: str) -> AsyncIterator[str]: ...

    async def kill(self, handle: str) -> None: ...

    async def remove(self, handle: str) -> None: ...


# --- docker ------------------------------------------------------------------


class DockerEngine:
    runs_images = True

    def __init__(self, docker: str = "docker") -> None:
        self.docker = docker

    async def _run(self, *args: str, check: bool = True) -> Tuple[int, str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self.docker,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError:
            raise DevnetError(f"{self.docker} not found on PATH") from None
        out, _ = await proc.communicate()
        text = out.decode(errors="replace").strip()
        rc = proc.returncode or 0
        if check and rc != 0:
            raise DevnetError(f"{self.docker} {args[0]} exited with code {rc}: {text}")
        return rc, text

    async def create_and_start(self, spec: ContainerSpec) -> str:
        args: List[str] = ["run", "-d", "--name", spec.name]
        for host_port, container_port in spec.ports.items():
            args += ["-p", f"{host_port}:{container_port}"]
        for k, v in spec.env.items():
            args += ["-e", f"{k}={v}"]
        for host_path, container_path in spec.mounts.items():
            args += ["-v", f"{host_path}:{container_path}"]
        if spec.workdir:
            args += ["-w", spec.workdir]
        args.append(spec.image)
        args += spec.command or []
        _, out = await self._run(*args)
        container_id = out.splitlines()[-1].strip()
        log.info("docker_container_started", name=spec.name, container=container_id[:8], image=spec.image)
        return container_id

    async def is_running(self, handle: str) -> bool:
        rc, out = await self._run("inspect", "-f", "{{.State.Running}}", handle, check=False)
        return rc == 0 and out.strip() == "true"

    async def stream_logs(self, handle: str) -> AsyncIterator[str]:
        proc = await asyncio.create_subprocess_exec(
            self.docker,
            "logs",
            "-f",
            handle,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        assert proc.stdout is not None
        try:
            while True:
                line = await proc.stdout.readline()
                if not line:
                    break
                yield line.decode(errors="replace").rstrip("\r\n")
        finally:
            if proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    proc.kill()
                await proc.wait()

    async def kill(self, handle: str) -> None:
        rc, out = await self._run("kill", handle, check=False)
        if rc != 0:
            log.debug("docker_kill_noop", container=handle[:8], output=out)

    async def remove(self, handle: str) -> None:
        rc, out = await self._run("rm", "-f", handle, check=False)
        if rc != 0:
            log.debug("docker_rm_noop", container=handle[:8], output=out)


# --- local process -----------------------------------------------------------


def _parse_handle(handle: str) -> Tuple[int, Path]:
    # "<pid>:<log path>"
    pid, _, path = handle.partition(":")
    try:
        return int(pid), Path(path)
    except ValueError:
        raise DevnetError(f"not a process handle: {handle!r}") from None


class ProcessEngine:
    """
    Runs the node as `spec.command` on this host.

    The handle is ``"<pid>:<log path>"`` so a later process (a new CLI run
    reloading ``devnet.json``) can still check and follow the node.
    """

    runs_images = False

    def __init__(self, log_dir: Optional[Path] = None, *, poll_interval: float = 0.2) -> None:
        self.log_dir = Path(log_dir) if log_dir else Path(tempfile.gettempdir())
        self.poll_interval = poll_interval
        self._procs: Dict[int, asyncio.subprocess.Process] = {}

    async def create_and_start(self, spec: ContainerSpec) -> str:
        if not spec.command:
            raise ConfigurationError(f"{spec.name}: a process engine needs a command to run")
        log_path = spec.log_path or (self.log_dir / f"{spec.name}.log")
        log_path.parent.mkdir(parents=True, exist_ok=True)
        env = {**os.environ, **spec.env}
        with open(log_path, "ab", buffering=0) as out:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *spec.command,
                    cwd=spec.workdir,
                    env=env,
                    stdout=out,
                    stderr=asyncio.subprocess.STDOUT,
                    start_new_session=True,
                )
            except FileNotFoundError:
                raise DevnetError(f"{spec.command[0]} not found on PATH") from None
        self._procs[proc.pid] = proc
        log.info("process_started", name=spec.name, pid=proc.pid, log=str(log_path))
        return f"{proc.pid}:{log_path}"

    async def is_running(self, handle: str) -> bool:
        pid, _ = _parse_handle(handle)
        proc = self._procs.get(pid)
        if proc is not None:
            return proc.returncode is None
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    async def stream_logs(self, handle: str) -> AsyncIterator[str]:
        _, path = _parse_handle(handle)
        partial = ""
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            while True:
                chunk = f.readline()
                if chunk:
                    partial += chunk
                    if partial.endswith("\n"):
                        yield partial.rstrip("\r\n")
                        partial = ""
                    continue
                if not await self.is_running(handle):
                    if partial:
                        yield partial
                    return
                await asyncio.sleep(self.poll_interval)

    async def kill(self, handle: str) -> None:
        pid, _ = _parse_handle(handle)
        with contextlib.suppress(ProcessLookupError):
            os.killpg(pid, signal.SIGTERM)
        proc = self._procs.get(pid)
        if proc is not None:
            await proc.wait()

    async def remove(self, handle: str) -> None:
        pid, _ = _parse_handle(handle)
        self._procs.pop(pid, None)
