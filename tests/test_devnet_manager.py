import asyncio
import logging

import httpx
import pytest

from conftest import FakeEngine, devnet_factory
from orbit_sdk.devnet.manager import ALREADY_RUNNING, ManagerSettings, create_app, main


def _client(app):
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://manager")


async def _wait_ready(client, tries=200):
    for _ in range(tries):
        body = (await client.get("/ready")).json()
        if body["ready"] or body["error"]:
            return body
        await asyncio.sleep(0.01)
    raise AssertionError("manager never reported ready")


@pytest.mark.asyncio
async def test_spawn_then_ready(tmp_path, engine, ports):
    app = create_app(factory=devnet_factory(tmp_path, engine), ports=ports)
    async with _client(app) as client:
        r = await client.get("/ready")
        assert r.json() == {"ready": False, "chainId": None, "port": None, "error": None}

        r = await client.get("/spawn", params={"id": "devnet-aa", "genesis": "Admin,Alice"})
        assert r.status_code == 200
        assert r.json() == {"ok": True, "chainId": "devnet-aa", "port": 41001}

        body = await _wait_ready(client)
    assert body == {"ready": True, "chainId": "devnet-aa", "port": 41001, "error": None}
    assert engine.specs[0].env["GENESIS_ACCOUNTS"] == "Admin Alice"
    assert (tmp_path / "devnet-aa" / "genesis.json").exists()


@pytest.mark.asyncio
async def test_second_spawn_reports_the_running_node(tmp_path, engine, ports):
    app = create_app(factory=devnet_factory(tmp_path, engine), ports=ports)
    async with _client(app) as client:
        await client.get("/spawn", params={"id": "devnet-aa", "genesis": "Admin"})
        await _wait_ready(client)

        r = await client.get("/spawn", params={"id": "devnet-bb", "genesis": "Admin"})
    assert r.status_code == 400
    assert r.json() == {"error": ALREADY_RUNNING, "chainId": "devnet-aa", "port": 41001}
    # rejected before a port was allocated
    assert ports.calls == 1
    assert len(engine.specs) == 1


@pytest.mark.asyncio
async def test_client_chosen_port_is_used(tmp_path, engine, ports):
    app = create_app(factory=devnet_factory(tmp_path, engine), ports=ports)
    async with _client(app) as client:
        r = await client.get("/spawn", params={"id": "devnet-aa", "genesis": "Admin", "port": 45555})
        assert r.json()["port"] == 45555
        await _wait_ready(client)
    assert ports.calls == 0
    assert engine.specs[0].ports == {45555: 45555}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params",
    [{}, {"id": "devnet-aa"}, {"genesis": "Admin"}, {"id": "devnet-aa", "genesis": " , "}],
)
async def test_spawn_needs_id_and_genesis(tmp_path, engine, ports, params):
    app = create_app(factory=devnet_factory(tmp_path, engine), ports=ports)
    async with _client(app) as client:
        r = await client.get("/spawn", params=params)
    assert r.status_code == 400
    assert "missing" in r.json()["error"]
    assert engine.specs == []


@pytest.mark.asyncio
async def test_identity_lookup(tmp_path, engine, ports):
    app = create_app(factory=devnet_factory(tmp_path, engine), ports=ports)
    async with _client(app) as client:
        r = await client.get("/identity", params={"name": "Admin"})
        assert r.status_code == 404
        assert r.json()["error"] == "no devnet spawned"

        await client.get("/spawn", params={"id": "devnet-aa", "genesis": "Admin,Alice"})
        await _wait_ready(client)

        r = await client.get("/identity", params={"name": "Alice"})
        assert r.status_code == 200
        assert set(r.json()) == {"address", "mnemonic"}

        r = await client.get("/identity", params={"name": "Mallory"})
        assert r.status_code == 404
        assert "Mallory" in r.json()["error"]

        r = await client.get("/identity")
        assert r.status_code == 400


@pytest.mark.asyncio
async def test_failed_spawn_is_reported_and_not_active(tmp_path, ports):
    engine = FakeEngine(["starting node"])
    app = create_app(factory=devnet_factory(tmp_path, engine), ports=ports)
    async with _client(app) as client:
        await client.get("/spawn", params={"id": "devnet-aa", "genesis": "Admin"})
        body = await _wait_ready(client)
        assert body["ready"] is False
        assert "indexed block" in body["error"]

        engine.lines = ["indexed block height=1"]
        r = await client.get("/spawn", params={"id": "devnet-aa", "genesis": "Admin"})
        assert r.status_code == 200
        assert (await _wait_ready(client))["ready"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("path,dir_kept", [("/terminate", True), ("/erase", False)])
async def test_terminate_and_erase(tmp_path, engine, ports, path, dir_kept):
    app = create_app(factory=devnet_factory(tmp_path, engine), ports=ports)
    async with _client(app) as client:
        await client.get("/spawn", params={"id": "devnet-aa", "genesis": "Admin"})
        await _wait_ready(client)
        handle = next(iter(engine.running))

        r = await client.post(path)
        assert r.json() == {"ok": True}
        assert handle in engine.killed
        assert (tmp_path / "devnet-aa").exists() is dir_kept
        assert (await client.get("/ready")).json()["chainId"] is None

        r = await client.get("/spawn", params={"id": "devnet-bb", "genesis": "Admin"})
        assert r.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params",
    [
        {"id": "../precious", "genesis": "Admin"},
        {"id": "devnet/aa", "genesis": "Admin"},
        {"id": ".hidden", "genesis": "Admin"},
        {"id": "devnet-aa", "genesis": "Admin,../../precious/keep"},
        {"id": "devnet-aa", "genesis": "Admin,a..b"},
    ],
)
async def test_spawn_rejects_path_like_names(tmp_path, engine, ports, params):
    precious = tmp_path / "precious"
    precious.mkdir()
    (precious / "keep.txt").write_text("keep")
    app = create_app(factory=devnet_factory(tmp_path / "devnets", engine), ports=ports)
    async with _client(app) as client:
        r = await client.get("/spawn", params=params)
        assert r.status_code == 400
        assert "invalid" in r.json()["error"]
        assert (await client.get("/ready")).json()["chainId"] is None

        r = await client.post("/erase")
        assert r.json() == {"ok": True}
    assert (precious / "keep.txt").exists()
    assert engine.specs == [] and ports.calls == 0


@pytest.mark.asyncio
async def test_identity_rejects_path_like_and_unreadable_names(tmp_path, engine, ports):
    app = create_app(factory=devnet_factory(tmp_path, engine), ports=ports)
    async with _client(app) as client:
        await client.get("/spawn", params={"id": "devnet-aa", "genesis": "Admin"})
        await _wait_ready(client)

        for name in ("../genesis", "../../devnet-bb/wallet/Admin", "wallet/Admin", ".Admin"):
            r = await client.get("/identity", params={"name": name})
            assert r.status_code == 400, name
            assert "mnemonic" not in r.json()

        wallet = tmp_path / "devnet-aa" / "wallet"
        (wallet / "Truncated.json").write_text('{"address": "orb1')
        (wallet / "Partial.json").write_text('{"address": "orb1xyz"}')
        for name in ("Truncated", "Partial"):
            r = await client.get("/identity", params={"name": name})
            assert r.status_code == 400, name
            assert name in r.json()["error"]


@pytest.mark.asyncio
async def test_exited_node_does_not_block_a_new_spawn(tmp_path, engine, ports):
    app = create_app(factory=devnet_factory(tmp_path, engine), ports=ports)
    async with _client(app) as client:
        await client.get("/spawn", params={"id": "devnet-aa", "genesis": "Admin"})
        await _wait_ready(client)
        handle = next(iter(engine.running))

        engine.running[handle] = False
        body = (await client.get("/ready")).json()
        assert body["ready"] is False
        assert body["error"] == "node exited"

        r = await client.get("/spawn", params={"id": "devnet-bb", "genesis": "Admin"})
        assert r.status_code == 200
        assert (await _wait_ready(client))["ready"] is True
    # the dead node's container was cleaned up
    assert handle in engine.removed
    assert not (tmp_path / "devnet-aa" / "devnet.json").exists()
    assert len(engine.specs) == 2


def test_settings_pick_the_engine(tmp_path):
    from orbit_sdk.devnet.engine import DockerEngine, ProcessEngine

    assert isinstance(ManagerSettings(state_dir=tmp_path).make_engine(), DockerEngine)
    assert isinstance(ManagerSettings(state_dir=tmp_path, engine="process").make_engine(), ProcessEngine)

    devnet = ManagerSettings(state_dir=tmp_path, settle_delay=0.5).make_factory()("devnet-cc", ["Admin"], 46000)
    assert devnet.state_dir == tmp_path / "devnet-cc"
    assert devnet.port == 46000 and devnet.settle_delay == 0.5


def test_main_runs_uvicorn(monkeypatch, tmp_path):
    calls = {}

    def fake_run(app, **kw):
        calls["app"] = app
        calls.update(kw)

    monkeypatch.setattr("orbit_sdk.devnet.manager.uvicorn.run", fake_run)
    main(["--port", "9999", "--state-dir", str(tmp_path), "--engine", "process", "--log-level", "warning"])
    assert calls["port"] == 9999
    assert calls["log_level"] == "warning"
    assert calls["app"].state.settings.engine == "process"
    assert calls["app"].state.settings.state_dir == tmp_path
    assert logging.getLogger("uvicorn").propagate is False
