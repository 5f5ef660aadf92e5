import pytest

from conftest import FakeEngine
from orbit_sdk.devnet import DevnetStatus, GenesisStore, LocalDevnet
from orbit_sdk.devnet.local import is_log_noise
from orbit_sdk.errors import (
    ConfigurationError,
    DevnetAlreadyRunning,
    DevnetError,
    DevnetNotReady,
    NoGenesisAccount,
    StateError,
)
from orbit_sdk.wallet import Ed25519Signer


class ProcessLikeEngine(FakeEngine):
    """FakeEngine that runs commands instead of images."""

    runs_images = False


def _devnet(tmp_path, engine, ports, **kw):
    kw.setdefault("genesis_accounts", ("Admin", "Alice"))
    return LocalDevnet(state_dir=tmp_path / "devnet", engine=engine, ports=ports, settle_delay=0.0, **kw)


@pytest.mark.asyncio
async def test_spawn_runs_genesis_and_reaches_running(tmp_path, engine, ports):
    devnet = _devnet(tmp_path, engine, ports)
    assert devnet.status is DevnetStatus.UNINITIALIZED
    assert devnet.chain_id.startswith("devnet-")

    state = await devnet.spawn(timeout=5)
    assert state.status is DevnetStatus.RUNNING
    assert state.port == 41001
    assert devnet.status is DevnetStatus.RUNNING
    assert devnet.url == "http://127.0.0.1:41001"
    assert devnet.chain.is_devnet and devnet.chain.id == devnet.chain_id
    assert devnet.load_state() == state
    assert await devnet.is_running()

    root = tmp_path / "devnet"
    assert (root / "genesis.json").exists()
    assert (root / "wallet" / "Admin.json").exists()
    assert (root / "wallet" / "Alice.json").exists()

    spec = engine.specs[0]
    assert spec.name == f"{devnet.chain_id}-41001"
    assert spec.env["HTTP_PORT"] == "41001"
    assert spec.env["CHAIN_ID"] == devnet.chain_id
    assert spec.env["GENESIS_ACCOUNTS"] == "Admin Alice"
    assert spec.ports == {41001: 41001}
    assert list(spec.mounts.values()) == [f"/state/{devnet.chain_id}"]


@pytest.mark.asyncio
async def test_respawn_reuses_a_running_node(tmp_path, engine, ports):
    devnet = _devnet(tmp_path, engine, ports)
    first = await devnet.respawn(timeout=5)
    second = await devnet.respawn(timeout=5)
    assert first == second
    assert len(engine.specs) == 1
    assert ports.calls == 1

    # a fresh handle on the same state dir finds the same node
    again = _devnet(tmp_path, engine, ports)
    assert again.chain_id == devnet.chain_id
    assert again.port == first.port
    assert await again.respawn() == first
    assert len(engine.specs) == 1


@pytest.mark.asyncio
async def test_spawn_while_running_is_rejected(tmp_path, engine, ports):
    devnet = _devnet(tmp_path, engine, ports)
    state = await devnet.spawn(timeout=5)
    with pytest.raises(DevnetAlreadyRunning) as ei:
        await devnet.spawn(timeout=5)
    assert ei.value.chain_id == devnet.chain_id
    assert ei.value.port == state.port
    assert len(engine.specs) == 1


@pytest.mark.asyncio
async def test_dead_node_is_replaced_without_new_genesis(tmp_path, engine, ports):
    devnet = _devnet(tmp_path, engine, ports)
    first = await devnet.spawn(timeout=5)
    admin = await devnet.get_genesis_account("Admin")

    engine.running[first.container_id] = False
    state = await devnet.respawn(timeout=5)

    assert state.status is DevnetStatus.RUNNING
    assert state.container_id != first.container_id
    assert first.container_id in engine.removed
    assert state.port == first.port
    assert await devnet.get_genesis_account("Admin") == admin


@pytest.mark.asyncio
async def test_timeout_leaves_spawning_and_respawn_restarts(tmp_path, ports):
    engine = FakeEngine(["starting node"], hang=True)
    devnet = _devnet(tmp_path, engine, ports)

    with pytest.raises(DevnetNotReady):
        await devnet.spawn(timeout=0.05)
    assert devnet.status is DevnetStatus.SPAWNING
    half_started = devnet.load_state().container_id

    engine.lines = ["indexed block height=1"]
    engine.hang = False
    state = await devnet.respawn(timeout=5)

    assert state.status is DevnetStatus.RUNNING
    assert state.container_id != half_started
    assert half_started in engine.killed
    assert half_started in engine.removed


@pytest.mark.asyncio
async def test_node_exiting_before_ready_phrase(tmp_path, ports):
    devnet = _devnet(tmp_path, FakeEngine(["starting node", "panic: bad genesis"]), ports)
    with pytest.raises(DevnetError) as ei:
        await devnet.spawn(timeout=5)
    assert not isinstance(ei.value, DevnetNotReady)
    assert devnet.status is DevnetStatus.SPAWNING


@pytest.mark.asyncio
async def test_genesis_accounts_wake_the_devnet_and_stay_stable(tmp_path, engine, ports):
    devnet = _devnet(tmp_path, engine, ports)
    alice = await devnet.get_genesis_account("Alice")
    assert devnet.status is DevnetStatus.RUNNING
    assert len(engine.specs) == 1

    assert await devnet.get_genesis_account("Alice") == alice
    assert Ed25519Signer.from_mnemonic(alice.mnemonic).address == alice.address
    assert alice.address != (await devnet.get_genesis_account("Admin")).address

    with pytest.raises(NoGenesisAccount) as ei:
        await devnet.get_genesis_account("Nobody")
    assert ei.value.chain_id == devnet.chain_id


@pytest.mark.asyncio
async def test_terminate_keeps_genesis(tmp_path, engine, ports):
    devnet = _devnet(tmp_path, engine, ports)
    first = await devnet.spawn(timeout=5)
    admin = await devnet.get_genesis_account("Admin")

    await devnet.terminate()
    assert devnet.status is DevnetStatus.TERMINATED
    assert first.container_id in engine.killed
    assert devnet.load_state() is None
    assert not await devnet.is_running()

    await devnet.spawn(timeout=5)
    assert devnet.status is DevnetStatus.RUNNING
    assert await devnet.get_genesis_account("Admin") == admin


@pytest.mark.asyncio
async def test_erase_and_reset_run_genesis_again(tmp_path, engine, ports):
    devnet = _devnet(tmp_path, engine, ports)
    await devnet.spawn(timeout=5)
    chain_id = devnet.chain_id
    admin = await devnet.get_genesis_account("Admin")

    await devnet.erase()
    assert not (tmp_path / "devnet").exists()
    assert devnet.status is DevnetStatus.TERMINATED

    await devnet.spawn(timeout=5)
    assert devnet.chain_id == chain_id
    erased = await devnet.get_genesis_account("Admin")
    assert erased.address != admin.address

    state = await devnet.reset(timeout=5)
    assert state.status is DevnetStatus.RUNNING
    assert (await devnet.get_genesis_account("Admin")).address != erased.address


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "on_exit,status,dir_kept",
    [
        ("terminate", DevnetStatus.TERMINATED, True),
        ("erase", DevnetStatus.TERMINATED, False),
        ("keep", DevnetStatus.RUNNING, True),
    ],
)
async def test_context_manager_exit_policies(tmp_path, engine, ports, on_exit, status, dir_kept):
    async with _devnet(tmp_path, engine, ports, on_exit=on_exit) as devnet:
        assert devnet.status is DevnetStatus.RUNNING
    assert devnet.status is status
    assert (tmp_path / "devnet").exists() is dir_kept


def test_bad_arguments(tmp_path, engine, ports):
    with pytest.raises(ConfigurationError):
        _devnet(tmp_path, engine, ports, on_exit="explode")
    with pytest.raises(ConfigurationError):
        _devnet(tmp_path, engine, ports, platform="orbit_0.1")
    with pytest.raises(ConfigurationError):
        _devnet(tmp_path, engine, ports, chain_id="../outside")
    with pytest.raises(ConfigurationError):
        _devnet(tmp_path, engine, ports, genesis_accounts=("Admin", "../Alice"))


@pytest.mark.asyncio
async def test_explicit_port_and_platform(tmp_path, ports):
    engine = FakeEngine(["Done verifying block height 1"])
    devnet = _devnet(tmp_path, engine, ports, platform="orbit_2.0", port=45000, chain_id="devnet-fixed")
    state = await devnet.spawn(timeout=5)
    assert state.port == 45000 and state.platform == "orbit_2.0"
    assert ports.calls == 0
    assert engine.specs[0].env["GRPC_WEB_PORT"] == "45000"
    assert engine.specs[0].image == "ghcr.io/orbit-chain/devnet:2.0"
    assert devnet.chain.id == "devnet-fixed"


@pytest.mark.asyncio
async def test_process_engine_gets_a_command(tmp_path, ports):
    engine = ProcessLikeEngine()
    devnet = _devnet(tmp_path, engine, ports)
    await devnet.spawn(timeout=5)
    spec = engine.specs[0]
    home = (tmp_path / "devnet").resolve()
    assert spec.command == ["orbitd", "start", "--home", str(home)]
    assert spec.log_path == home / "node.log"
    assert spec.workdir == str(home)
    assert spec.ports == {} and spec.mounts == {}


@pytest.mark.parametrize(
    "line,noise",
    [
        ("", True),
        ("   ", True),
        ("INFO starting", True),
        ("DEBUG x", True),
        ("I[2024-01-01] executed block", True),
        ('{"app_message": "hi"}', True),
        ("Storing key: abc", True),
        ("x" * 2000, True),
        ("bell\x07", True),
        ("panic: bad genesis", False),
        ("indexed block height=1", False),
    ],
)
def test_is_log_noise(line, noise):
    assert is_log_noise(line) is noise


def test_genesis_is_written_once(tmp_path):
    store = GenesisStore(tmp_path / "g")
    doc = store.run("devnet-1", ["Admin", "Alice"])
    assert doc["chainId"] == "devnet-1"
    assert [a["name"] for a in doc["accounts"]] == ["Admin", "Alice"]
    assert doc["gentxs"][0]["validator"] == "Admin"
    assert store.names() == ["Admin", "Alice"]

    assert store.run("devnet-1", ["Someone"]) == doc
    assert store.names() == ["Admin", "Alice"]
    with pytest.raises(ConfigurationError):
        store.run("devnet-2", ["Admin"])


def test_genesis_rejects_bad_account_lists(tmp_path):
    with pytest.raises(ConfigurationError):
        GenesisStore(tmp_path / "a").run("devnet-1", [])
    with pytest.raises(ConfigurationError):
        GenesisStore(tmp_path / "b").run("devnet-1", ["Admin", "Admin"])


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", '{"chainId": "devnet-x", "po', "[]", '{"port": 1}'])
async def test_corrupt_state_record_is_discarded(tmp_path, engine, ports, content):
    root = tmp_path / "devnet"
    root.mkdir()
    (root / "devnet.json").write_text(content)

    devnet = _devnet(tmp_path, engine, ports)
    assert devnet.status is DevnetStatus.UNINITIALIZED
    with pytest.raises(StateError):
        devnet.load_state()

    state = await devnet.respawn(timeout=5)
    assert state.status is DevnetStatus.RUNNING
    assert devnet.load_state() == state
    assert len(engine.specs) == 1


def test_genesis_account_lookup_stays_in_the_wallet(tmp_path):
    store = GenesisStore(tmp_path / "g")
    store.run("devnet-1", ["Admin"])
    for name in ("../genesis", "../../g/wallet/Admin", "wallet/Admin"):
        with pytest.raises(ConfigurationError):
            store.account(name)

    (store.wallet_dir / "Broken.json").write_text("{")
    with pytest.raises(ConfigurationError):
        store.account("Broken")
    with pytest.raises(ConfigurationError):
        GenesisStore(tmp_path / "h").run("../devnet-1", ["Admin"])
