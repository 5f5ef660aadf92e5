import pytest

from conftest import ScriptedTransport
from orbit_sdk.chain import ChainHandle
from orbit_sdk.connect import connect
from orbit_sdk.contracts import ContractInstance
from orbit_sdk.errors import DisallowedInBundle, EmptyBundle, ExecutionFailed, NotBundling
from orbit_sdk.mocknet import MocknetTransport
from orbit_sdk.tx.bundle import Bundle
from orbit_sdk.tx.messages import ExecuteMsg, InstantiateMsg, SendMsg


class CountingTransport(MocknetTransport):
    """Mocknet transport that counts broadcasts."""

    def __init__(self, backend):
        super().__init__(backend)
        self.broadcasts = []

    async def broadcast_commit(self, signed):
        self.broadcasts.append(signed)
        return await super().broadcast_commit(signed)


async def _admin(backend, config, transport=None):
    return await connect(ChainHandle.mocknet(), "Admin", config=config, mocknet=backend, transport=transport)


@pytest.mark.asyncio
async def test_nested_bundles_broadcast_once_in_queue_order(backend, config, counter_code):
    transport = CountingTransport(backend)
    admin = await _admin(backend, config, transport)
    code = await admin.upload(counter_code)
    counter = await admin.instantiate(code, "counter", {"start": 0})
    before = len(transport.broadcasts)

    outer = admin.bundle()
    middle = admin.bundle()
    inner = admin.bundle()
    assert outer is middle is inner
    assert outer.depth == 3

    a = inner.instantiate(code, "a", {"start": 5})
    e1 = inner.execute(counter, {"inc": {}})
    b = middle.instantiate(code, "b", {"start": 7})
    e2 = outer.execute(counter, {"inc": {}})

    assert await inner.submit() is None
    assert await middle.submit() is None
    assert len(transport.broadcasts) == before
    assert outer.depth == 1

    result = await outer.submit(memo="batch")
    assert len(transport.broadcasts) == before + 1
    assert outer.depth == 0 and outer.messages == []

    inst_a, inst_b = await a, await b
    assert isinstance(inst_a, ContractInstance)
    assert inst_a.label == "a" and inst_b.label == "b"
    assert inst_a.address != inst_b.address
    assert (await e1) is result and (await e2) is result
    assert (await admin.query(counter, {}))["count"] == 2
    assert (await admin.query(inst_a, {}))["count"] == 5


@pytest.mark.asyncio
async def test_context_manager_and_helpers_share_the_outer_tx(backend, config, counter_code):
    transport = CountingTransport(backend)
    admin = await _admin(backend, config, transport)
    code = await admin.upload(counter_code)
    before = len(transport.broadcasts)

    futures = []

    async def deploy_pair(agent):
        async with agent.bundle() as b:
            futures.append(b.instantiate(code, "left", {}))
            futures.append(b.instantiate(code, "right", {}))

    async with admin.bundle() as outer:
        await deploy_pair(admin)
        assert len(outer.messages) == 2
        futures.append(outer.instantiate(code, "third", {}))

    assert len(transport.broadcasts) == before + 1
    labels = [await admin.get_label((await f).address) for f in futures]
    assert labels == ["left", "right", "third"]


@pytest.mark.asyncio
async def test_wrap_runs_callback_and_submits(backend, config, counter_code):
    admin = await _admin(backend, config)
    code = await admin.upload(counter_code)
    holder = {}

    async def callback(bundle):
        holder["fut"] = bundle.instantiate(code, "wrapped", {"start": 1})

    result = await admin.bundle().wrap(callback, memo="wrapped")
    assert result is not None and not result.failed
    instance = await holder["fut"]
    assert (await admin.query(instance, {}))["count"] == 1


@pytest.mark.asyncio
async def test_disallowed_operations(backend, config):
    admin = await _admin(backend, config)
    bundle = admin.bundle()
    with pytest.raises(DisallowedInBundle):
        await bundle.query("orb1xyz", {})
    with pytest.raises(DisallowedInBundle):
        await bundle.upload(b"code")
    for call in (bundle.get_balance(), bundle.height(), bundle.next_block(), bundle.send("orb1xyz", 1)):
        with pytest.raises(DisallowedInBundle):
            await call
    with pytest.raises(DisallowedInBundle):
        bundle.add(SendMsg(recipient="orb1xyz", amount=[]))


@pytest.mark.asyncio
async def test_protocol_errors(backend, config):
    admin = await _admin(backend, config)
    bundle = Bundle(admin)
    with pytest.raises(NotBundling):
        await bundle.submit()
    with pytest.raises(NotBundling):
        await bundle.save()
    with pytest.raises(NotBundling):
        bundle.execute("orb1xyz", {}, code_hash="00")

    bundle = admin.bundle()
    with pytest.raises(EmptyBundle):
        await bundle.submit()
    with pytest.raises(EmptyBundle):
        await bundle.save()


@pytest.mark.asyncio
async def test_failed_broadcast_keeps_the_queue(backend, config, counter_code):
    admin = await _admin(backend, config)
    code = await admin.upload(counter_code)
    counter = await admin.instantiate(code, "counter", {})

    bundle = admin.bundle()
    bundle.execute(counter, {"inc": {}})
    bundle.execute(counter, {"fail": {}})
    with pytest.raises(ExecutionFailed) as ei:
        await bundle.submit()
    assert "message index: 1" in ei.value.raw_log
    assert bundle.depth == 1
    assert len(bundle.messages) == 2
    # the whole tx rolled back, including the first message
    assert (await admin.query(counter, {}))["count"] == 0


@pytest.mark.asyncio
async def test_bundle_fee_scales_with_messages(backend, config):
    admin = await _admin(backend, config, ScriptedTransport())
    bundle = admin.bundle()
    for _ in range(3):
        bundle.execute("orb1xyz", {"inc": {}}, code_hash="00")
    assert bundle.fee.gas == 3 * admin.fees["exec"]


@pytest.mark.asyncio
async def test_save_round_trips_messages(backend, config, counter_code):
    admin = await _admin(backend, config)
    code = await admin.upload(counter_code)
    bundle = admin.bundle()
    bundle.instantiate(code, "saved-1", {"start": 3}, funds=[{"amount": "10", "denom": "uorb"}])
    bundle.execute("orb1contract", {"inc": {}}, code_hash=code.code_hash)

    saved = await bundle.save("multisig-batch")
    assert saved.path == config.state_dir / "mocknet" / "transactions" / "multisig-batch.json"
    assert saved.document["chainId"] == "mocknet"
    assert saved.document["signer"] == admin.address
    assert saved.document["unsignedTx"]["signatures"] == []

    loaded = Bundle.load_saved(saved.path)
    assert loaded.messages == bundle.messages
    assert isinstance(loaded.messages[0], InstantiateMsg)
    assert isinstance(loaded.messages[1], ExecuteMsg)
    assert loaded.fee == bundle.fee
    # saving is not a terminal state for the queue
    assert bundle.depth == 1 and len(bundle.messages) == 2


@pytest.mark.asyncio
async def test_default_save_names_are_numbered(backend, config):
    admin = await _admin(backend, config)
    bundle = admin.bundle()
    bundle.execute("orb1contract", {}, code_hash="00")
    first = await bundle.save()
    second = await bundle.save()
    assert first.name.startswith("TX.") and second.name.startswith("TX.")
    assert first.document["N"] + 1 == second.document["N"]
    assert first.path.exists() and second.path.exists()


@pytest.mark.asyncio
async def test_body_exception_aborts_without_broadcast(backend, config):
    transport = CountingTransport(backend)
    admin = await _admin(backend, config, transport)
    with pytest.raises(RuntimeError):
        async with admin.bundle() as b:
            b.execute("orb1contract", {}, code_hash="00")
            raise RuntimeError("abort")
    assert transport.broadcasts == []
    assert admin.bundle().depth == 1
