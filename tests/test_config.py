from pathlib import Path

import pytest

from orbit_sdk.chain import ChainHandle, ChainMode
from orbit_sdk.config import SDKConfig
from orbit_sdk.errors import ConfigurationError

ENV_KEYS = [
    "ORBIT_CHAIN_ID",
    "ORBIT_CHAIN_URL",
    "ORBIT_CHAIN_MODE",
    "ORBIT_TIMEOUT",
    "ORBIT_SUBMIT_RETRIES",
    "ORBIT_RESULT_RETRIES",
    "ORBIT_GAS_PRICE",
    "ORBIT_DENOM",
    "ORBIT_STATE_DIR",
    "ORBIT_DEVNET_PLATFORM",
    "ORBIT_DEVNET_MANAGER_URL",
    "ORBIT_DEVNET_TIMEOUT",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    cfg = SDKConfig.from_env()
    assert cfg.chain_id == "mocknet"
    assert cfg.chain_mode is ChainMode.MOCKNET
    assert cfg.submit_retries == 10 and cfg.result_retries == 10
    assert cfg.state_dir == Path("state")
    assert cfg.devnet_manager_url is None
    assert cfg.chain_handle() == ChainHandle.mocknet()


def test_from_env(clean_env):
    clean_env.setenv("ORBIT_CHAIN_ID", "orbit-test-1")
    clean_env.setenv("ORBIT_CHAIN_URL", "https://rpc.test.orbit.example")
    clean_env.setenv("ORBIT_CHAIN_MODE", "testnet")
    clean_env.setenv("ORBIT_SUBMIT_RETRIES", "3")
    clean_env.setenv("ORBIT_GAS_PRICE", "0.5")
    clean_env.setenv("ORBIT_STATE_DIR", "/tmp/orbit")
    clean_env.setenv("ORBIT_DEVNET_MANAGER_URL", "http://devnet:8082")
    clean_env.setenv("ORBIT_DEVNET_TIMEOUT", "30")

    cfg = SDKConfig.from_env()
    assert cfg.submit_retries == 3
    assert cfg.gas_price == 0.5
    assert cfg.state_dir == Path("/tmp/orbit")
    assert cfg.devnet_manager_url == "http://devnet:8082"
    assert cfg.devnet_launch_timeout == 30.0

    chain = cfg.chain_handle()
    assert chain.mode is ChainMode.TESTNET and chain.is_testnet
    assert chain.id == "orbit-test-1"
    assert not chain.dev_mode


@pytest.mark.parametrize(
    "key,value",
    [
        ("ORBIT_SUBMIT_RETRIES", "many"),
        ("ORBIT_SUBMIT_RETRIES", "0"),
        ("ORBIT_TIMEOUT", "soon"),
        ("ORBIT_CHAIN_MODE", "Regtest"),
        ("ORBIT_CHAIN_URL", "ftp://node"),
        ("ORBIT_DEVNET_MANAGER_URL", "devnet:8082"),
    ],
)
def test_bad_values_are_configuration_errors(clean_env, key, value):
    clean_env.setenv(key, value)
    with pytest.raises(ConfigurationError):
        SDKConfig.from_env()


def test_with_overrides_ignores_unknown_keys(clean_env):
    base = SDKConfig(submit_retries=4)
    cfg = SDKConfig.with_overrides(base, result_retries=2, bogus=1)
    assert cfg.submit_retries == 4 and cfg.result_retries == 2
    assert not hasattr(cfg, "bogus")
    assert base.result_retries == 10


def test_chain_handles_validate():
    assert ChainHandle.devnet("devnet-1", "http://127.0.0.1:1317").dev_mode
    assert ChainHandle.mocknet().dev_mode
    assert ChainHandle.mainnet("orbit-1", "https://rpc.orbit.example").is_mainnet
    with pytest.raises(ConfigurationError):
        ChainHandle.mainnet("orbit-1", "")
    with pytest.raises(ConfigurationError):
        ChainHandle.testnet("", "http://x")
    assert ChainMode.parse("DEVNET") is ChainMode.DEVNET
