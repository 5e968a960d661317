from __future__ import annotations

import pytest

from lotus_metrics.config import LotusConfig
from lotus_metrics.types import ConfigurationError


def test_defaults_point_at_loopback(lotus_env):
    config = LotusConfig.from_env(lotus_env)
    assert config.daemon_addr == "127.0.0.1:1234"
    assert config.miner_addr == "127.0.0.1:2345"
    assert config.daemon_url == "http://127.0.0.1:1234/rpc/v0"
    assert config.miner_url == "http://127.0.0.1:2345/rpc/v0"
    assert config.storage_concurrency == 8
    assert config.cycle_timeout is None


def test_missing_token_is_fatal():
    with pytest.raises(ConfigurationError, match="daemon token"):
        LotusConfig.from_env({"LOTUS_MINER_TOKEN": "t"})


def test_disabled_endpoint_needs_no_token():
    config = LotusConfig.from_env({"LOTUS_DAEMON_TOKEN": "t", "LOTUS_MINER_ENABLED": "false"})
    assert config.miner_enabled is False


@pytest.mark.parametrize("addr", ["", "localhost", ":1234", "localhost:0", "localhost:70000", "localhost:http"])
def test_bad_address_is_rejected(addr):
    with pytest.raises(ConfigurationError, match="daemon"):
        LotusConfig(daemon_addr=addr, daemon_token="t", miner_token="t")


def test_environment_values_are_coerced():
    config = LotusConfig.from_env({
        "LOTUS_DAEMON_ADDR": "10.0.0.5:1234",
        "LOTUS_DAEMON_TOKEN": "dt",
        "LOTUS_DAEMON_API_VERSION": "v1",
        "LOTUS_MINER_TOKEN": "mt",
        "LOTUS_RPC_TIMEOUT": "2.5",
        "LOTUS_STORAGE_CONCURRENCY": "3",
        "LOTUS_CYCLE_TIMEOUT": "30",
    })
    assert config.daemon_url == "http://10.0.0.5:1234/rpc/v1"
    assert config.timeout == 2.5
    assert config.storage_concurrency == 3
    assert config.cycle_timeout == 30.0


def test_malformed_number_is_a_configuration_error(lotus_env):
    env = dict(lotus_env, LOTUS_STORAGE_CONCURRENCY="many")
    with pytest.raises(ConfigurationError, match="LOTUS_STORAGE_CONCURRENCY"):
        LotusConfig.from_env(env)


def test_overrides_win_over_environment(lotus_env):
    env = dict(lotus_env, LOTUS_MINER_ADDR="10.0.0.6:2345")
    config = LotusConfig.from_env(env, miner_addr="10.0.0.7:2345", miner_token=None)
    assert config.miner_addr == "10.0.0.7:2345"
    assert config.miner_token == "miner-token"


def test_lotus_api_info_is_used_as_fallback():
    config = LotusConfig.from_env({
        "FULLNODE_API_INFO": "dtoken:/ip4/192.168.1.10/tcp/1234/http",
        "MINER_API_INFO": "mtoken:/ip4/192.168.1.11/tcp/2345/http",
    })
    assert config.daemon_addr == "192.168.1.10:1234"
    assert config.daemon_token == "dtoken"
    assert config.miner_addr == "192.168.1.11:2345"
    assert config.miner_token == "mtoken"


def test_explicit_variables_beat_api_info():
    config = LotusConfig.from_env({
        "FULLNODE_API_INFO": "dtoken:/ip4/192.168.1.10/tcp/1234/http",
        "LOTUS_DAEMON_ADDR": "10.0.0.5:1234",
        "LOTUS_MINER_ENABLED": "0",
    })
    assert config.daemon_addr == "10.0.0.5:1234"
    assert config.daemon_token == "dtoken"


def test_api_info_without_token_on_ipv6():
    config = LotusConfig.from_env({
        "FULLNODE_API_INFO": "/ip6/::1/tcp/1234/http",
        "LOTUS_DAEMON_TOKEN": "dt",
        "LOTUS_MINER_ENABLED": "false",
    })
    assert config.daemon_addr == "[::1]:1234"
    assert config.daemon_token == "dt"
    assert config.daemon_url == "http://[::1]:1234/rpc/v0"


def test_api_info_with_token_on_ipv6():
    config = LotusConfig.from_env({
        "MINER_API_INFO": "mtoken:/ip6/fe80::1/tcp/2345/http",
        "LOTUS_DAEMON_ENABLED": "false",
    })
    assert config.miner_addr == "[fe80::1]:2345"
    assert config.miner_token == "mtoken"
    assert config.miner_url == "http://[fe80::1]:2345/rpc/v0"


def test_unparseable_api_info_is_rejected():
    with pytest.raises(ConfigurationError):
        LotusConfig.from_env({"FULLNODE_API_INFO": "token:/unix/socket"})


def test_non_positive_limits_are_rejected(lotus_env):
    with pytest.raises(ConfigurationError):
        LotusConfig.from_env(lotus_env, storage_concurrency=0)
    with pytest.raises(ConfigurationError):
        LotusConfig.from_env(lotus_env, timeout=-1.0)
