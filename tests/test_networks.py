import pytest

from deployer.constants import DEFAULT_CONFIRMATION_TIMEOUT, DEFAULT_MAX_ATTEMPTS
from deployer.exceptions import ConfigError
from deployer.networks import FeePolicy, RetryPolicy, env_key, resolve_network_profile

NETWORK = "hedera_testnet"


@pytest.fixture
def environ():
    return {
        "HEDERA_TESTNET_RPC_URL": "https://testnet.hashio.io/api",
        "HEDERA_TESTNET_DEPLOYER": "swyl-deployer",
    }


def test_env_key():
    assert env_key("hedera_testnet", "RPC_URL") == "HEDERA_TESTNET_RPC_URL"


def test_minimal_profile(environ):
    profile = resolve_network_profile(NETWORK, environ=environ)
    assert profile.name == NETWORK
    assert profile.endpoint_url == "https://testnet.hashio.io/api"
    assert profile.chain_id == 296
    assert profile.signer == "swyl-deployer"
    assert profile.fee_policy == FeePolicy()
    assert profile.confirmations == 1
    assert profile.confirmation_timeout == DEFAULT_CONFIRMATION_TIMEOUT
    assert profile.retry_policy.max_attempts == DEFAULT_MAX_ATTEMPTS
    assert not profile.is_local


def test_full_profile(environ):
    environ.update(
        {
            "HEDERA_TESTNET_CHAIN_ID": "296",
            "HEDERA_TESTNET_MAX_FEE": "120 gwei",
            "HEDERA_TESTNET_MAX_PRIORITY_FEE": "3 gwei",
            "HEDERA_TESTNET_GAS_LIMIT": "4000000",
            "HEDERA_TESTNET_CONFIRMATIONS": "3",
            "HEDERA_TESTNET_CONFIRMATION_TIMEOUT": "60",
            "HEDERA_TESTNET_MAX_ATTEMPTS": "2",
        }
    )
    profile = resolve_network_profile(NETWORK, environ=environ)
    assert profile.fee_policy == FeePolicy(
        max_fee=120 * 10**9, max_priority_fee=3 * 10**9, gas_limit=4_000_000
    )
    assert profile.fee_policy.as_kwargs() == {
        "max_fee": 120 * 10**9,
        "max_priority_fee": 3 * 10**9,
        "gas_limit": 4_000_000,
    }
    assert profile.confirmations == 3
    assert profile.confirmation_timeout == 60
    assert profile.retry_policy.max_attempts == 2


def test_profile_is_immutable(environ):
    profile = resolve_network_profile(NETWORK, environ=environ)
    with pytest.raises(AttributeError):
        profile.chain_id = 1


@pytest.mark.parametrize("missing", ["HEDERA_TESTNET_RPC_URL", "HEDERA_TESTNET_DEPLOYER"])
def test_missing_required_key(environ, missing):
    del environ[missing]
    with pytest.raises(ConfigError) as exc_info:
        resolve_network_profile(NETWORK, environ=environ)
    assert exc_info.value.key == missing
    assert missing in str(exc_info.value)


@pytest.mark.parametrize(
    "url", ["", "   ", "testnet.hashio.io/api", "ftp://testnet.hashio.io", "https://"]
)
def test_malformed_url(environ, url):
    environ["HEDERA_TESTNET_RPC_URL"] = url
    with pytest.raises(ConfigError) as exc_info:
        resolve_network_profile(NETWORK, environ=environ)
    assert exc_info.value.key == "HEDERA_TESTNET_RPC_URL"


def test_chain_id_mismatch(environ):
    environ["HEDERA_TESTNET_CHAIN_ID"] = "295"
    with pytest.raises(ConfigError, match="does not match") as exc_info:
        resolve_network_profile(NETWORK, environ=environ)
    assert exc_info.value.key == "HEDERA_TESTNET_CHAIN_ID"


@pytest.mark.parametrize(
    "key, value",
    [
        ("HEDERA_TESTNET_CHAIN_ID", "hedera"),
        ("HEDERA_TESTNET_MAX_FEE", "lots"),
        ("HEDERA_TESTNET_MAX_FEE", "3 bananas"),
        ("HEDERA_TESTNET_MAX_FEE", "1 2 gwei"),
        ("HEDERA_TESTNET_GAS_LIMIT", "0"),
        ("HEDERA_TESTNET_CONFIRMATIONS", "-1"),
        ("HEDERA_TESTNET_MAX_ATTEMPTS", "0"),
    ],
)
def test_malformed_values(environ, key, value):
    environ[key] = value
    with pytest.raises(ConfigError) as exc_info:
        resolve_network_profile(NETWORK, environ=environ)
    assert exc_info.value.key == key


def test_priority_fee_above_max_fee(environ):
    environ["HEDERA_TESTNET_MAX_FEE"] = "2 gwei"
    environ["HEDERA_TESTNET_MAX_PRIORITY_FEE"] = "3 gwei"
    with pytest.raises(ConfigError):
        resolve_network_profile(NETWORK, environ=environ)


def test_unsupported_network(environ):
    with pytest.raises(ConfigError, match="Unsupported network"):
        resolve_network_profile("moonbase", environ=environ)


def test_custom_expected_chain_ids():
    environ = {"DEVNET_RPC_URL": "http://127.0.0.1:8545", "DEVNET_DEPLOYER": "TEST:0"}
    profile = resolve_network_profile("devnet", environ=environ, expected_chain_ids={"devnet": 7})
    assert profile.chain_id == 7
    assert profile.confirmations == 1


def test_local_network_needs_no_confirmations():
    environ = {"LOCAL_RPC_URL": "http://127.0.0.1:8545", "LOCAL_DEPLOYER": "TEST:0"}
    profile = resolve_network_profile("local", environ=environ)
    assert profile.is_local
    assert profile.confirmations == 0


def test_retry_policy_delays():
    policy = RetryPolicy(max_attempts=5, initial_delay=1.0, multiplier=2.0, max_delay=5.0)
    assert policy.delays() == (1.0, 2.0, 4.0, 5.0)
    assert RetryPolicy(max_attempts=1).delays() == ()
