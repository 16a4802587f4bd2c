import os
from decimal import InvalidOperation
from typing import Dict, Mapping, NamedTuple, Optional, Tuple
from urllib.parse import urlparse

from eth_utils import to_wei

from deployer.constants import (
    ALLOWED_RPC_SCHEMES,
    CHAIN_ID_KEY,
    CONFIRMATION_TIMEOUT_KEY,
    CONFIRMATIONS_KEY,
    DEFAULT_BACKOFF_MULTIPLIER,
    DEFAULT_CONFIRMATION_TIMEOUT,
    DEFAULT_CONFIRMATIONS,
    DEFAULT_INITIAL_DELAY,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_DELAY,
    DEPLOYER_KEY,
    EXPECTED_CHAIN_IDS,
    GAS_LIMIT_KEY,
    LOCAL,
    MAX_ATTEMPTS_KEY,
    MAX_FEE_KEY,
    MAX_PRIORITY_FEE_KEY,
    RPC_URL_KEY,
)
from deployer.exceptions import ConfigError
from deployer.utils import backoff_delays


class RetryPolicy(NamedTuple):
    """Exponential backoff for transient network failures."""

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    initial_delay: float = DEFAULT_INITIAL_DELAY
    multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    max_delay: float = DEFAULT_MAX_DELAY

    def delays(self) -> Tuple[float, ...]:
        return backoff_delays(
            attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            multiplier=self.multiplier,
            max_delay=self.max_delay,
        )


class FeePolicy(NamedTuple):
    """Gas and fee settings in wei; None leaves the value to the provider."""

    max_fee: Optional[int] = None
    max_priority_fee: Optional[int] = None
    gas_limit: Optional[int] = None

    def as_kwargs(self) -> Dict[str, int]:
        kwargs = dict()
        if self.max_fee is not None:
            kwargs["max_fee"] = self.max_fee
        if self.max_priority_fee is not None:
            kwargs["max_priority_fee"] = self.max_priority_fee
        if self.gas_limit is not None:
            kwargs["gas_limit"] = self.gas_limit
        return kwargs


class NetworkProfile(NamedTuple):
    """Resolved, immutable connection and signer parameters for one network."""

    name: str
    endpoint_url: str
    chain_id: int
    signer: str
    fee_policy: FeePolicy = FeePolicy()
    confirmations: int = 1
    confirmation_timeout: int = DEFAULT_CONFIRMATION_TIMEOUT
    retry_policy: RetryPolicy = RetryPolicy()

    @property
    def is_local(self) -> bool:
        return self.name == LOCAL


def env_key(network: str, key: str) -> str:
    """Returns the configuration key for a network, e.g. HEDERA_TESTNET_RPC_URL."""
    return f"{network.upper()}_{key}"


def _validate_url(url: str, key: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ALLOWED_RPC_SCHEMES or not parsed.netloc:
        raise ConfigError(
            f"{key} must be a {'/'.join(ALLOWED_RPC_SCHEMES)} URL with a host, got '{url}'.",
            key=key,
        )
    return url


def _parse_int(value: str, key: str, minimum: int) -> int:
    try:
        result = int(str(value).strip())
    except ValueError:
        raise ConfigError(f"{key} must be an integer, got '{value}'.", key=key)
    if result < minimum:
        raise ConfigError(f"{key} must be at least {minimum}, got {result}.", key=key)
    return result


def _parse_fee(value: str, key: str) -> int:
    """Parses '120 gwei', '3.5 gwei' or a plain wei amount."""
    parts = str(value).split()
    if len(parts) == 1:
        amount, unit = parts[0], "wei"
    elif len(parts) == 2:
        amount, unit = parts
    else:
        raise ConfigError(f"{key} must look like '<amount> <unit>', got '{value}'.", key=key)
    try:
        wei = to_wei(amount, unit.lower())
    except (ValueError, TypeError, InvalidOperation):
        raise ConfigError(f"{key} is not a valid fee amount: '{value}'.", key=key)
    if wei < 0:
        raise ConfigError(f"{key} must not be negative, got '{value}'.", key=key)
    return int(wei)


def _resolve_chain_id(
    network: str, environ: Mapping[str, str], expected_chain_ids: Mapping[str, int]
) -> int:
    key = env_key(network, CHAIN_ID_KEY)
    expected = expected_chain_ids[network]
    raw_chain_id = environ.get(key)
    if not raw_chain_id:
        return expected
    chain_id = _parse_int(raw_chain_id, key, minimum=1)
    if chain_id != expected:
        raise ConfigError(
            f"{key} ({chain_id}) does not match the expected chain id "
            f"of network '{network}' ({expected}).",
            key=key,
        )
    return chain_id


def _resolve_fee_policy(network: str, environ: Mapping[str, str]) -> FeePolicy:
    values = dict()
    for field, key in (
        ("max_fee", MAX_FEE_KEY),
        ("max_priority_fee", MAX_PRIORITY_FEE_KEY),
    ):
        name = env_key(network, key)
        if environ.get(name):
            values[field] = _parse_fee(environ[name], name)

    gas_limit_key = env_key(network, GAS_LIMIT_KEY)
    if environ.get(gas_limit_key):
        values["gas_limit"] = _parse_int(environ[gas_limit_key], gas_limit_key, minimum=1)

    fee_policy = FeePolicy(**values)
    if (
        fee_policy.max_fee is not None
        and fee_policy.max_priority_fee is not None
        and fee_policy.max_priority_fee > fee_policy.max_fee
    ):
        raise ConfigError(
            f"{env_key(network, MAX_PRIORITY_FEE_KEY)} exceeds {env_key(network, MAX_FEE_KEY)}.",
            key=env_key(network, MAX_PRIORITY_FEE_KEY),
        )
    return fee_policy


def resolve_network_profile(
    network: str,
    environ: Optional[Mapping[str, str]] = None,
    expected_chain_ids: Optional[Mapping[str, int]] = None,
) -> NetworkProfile:
    """
    Validates the raw configuration values for `network` and returns a NetworkProfile.
    Performs no network I/O.
    """
    environ = os.environ if environ is None else environ
    expected_chain_ids = EXPECTED_CHAIN_IDS if expected_chain_ids is None else expected_chain_ids

    if network not in expected_chain_ids:
        raise ConfigError(
            f"Unsupported network '{network}'; expected one of {', '.join(expected_chain_ids)}."
        )

    url_key = env_key(network, RPC_URL_KEY)
    endpoint_url = (environ.get(url_key) or "").strip()
    if not endpoint_url:
        raise ConfigError(f"{url_key} is not set.", key=url_key)
    _validate_url(endpoint_url, url_key)

    signer_key = env_key(network, DEPLOYER_KEY)
    signer = (environ.get(signer_key) or "").strip()
    if not signer:
        raise ConfigError(f"{signer_key} is not set.", key=signer_key)

    chain_id = _resolve_chain_id(network, environ, expected_chain_ids)
    fee_policy = _resolve_fee_policy(network, environ)

    confirmations_key = env_key(network, CONFIRMATIONS_KEY)
    confirmations = DEFAULT_CONFIRMATIONS.get(network, 1)
    if environ.get(confirmations_key):
        confirmations = _parse_int(environ[confirmations_key], confirmations_key, minimum=0)

    timeout_key = env_key(network, CONFIRMATION_TIMEOUT_KEY)
    confirmation_timeout = DEFAULT_CONFIRMATION_TIMEOUT
    if environ.get(timeout_key):
        confirmation_timeout = _parse_int(environ[timeout_key], timeout_key, minimum=1)

    attempts_key = env_key(network, MAX_ATTEMPTS_KEY)
    retry_policy = RetryPolicy()
    if environ.get(attempts_key):
        retry_policy = retry_policy._replace(
            max_attempts=_parse_int(environ[attempts_key], attempts_key, minimum=1)
        )

    return NetworkProfile(
        name=network,
        endpoint_url=endpoint_url,
        chain_id=chain_id,
        signer=signer,
        fee_policy=fee_policy,
        confirmations=confirmations,
        confirmation_timeout=confirmation_timeout,
        retry_policy=retry_policy,
    )
