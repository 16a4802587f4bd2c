from pathlib import Path

import deployer

#
# Filesystem
#

DEPLOYER_DIR = Path(deployer.__file__).parent
CONSTRUCTOR_PARAMS_DIR = DEPLOYER_DIR / "constructor_params"
ARTIFACTS_DIR = DEPLOYER_DIR.parent / "client" / "contract-artifacts"

MANIFEST_FILENAME = "manifest.json"
ADDRESS_FILE_SUFFIX = "Address"

STANDARD_JSON_FORMAT = {"indent": 2, "separators": (",", ": ")}

#
# Networks
#

LOCAL = "local"
HEDERA_TESTNET = "hedera_testnet"
HEDERA_PREVIEWNET = "hedera_previewnet"
HEDERA_MAINNET = "hedera_mainnet"
SEPOLIA = "sepolia"

# network name -> chain id the network must report
EXPECTED_CHAIN_IDS = {
    LOCAL: 31337,
    HEDERA_MAINNET: 295,
    HEDERA_TESTNET: 296,
    HEDERA_PREVIEWNET: 297,
    SEPOLIA: 11155111,
}

SUPPORTED_NETWORKS = list(EXPECTED_CHAIN_IDS)

# finality policy: confirmations required before a deployment is considered final
DEFAULT_CONFIRMATIONS = {
    LOCAL: 0,
    HEDERA_MAINNET: 1,
    HEDERA_TESTNET: 1,
    HEDERA_PREVIEWNET: 1,
    SEPOLIA: 2,
}

DEFAULT_CONFIRMATION_TIMEOUT = 180  # seconds

#
# Environment keys (prefixed with the upper-cased network name)
#

RPC_URL_KEY = "RPC_URL"
CHAIN_ID_KEY = "CHAIN_ID"
DEPLOYER_KEY = "DEPLOYER"
MAX_FEE_KEY = "MAX_FEE"
MAX_PRIORITY_FEE_KEY = "MAX_PRIORITY_FEE"
GAS_LIMIT_KEY = "GAS_LIMIT"
CONFIRMATIONS_KEY = "CONFIRMATIONS"
CONFIRMATION_TIMEOUT_KEY = "CONFIRMATION_TIMEOUT"
MAX_ATTEMPTS_KEY = "MAX_ATTEMPTS"

ALLOWED_RPC_SCHEMES = ("http", "https", "ws", "wss")

# signer handles of the form TEST:<index> select an ape test account
TEST_ACCOUNT_PREFIX = "TEST:"

#
# Retries
#

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_INITIAL_DELAY = 1.0  # seconds
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_DELAY = 30.0  # seconds

ARTIFACT_WRITE_ATTEMPTS = 3
ARTIFACT_WRITE_DELAY = 0.2  # seconds
