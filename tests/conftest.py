from collections import defaultdict

import pytest
from eth_utils import to_checksum_address

from deployer.artifacts import ArtifactExporter
from deployer.chain import ChainClient, DeploymentReceipt, PreparedDeployment
from deployer.networks import NetworkProfile, RetryPolicy
from deployer.orchestrator import Orchestrator
from deployer.params import DeploymentPlan, DeploymentUnit

# Common constants
CHAIN_ID = 296
NETWORK = "hedera_testnet"
DEPLOYER = to_checksum_address("0x" + "d0" * 20)


def address_for(nonce):
    return to_checksum_address("0x" + "abcdef" * 5 + format(nonce, "010x"))


class FakeChainClient(ChainClient):
    """
    In-memory chain. Every prepared transaction gets the next nonce, and the
    contract it creates lives at address_for(nonce).

    `failures` maps (contract_type, phase) to exceptions raised, in order,
    by the next calls of that phase.
    """

    def __init__(self, failures=None):
        self.failures = defaultdict(list)
        for key, errors in (failures or dict()).items():
            self.failures[key].extend(errors)
        self.connected = False
        self.connections = 0
        self.prepared = list()
        self.submissions = list()
        self.deployments = list()
        self.verified = list()
        self._pending = dict()

    def _maybe_fail(self, contract_type, phase):
        queue = self.failures.get((contract_type, phase))
        if queue:
            raise queue.pop(0)

    def connect(self, profile):
        self.profile = profile
        self.connected = True
        self.connections += 1

    def disconnect(self):
        self.connected = False

    @property
    def deployer_address(self):
        return DEPLOYER

    def prepare(self, contract_type, args):
        self._maybe_fail(contract_type, "prepare")
        nonce = len(self.prepared)
        prepared = PreparedDeployment(
            contract_type=contract_type, args=list(args), transaction={"nonce": nonce}, nonce=nonce
        )
        self.prepared.append(prepared)
        return prepared

    def submit(self, prepared):
        self._maybe_fail(prepared.contract_type, "submit")
        txn_hash = "0x" + format(prepared.nonce + 1, "064x")
        self._pending[txn_hash] = prepared
        self.submissions.append(txn_hash)
        return txn_hash

    def confirm(self, txn_hash):
        prepared = self._pending[txn_hash]
        self._maybe_fail(prepared.contract_type, "confirm")
        self.deployments.append((prepared.contract_type, prepared.args))
        return DeploymentReceipt(
            contract_address=address_for(prepared.nonce),
            txn_hash=txn_hash,
            block_number=100 + prepared.nonce,
            deployer=DEPLOYER,
        )

    def get_artifact(self, contract_type):
        return {
            "contractName": contract_type,
            "abi": [{"type": "constructor", "inputs": []}],
            "bytecode": "0x6080",
            "deployedBytecode": "0x6080",
        }

    def verify(self, contract_address):
        self.verified.append(contract_address)

    @property
    def deployed_names(self):
        return [contract_type for contract_type, _ in self.deployments]


# Fixtures


@pytest.fixture
def profile():
    return NetworkProfile(
        name=NETWORK,
        endpoint_url="https://testnet.hashio.io/api",
        chain_id=CHAIN_ID,
        signer="swyl-deployer",
        confirmations=1,
        retry_policy=RetryPolicy(max_attempts=3, initial_delay=1.0, multiplier=2.0, max_delay=5.0),
    )


@pytest.fixture
def client():
    return FakeChainClient()


@pytest.fixture
def sleeps():
    return list()


@pytest.fixture
def exporter(tmp_path, sleeps):
    return ArtifactExporter(root=tmp_path / "artifacts", network=NETWORK, sleep=sleeps.append)


@pytest.fixture
def token_wrapper_plan():
    return DeploymentPlan(
        units=[
            DeploymentUnit("Marketplace", constructor={"_nativeTokenWrapper": "$TokenWrapper"}),
            DeploymentUnit("Club", constructor={"_nativeTokenWrapper": "$TokenWrapper"}),
            DeploymentUnit("TokenWrapper"),
        ],
        name="swyl",
        chain_id=CHAIN_ID,
    )


@pytest.fixture
def chain_plan():
    """Three units, each depending on the previous one."""
    return DeploymentPlan(
        units=[
            DeploymentUnit("First"),
            DeploymentUnit("Second", constructor={"_first": "$First"}),
            DeploymentUnit("Third", constructor={"_second": "$Second"}),
        ],
        chain_id=CHAIN_ID,
    )


@pytest.fixture
def get_orchestrator(client, profile, exporter, sleeps, tmp_path):
    def _get_orchestrator(**kwargs):
        kwargs.setdefault("client", client)
        kwargs.setdefault("autosign", True)
        kwargs.setdefault("manifest_path", tmp_path / "artifacts" / NETWORK / "manifest.json")
        return Orchestrator(profile=profile, exporter=exporter, sleep=sleeps.append, **kwargs)

    return _get_orchestrator
