from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from ape import accounts, networks, project
from ape.api import AccountAPI, ProviderAPI
from ape.contracts.base import ContractContainer
from ape.exceptions import (
    AccountsError,
    ApeException,
    ContractLogicError,
    ProviderNotConnectedError,
    TransactionError,
    TransactionNotFoundError,
    VirtualMachineError,
)
from eth_utils import to_checksum_address, to_hex
from requests.exceptions import ConnectionError as RequestsConnectionError
from requests.exceptions import Timeout as RequestsTimeout
from web3.exceptions import TimeExhausted, Web3Exception

from deployer.chain import ChainClient, DeploymentReceipt, PreparedDeployment
from deployer.constants import TEST_ACCOUNT_PREFIX
from deployer.exceptions import (
    ConfigError,
    DeploymentAborted,
    DeploymentRevertError,
    GasEstimationError,
    InsufficientFundsError,
    NetworkError,
    UnitDeploymentError,
    VerificationError,
)
from deployer.networks import NetworkProfile

TRANSIENT_ERRORS = (
    ProviderNotConnectedError,
    RequestsConnectionError,
    RequestsTimeout,
    TimeExhausted,
    ConnectionError,
    TimeoutError,
)

# the signed transaction (or its nonce) is already known to the node
ALREADY_SUBMITTED_MESSAGES = (
    "already known",
    "known transaction",
    "nonce too low",
    "replacement transaction underpriced",
)


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            contract_container = getattr(dependency_api, contract)
            return contract_container
        except AttributeError:
            continue
    raise ConfigError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract)

    return contract_container


def load_account(signer: str, autosign: bool = False) -> AccountAPI:
    """Loads an ape account alias, or TEST:<index> for a local test account."""
    if signer.upper().startswith(TEST_ACCOUNT_PREFIX):
        index = signer[len(TEST_ACCOUNT_PREFIX) :]
        try:
            return accounts.test_accounts[int(index)]
        except (ValueError, IndexError):
            raise ConfigError(f"Invalid test account '{signer}'.", key=signer)

    try:
        account = accounts.load(signer)
    except AccountsError as e:
        raise ConfigError(f"Cannot load account '{signer}': {e}", key=signer)
    if autosign:
        print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        account.set_autosign(True)
    return account


@contextmanager
def _transient_errors_as_network_errors(action: str):
    try:
        yield
    except TRANSIENT_ERRORS as e:
        raise NetworkError(f"{action} failed: {e}")


class ApeChainClient(ChainClient):
    """ChainClient backed by ape's provider, accounts and project containers."""

    def __init__(self, autosign: bool = False):
        self.autosign = autosign
        self._profile: Optional[NetworkProfile] = None
        self._provider_context = None
        self._provider: Optional[ProviderAPI] = None
        self._account: Optional[AccountAPI] = None

    def connect(self, profile: NetworkProfile) -> None:
        self._profile = profile
        with _transient_errors_as_network_errors(f"Connecting to {profile.name}"):
            self._provider_context = networks.parse_network_choice(profile.endpoint_url)
            self._provider = self._provider_context.__enter__()
            connected_chain_id = self._provider.chain_id

        if connected_chain_id != profile.chain_id:
            self.disconnect()
            raise ConfigError(
                f"chain_id of network '{profile.name}' ({profile.chain_id}) does not match "
                f"chain_id reported by {profile.endpoint_url} ({connected_chain_id})."
            )
        self._account = load_account(profile.signer, autosign=self.autosign)

    def disconnect(self) -> None:
        if self._provider_context is not None:
            self._provider_context.__exit__(None, None, None)
        self._provider_context = None
        self._provider = None

    @property
    def deployer_address(self) -> str:
        return self._account.address

    def prepare(self, contract_type: str, args: List[Any]) -> PreparedDeployment:
        container = get_contract_container(contract_type)
        fee_kwargs = self._profile.fee_policy.as_kwargs()
        with _transient_errors_as_network_errors(f"Preparing {contract_type}"):
            try:
                txn = container.constructor.serialize_transaction(*args, **fee_kwargs)
                txn.required_confirmations = self._profile.confirmations
                prepared = self._account.prepare_transaction(txn)
            except AccountsError as e:
                raise InsufficientFundsError(f"Cannot fund deployment of {contract_type}: {e}")
            except (ContractLogicError, VirtualMachineError, TransactionError) as e:
                raise GasEstimationError(f"Gas estimation for {contract_type} failed: {e}")

        signed = self._account.sign_transaction(prepared)
        if signed is None:
            raise DeploymentAborted(f"Signing of {contract_type} deployment was declined.")
        return PreparedDeployment(
            contract_type=contract_type, args=list(args), transaction=signed, nonce=signed.nonce
        )

    def submit(self, prepared: PreparedDeployment) -> str:
        txn = prepared.transaction
        with _transient_errors_as_network_errors(f"Submitting {prepared.contract_type}"):
            try:
                txn_hash = self._provider.web3.eth.send_raw_transaction(
                    txn.serialize_transaction()
                )
            except TRANSIENT_ERRORS:
                raise
            except (ValueError, Web3Exception) as e:
                return self._handle_rejection(prepared, e)
        return to_hex(txn_hash)

    @staticmethod
    def _handle_rejection(prepared: PreparedDeployment, error: Exception) -> str:
        message = str(error).lower()
        if any(m in message for m in ALREADY_SUBMITTED_MESSAGES):
            # an earlier attempt reached the node; confirm() waits for it
            return to_hex(prepared.transaction.txn_hash)
        if "insufficient funds" in message:
            raise InsufficientFundsError(str(error))
        if "gas" in message:
            raise GasEstimationError(f"Node rejected {prepared.contract_type}: {error}")
        raise UnitDeploymentError(f"Node rejected {prepared.contract_type}: {error}")

    def confirm(self, txn_hash: str) -> DeploymentReceipt:
        profile = self._profile
        with _transient_errors_as_network_errors(f"Waiting for {txn_hash}"):
            try:
                receipt = self._provider.get_receipt(
                    txn_hash,
                    required_confirmations=profile.confirmations,
                    timeout=profile.confirmation_timeout,
                )
            except TransactionNotFoundError as e:
                raise NetworkError(f"Transaction {txn_hash} not confirmed yet: {e}")

        if receipt.failed:
            revert_reason = None
            try:
                receipt.raise_for_status()
            except ContractLogicError as e:
                revert_reason = e.revert_message
            except TransactionError as e:
                revert_reason = str(e)
            raise DeploymentRevertError(
                f"Deployment transaction {txn_hash} reverted: {revert_reason or 'no reason given'}",
                revert_reason=revert_reason,
                txn_hash=txn_hash,
            )
        if not receipt.contract_address:
            raise DeploymentRevertError(
                f"Transaction {txn_hash} did not create a contract.", txn_hash=txn_hash
            )

        return DeploymentReceipt(
            contract_address=to_checksum_address(receipt.contract_address),
            txn_hash=txn_hash,
            block_number=int(receipt.block_number),
            deployer=to_checksum_address(receipt.sender),
        )

    def get_artifact(self, contract_type: str) -> Dict[str, Any]:
        contract = get_contract_container(contract_type).contract_type
        deployment_bytecode = contract.deployment_bytecode
        runtime_bytecode = contract.runtime_bytecode
        return {
            "contractName": contract.name,
            "sourceName": contract.source_id,
            "abi": [entry.model_dump(mode="json", by_alias=True) for entry in contract.abi],
            "bytecode": deployment_bytecode.bytecode if deployment_bytecode else "0x",
            "deployedBytecode": runtime_bytecode.bytecode if runtime_bytecode else "0x",
        }

    def verify(self, contract_address: str) -> None:
        explorer = self._provider.network.explorer
        if explorer is None:
            raise ConfigError(f"No block explorer configured for network '{self._profile.name}'.")
        with _transient_errors_as_network_errors(f"Verifying {contract_address}"):
            try:
                explorer.publish_contract(contract_address)
            except ApeException as e:
                raise VerificationError(f"Cannot verify {contract_address}: {e}")
