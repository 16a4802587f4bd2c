from abc import ABC, abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional

from deployer.networks import NetworkProfile


class PreparedDeployment(NamedTuple):
    """A signed deployment transaction, ready to be (re)submitted."""

    contract_type: str
    args: List[Any]
    transaction: Any
    nonce: Optional[int] = None


class DeploymentReceipt(NamedTuple):
    contract_address: str
    txn_hash: str
    block_number: int
    deployer: str


class ChainClient(ABC):
    """
    Seam between the deployer and the blockchain client library.

    Implementations raise the typed errors from `deployer.exceptions`:
    NetworkError for transient failures (retried by the caller), and
    GasEstimationError, InsufficientFundsError or DeploymentRevertError
    for fatal ones.
    """

    @abstractmethod
    def connect(self, profile: NetworkProfile) -> None:
        """Connects to the profile's endpoint and checks the reported chain id."""
        raise NotImplementedError

    def disconnect(self) -> None:
        pass

    @property
    @abstractmethod
    def deployer_address(self) -> str:
        raise NotImplementedError

    @abstractmethod
    def prepare(self, contract_type: str, args: List[Any]) -> PreparedDeployment:
        """Builds, estimates and signs the deployment transaction."""
        raise NotImplementedError

    @abstractmethod
    def submit(self, prepared: PreparedDeployment) -> str:
        """Broadcasts a prepared deployment and returns its transaction hash."""
        raise NotImplementedError

    @abstractmethod
    def confirm(self, txn_hash: str) -> DeploymentReceipt:
        """Blocks until the transaction meets the finality policy of the profile."""
        raise NotImplementedError

    @abstractmethod
    def get_artifact(self, contract_type: str) -> Dict[str, Any]:
        """Returns the interface artifact (ABI plus metadata) of a contract type."""
        raise NotImplementedError

    def verify(self, contract_address: str) -> None:
        """Publishes a deployed contract's source to a block explorer."""
        raise NotImplementedError(f"{type(self).__name__} cannot verify contracts")

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.disconnect()
