from typing import Iterable, Optional


class DeploymentError(Exception):
    """Base exception for deployment orchestration errors."""


class ConfigError(DeploymentError, ValueError):
    """Raised when a network profile or plan is missing or has a malformed value."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class PlanError(DeploymentError, ValueError):
    """Raised when a deployment plan cannot be sequenced."""


class CyclicDependencyError(PlanError):
    def __init__(self, units: Iterable[str]):
        self.units = sorted(units)
        super().__init__(f"Cyclic dependency between units: {', '.join(self.units)}")


class UnknownDependencyError(PlanError):
    def __init__(self, unit_name: str, dependency: str):
        self.unit_name = unit_name
        self.dependency = dependency
        super().__init__(f"Unit '{unit_name}' depends on '{dependency}' which is not in the plan")


class UnitDeploymentError(DeploymentError):
    """Base exception for failures attached to a single deployment unit."""

    retryable = False

    def __init__(self, message: str, unit_name: Optional[str] = None):
        super().__init__(message)
        self.unit_name = unit_name

    @property
    def detail(self) -> str:
        return str(self)


class NetworkError(UnitDeploymentError):
    """Transient connectivity failure (timeout, reset); retried with backoff."""

    retryable = True

    def __init__(self, message: str, unit_name: Optional[str] = None, attempts: int = 0):
        super().__init__(message, unit_name=unit_name)
        self.attempts = attempts


class GasEstimationError(UnitDeploymentError):
    """Raised when the deployment transaction gas cannot be estimated."""


class InsufficientFundsError(UnitDeploymentError):
    """Raised when the signer cannot pay for the deployment."""


class DeploymentRevertError(UnitDeploymentError):
    """Raised when a mined deployment transaction reverted."""

    def __init__(
        self,
        message: str,
        unit_name: Optional[str] = None,
        revert_reason: Optional[str] = None,
        txn_hash: Optional[str] = None,
    ):
        super().__init__(message, unit_name=unit_name)
        self.revert_reason = revert_reason
        self.txn_hash = txn_hash


class ArtifactWriteError(UnitDeploymentError):
    """
    Raised when artifacts or the manifest cannot be persisted. When the contract
    itself was deployed, `record` holds its deployment.
    """

    retryable = True

    def __init__(self, message: str, unit_name: Optional[str] = None, record=None):
        super().__init__(message, unit_name=unit_name)
        self.record = record


class VerificationError(UnitDeploymentError):
    """Raised when a deployed contract cannot be published to a block explorer."""


class SequencingInvariantViolation(UnitDeploymentError, RuntimeError):
    """Raised when a unit is deployed before one of its dependencies."""


class DeploymentAborted(DeploymentError):
    """Raised when the operator declines to continue the deployment."""
