import time
from typing import Any, Callable, TypeVar

from deployer.chain import ChainClient
from deployer.confirm import _confirm_resolution
from deployer.exceptions import NetworkError, UnitDeploymentError
from deployer.manifest import DeployedContractRecord, DeploymentManifest
from deployer.networks import NetworkProfile
from deployer.params import DeploymentUnit, ResolutionContext
from deployer.utils import call_with_retries

T = TypeVar("T")


class Deployer:
    """
    Represents a signer on a resolved network plus validated/annotated execution
    of single deployment units.
    """

    def __init__(
        self,
        client: ChainClient,
        profile: NetworkProfile,
        autosign: bool = False,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.client = client
        self.profile = profile
        self.autosign = autosign
        self._sleep = sleep

    def deploy(self, unit: DeploymentUnit, manifest: DeploymentManifest) -> DeployedContractRecord:
        """
        Deploys a unit whose dependencies are all recorded in `manifest` and
        blocks until the deployment is final.
        """
        try:
            return self._deploy(unit, manifest)
        except UnitDeploymentError as e:
            e.unit_name = e.unit_name or unit.name
            raise

    def _deploy(self, unit: DeploymentUnit, manifest: DeploymentManifest) -> DeployedContractRecord:
        context = ResolutionContext(
            addresses=manifest.addresses, deployer_address=self.client.deployer_address
        )
        resolved_params = unit.resolve(context)
        if not self.autosign:
            _confirm_resolution(resolved_params, unit.name)

        args = list(resolved_params.values())
        print(f"\nDeploying {unit.name} (as {unit.contract_type}) on {self.profile.name}.")

        prepared = self._with_retries(
            unit, "prepare", lambda: self.client.prepare(unit.contract_type, args)
        )
        txn_hash = self._with_retries(unit, "submit", lambda: self.client.submit(prepared))
        print(f"(i) {unit.name} deployment submitted in {txn_hash}")

        receipt = self._with_retries(unit, "confirm", lambda: self.client.confirm(txn_hash))
        print(
            f"(i) {unit.name} deployed to {receipt.contract_address} "
            f"in block {receipt.block_number}"
        )

        return DeployedContractRecord(
            name=unit.name,
            address=receipt.contract_address,
            chain_id=self.profile.chain_id,
            block_number=receipt.block_number,
            tx_hash=receipt.txn_hash,
            deployer=receipt.deployer,
        )

    def _with_retries(self, unit: DeploymentUnit, phase: str, func: Callable[[], T]) -> T:
        policy = self.profile.retry_policy

        def _announce(attempt: int, error: BaseException, delay: float) -> None:
            print(
                f"(!) {phase} of {unit.name} failed "
                f"(attempt {attempt}/{policy.max_attempts}): {error}; retrying in {delay:.1f}s"
            )

        try:
            return call_with_retries(
                func,
                retry_on=(NetworkError,),
                delays=policy.delays(),
                sleep=self._sleep,
                on_retry=_announce,
            )
        except NetworkError as e:
            raise NetworkError(
                f"{phase} of {unit.name} failed after {policy.max_attempts} attempt(s): {e}",
                unit_name=unit.name,
                attempts=policy.max_attempts,
            ) from e
