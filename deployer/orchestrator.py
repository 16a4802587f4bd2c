import threading
import time
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Set

from deployer.artifacts import ArtifactExporter, write_with_retries
from deployer.chain import ChainClient
from deployer.constants import ARTIFACTS_DIR, MANIFEST_FILENAME
from deployer.deployer import Deployer
from deployer.exceptions import (
    ArtifactWriteError,
    ConfigError,
    DeploymentAborted,
    DeploymentError,
)
from deployer.manifest import (
    DeployedContractRecord,
    DeploymentManifest,
    read_manifest,
    write_manifest,
)
from deployer.networks import NetworkProfile, resolve_network_profile
from deployer.params import DeploymentPlan, DeploymentUnit
from deployer.sequencer import sequence


class Orchestrator:
    """
    Drives a plan through the pipeline: sequence, then deploy and export each
    unit in order, accumulating a manifest.

    The run is fail-fast: the first unit that fails stops it. Completed records
    are kept, the failing unit is recorded as failed and every later unit as
    not attempted.
    """

    def __init__(
        self,
        client: ChainClient,
        profile: NetworkProfile,
        exporter: ArtifactExporter,
        autosign: bool = False,
        verify: bool = False,
        manifest_path: Optional[Path] = None,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.client = client
        self.profile = profile
        self.exporter = exporter
        self.verify = verify
        self.manifest_path = manifest_path
        self._sleep = sleep
        self.deployer = Deployer(client=client, profile=profile, autosign=autosign, sleep=sleep)

    def run(
        self,
        plan: DeploymentPlan,
        seed: Optional[DeploymentManifest] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> DeploymentManifest:
        """
        Deploys every unit of `plan`. Units with a valid record in `seed` (and whose
        dependencies were also reused) are carried over instead of redeployed.
        """
        self._preflight(plan, seed)
        ordered = sequence(plan)

        self.client.connect(self.profile)
        try:
            self._print_deployment_info(plan, ordered)
            return self._run(ordered, seed, cancel_event)
        finally:
            self.client.disconnect()

    def _preflight(self, plan: DeploymentPlan, seed: Optional[DeploymentManifest]) -> None:
        if plan.chain_id is not None and plan.chain_id != self.profile.chain_id:
            raise ConfigError(
                f"chain_id in deployment file ({plan.chain_id}) does not match "
                f"chain_id of network '{self.profile.name}' ({self.profile.chain_id}).",
                key="chain_id",
            )
        if seed is not None and seed.chain_id != self.profile.chain_id:
            raise ConfigError(
                f"Seed manifest is for chain_id {seed.chain_id}, "
                f"not {self.profile.chain_id} ({self.profile.name})."
            )

    def _run(
        self,
        ordered: List[DeploymentUnit],
        seed: Optional[DeploymentManifest],
        cancel_event: Optional[threading.Event],
    ) -> DeploymentManifest:
        manifest = DeploymentManifest(network=self.profile.name, chain_id=self.profile.chain_id)
        reused: Set[str] = set()
        deployed: List[str] = list()
        current: Optional[str] = None

        try:
            for position, unit in enumerate(ordered):
                current = unit.name
                remaining = ordered[position + 1 :]

                if cancel_event is not None and cancel_event.is_set():
                    print(f"(!) Deployment cancelled before {unit.name}.")
                    manifest.cancelled = True
                    self._skip(manifest, [unit, *remaining], "run cancelled")
                    break

                seed_record = self._reusable(unit, seed, reused)
                if seed_record is not None:
                    print(f"(i) Skipping {unit.name}; already deployed at {seed_record.address}")
                    manifest.add_record(seed_record)
                    reused.add(unit.name)
                    continue

                unexported = self._unexported(unit, seed, reused)
                try:
                    if unexported is not None:
                        print(f"(i) {unit.name} already deployed at {unexported.address}")
                        self._export(unit, unexported, manifest)
                        reused.add(unit.name)
                    else:
                        self._deploy_and_export(unit, manifest)
                    self._persist(manifest, unit.name)
                except DeploymentAborted as e:
                    manifest.cancelled = True
                    self._skip(manifest, [unit, *remaining], str(e))
                    break
                except DeploymentError as e:
                    print(f"(!) {unit.name} failed: {e}")
                    record = e.record if isinstance(e, ArtifactWriteError) else None
                    manifest.add_failure(unit.name, e, record=record)
                    self._skip(manifest, remaining, f"halted after {unit.name} failed")
                    break
                deployed.append(unit.name)

            if self.verify and manifest.succeeded:
                self._verify(manifest, deployed)
        finally:
            persisted = self._persist_final(manifest, current)

        self._print_summary(manifest, persisted)
        return manifest

    def _deploy_and_export(self, unit: DeploymentUnit, manifest: DeploymentManifest) -> None:
        record = self.deployer.deploy(unit, manifest)
        self._export(unit, record, manifest)

    def _export(
        self, unit: DeploymentUnit, record: DeployedContractRecord, manifest: DeploymentManifest
    ) -> None:
        try:
            artifact = self.client.get_artifact(unit.contract_type)
            entry = self.exporter.export(record, artifact)
        except DeploymentError as e:
            # the contract exists on chain; keep its deployment with the failure
            raise ArtifactWriteError(
                f"{record.name} deployed at {record.address} (tx {record.tx_hash}) "
                f"but its artifacts were not exported: {e}",
                unit_name=record.name,
                record=record._replace(artifact=None),
            ) from e
        manifest.add_record(record._replace(artifact=str(entry.artifact_path)))

    @staticmethod
    def _reusable(
        unit: DeploymentUnit, seed: Optional[DeploymentManifest], reused: Set[str]
    ) -> Optional[DeployedContractRecord]:
        if seed is None:
            return None
        if not unit.dependencies.issubset(reused):
            # a dependency is being redeployed, so this unit's arguments changed
            return None
        return seed.valid_record(unit.name)

    @staticmethod
    def _unexported(
        unit: DeploymentUnit, seed: Optional[DeploymentManifest], reused: Set[str]
    ) -> Optional[DeployedContractRecord]:
        if seed is None or not unit.dependencies.issubset(reused):
            return None
        return seed.unexported_record(unit.name)

    @staticmethod
    def _skip(manifest: DeploymentManifest, units: List[DeploymentUnit], reason: str) -> None:
        for unit in units:
            manifest.add_not_attempted(unit.name, detail=reason)

    def _verify(self, manifest: DeploymentManifest, names: List[str]) -> None:
        for name in names:
            record = manifest.records[name]
            print(f"(i) Verifying {name}...")
            try:
                self.client.verify(record.address)
            except DeploymentError as e:
                print(f"(!) Verification of {name} failed: {e}")
                manifest.unverified[name] = str(e)

    def _persist(self, manifest: DeploymentManifest, unit_name: Optional[str] = None) -> None:
        if self.manifest_path is None:
            return
        write_with_retries(
            lambda: write_manifest(manifest, self.manifest_path),
            self.manifest_path,
            unit_name=unit_name,
            sleep=self._sleep,
        )

    def _persist_final(self, manifest: DeploymentManifest, unit_name: Optional[str]) -> bool:
        """Writes the manifest once more; a failure is recorded against the last unit."""
        try:
            self._persist(manifest, unit_name)
        except ArtifactWriteError as e:
            print(f"(!) {e}")
            if unit_name is not None:
                manifest.add_failure(unit_name, e)
            return False
        return self.manifest_path is not None

    def _print_deployment_info(self, plan: DeploymentPlan, ordered: List[DeploymentUnit]):
        print(
            f"Account: {self.client.deployer_address}",
            f"Plan: {plan.name or '-'}",
            f"Network: {self.profile.name}",
            f"Chain ID: {self.profile.chain_id}",
            f"Artifacts: {self.exporter.directory}",
            f"Order: {', '.join(unit.name for unit in ordered)}",
            sep="\n",
        )

    def _print_summary(self, manifest: DeploymentManifest, persisted: bool) -> None:
        print(f"\n(i) {len(manifest.records)} unit(s) deployed on {manifest.network}")
        for name, record in manifest.records.items():
            print(f"\t{name}={record.address}")
        for failure in manifest.failures:
            print(f"\t{failure.name}: {failure.status.value} ({failure.detail})")
        if persisted:
            print(f"(i) Manifest written to {self.manifest_path}")


def deploy_plan(
    network: str,
    plan_filepath: Path,
    client: ChainClient,
    artifacts_dir: Optional[Path] = None,
    resume: bool = False,
    autosign: bool = False,
    verify: bool = False,
    max_attempts: Optional[int] = None,
    environ: Optional[Mapping[str, str]] = None,
    cancel_event: Optional[threading.Event] = None,
) -> DeploymentManifest:
    """
    Resolves the network profile, loads the plan and runs it, writing artifacts and
    the manifest under <artifacts_dir>/<network>/. With `resume`, the manifest left
    by a previous run is used as the seed.
    """
    profile = resolve_network_profile(network, environ=environ)
    if max_attempts:
        profile = profile._replace(
            retry_policy=profile.retry_policy._replace(max_attempts=max_attempts)
        )
    plan = DeploymentPlan.from_yaml(plan_filepath, environ=environ)

    exporter = ArtifactExporter(
        root=artifacts_dir or plan.artifacts_dir or ARTIFACTS_DIR, network=network
    )
    manifest_path = exporter.directory / MANIFEST_FILENAME
    seed = None
    if resume and manifest_path.exists():
        print(f"(i) Resuming from {manifest_path}")
        seed = read_manifest(manifest_path)

    orchestrator = Orchestrator(
        client=client,
        profile=profile,
        exporter=exporter,
        autosign=autosign,
        verify=verify,
        manifest_path=manifest_path,
    )
    return orchestrator.run(plan, seed=seed, cancel_event=cancel_event)
