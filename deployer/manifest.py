from collections import OrderedDict
from enum import Enum
from pathlib import Path
from typing import Dict, List, NamedTuple, Optional

from eth_typing import ChecksumAddress
from eth_utils import is_checksum_address, to_checksum_address

from deployer.exceptions import ConfigError
from deployer.utils import _load_json, write_json_atomic

ChainId = int
UnitName = str


class UnitStatus(Enum):
    FAILED = "failed"
    NOT_ATTEMPTED = "not_attempted"


class DeployedContractRecord(NamedTuple):
    """Represents a single successful deployment."""

    name: UnitName
    address: ChecksumAddress
    chain_id: ChainId
    block_number: int
    tx_hash: str
    deployer: str
    artifact: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "chain_id": self.chain_id,
            "block_number": int(self.block_number),
            "tx_hash": self.tx_hash,
            "deployer": self.deployer,
            "artifact": self.artifact,
        }

    @classmethod
    def from_dict(cls, name: UnitName, data: dict) -> "DeployedContractRecord":
        return cls(
            name=name,
            address=to_checksum_address(data["address"]),
            chain_id=int(data["chain_id"]),
            block_number=int(data["block_number"]),
            tx_hash=data["tx_hash"],
            deployer=data["deployer"],
            artifact=data.get("artifact"),
        )


class FailureRecord(NamedTuple):
    """
    A unit that was attempted and failed, or that the run never reached. A unit
    that was deployed but whose artifacts could not be exported keeps its
    deployment `record`, so a later run can export it instead of redeploying.
    """

    name: UnitName
    status: UnitStatus
    error: Optional[str] = None
    detail: Optional[str] = None
    record: Optional[DeployedContractRecord] = None

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "status": self.status.value,
            "error": self.error,
            "detail": self.detail,
        }
        if self.record is not None:
            data["deployment"] = self.record.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FailureRecord":
        record = None
        if data.get("deployment"):
            record = DeployedContractRecord.from_dict(data["name"], data["deployment"])
        return cls(
            name=data["name"],
            status=UnitStatus(data["status"]),
            error=data.get("error"),
            detail=data.get("detail"),
            record=record,
        )


class DeploymentManifest:
    """Accumulated successes and failures of one orchestrator run."""

    def __init__(self, network: str, chain_id: ChainId):
        self.network = network
        self.chain_id = chain_id
        self.records: Dict[UnitName, DeployedContractRecord] = OrderedDict()
        self.failures: List[FailureRecord] = list()
        self.cancelled = False
        self.unverified: Dict[UnitName, str] = OrderedDict()

    def add_record(self, record: DeployedContractRecord) -> None:
        if record.name in self.records:
            raise ValueError(f"{record.name} already has a deployment record.")
        self.records[record.name] = record

    def add_failure(
        self,
        name: UnitName,
        error: Exception,
        record: Optional[DeployedContractRecord] = None,
    ) -> None:
        failure = FailureRecord(
            name=name,
            status=UnitStatus.FAILED,
            error=type(error).__name__,
            detail=str(error),
            record=record,
        )
        if failure not in self.failures:
            self.failures.append(failure)

    def add_not_attempted(self, name: UnitName, detail: Optional[str] = None) -> None:
        self.failures.append(
            FailureRecord(name=name, status=UnitStatus.NOT_ATTEMPTED, detail=detail)
        )

    @property
    def addresses(self) -> Dict[UnitName, ChecksumAddress]:
        return OrderedDict((name, record.address) for name, record in self.records.items())

    @property
    def failed(self) -> List[FailureRecord]:
        return [f for f in self.failures if f.status == UnitStatus.FAILED]

    @property
    def not_attempted(self) -> List[FailureRecord]:
        return [f for f in self.failures if f.status == UnitStatus.NOT_ATTEMPTED]

    @property
    def succeeded(self) -> bool:
        return not self.failures and not self.cancelled

    def _is_reusable(self, record: Optional[DeployedContractRecord]) -> bool:
        if record is None:
            return False
        return record.chain_id == self.chain_id and is_checksum_address(record.address)

    def valid_record(self, name: UnitName) -> Optional[DeployedContractRecord]:
        """Returns the record for `name` if it can be reused on this manifest's chain."""
        record = self.records.get(name)
        return record if self._is_reusable(record) else None

    def unexported_record(self, name: UnitName) -> Optional[DeployedContractRecord]:
        """Returns the deployment of `name` whose artifacts failed to export, if any."""
        for failure in self.failed:
            if failure.name == name and self._is_reusable(failure.record):
                return failure.record
        return None

    def to_dict(self) -> dict:
        return {
            "network": self.network,
            "chain_id": self.chain_id,
            "cancelled": self.cancelled,
            "deployments": OrderedDict(
                (name, record.to_dict()) for name, record in self.records.items()
            ),
            "failures": [failure.to_dict() for failure in self.failures],
            "unverified": dict(self.unverified),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "DeploymentManifest":
        manifest = cls(network=data["network"], chain_id=int(data["chain_id"]))
        for name, entry in (data.get("deployments") or dict()).items():
            manifest.add_record(DeployedContractRecord.from_dict(name, entry))
        for entry in data.get("failures") or list():
            manifest.failures.append(FailureRecord.from_dict(entry))
        manifest.cancelled = bool(data.get("cancelled", False))
        manifest.unverified.update(data.get("unverified") or dict())
        return manifest

    def __repr__(self):
        return (
            f"DeploymentManifest(network={self.network!r}, records={list(self.records)}, "
            f"failures={[f.name for f in self.failures]})"
        )


def write_manifest(manifest: DeploymentManifest, filepath: Path) -> Path:
    """Atomically writes a manifest to a file."""
    return write_json_atomic(manifest.to_dict(), filepath)


def read_manifest(filepath: Path) -> DeploymentManifest:
    try:
        data = _load_json(filepath)
        return DeploymentManifest.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        raise ConfigError(f"Cannot read deployment manifest {filepath}: {e}")
