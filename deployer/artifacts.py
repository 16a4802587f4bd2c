import time
from pathlib import Path
from typing import Any, Callable, Dict, NamedTuple, Optional

from deployer.constants import ADDRESS_FILE_SUFFIX, ARTIFACT_WRITE_ATTEMPTS, ARTIFACT_WRITE_DELAY
from deployer.exceptions import ArtifactWriteError
from deployer.manifest import DeployedContractRecord
from deployer.utils import _load_json, call_with_retries, write_bytes_atomic, write_json_atomic


class ArtifactEntry(NamedTuple):
    """The pair of files persisted for one deployed unit."""

    address_path: Path
    artifact_path: Path


def write_with_retries(
    write: Callable[[], Any],
    filepath: Path,
    unit_name: Optional[str] = None,
    attempts: int = ARTIFACT_WRITE_ATTEMPTS,
    delay: float = ARTIFACT_WRITE_DELAY,
    sleep: Callable[[float], Any] = time.sleep,
) -> None:
    """Runs `write`, retrying OSErrors a few times before giving up with ArtifactWriteError."""
    delays = tuple(delay for _ in range(max(attempts - 1, 0)))
    try:
        call_with_retries(write, retry_on=(OSError,), delays=delays, sleep=sleep)
    except OSError as e:
        raise ArtifactWriteError(
            f"Cannot write {filepath} after {attempts} attempt(s): {e}",
            unit_name=unit_name,
        ) from e


class ArtifactExporter:
    """
    Persists deployed addresses and interface artifacts for client consumption:

        <root>/<network>/<unit>Address.json   {"address": "0x..."}
        <root>/<network>/<unit>.json          ABI, bytecode and deployment metadata

    Both files of a unit describe the same deployment. The interface artifact is
    committed first; if the address file then cannot be written, the previous
    interface artifact is put back (or the new one removed) before failing.
    """

    def __init__(
        self,
        root: Path,
        network: str,
        attempts: int = ARTIFACT_WRITE_ATTEMPTS,
        delay: float = ARTIFACT_WRITE_DELAY,
        sleep: Callable[[float], Any] = time.sleep,
    ):
        self.root = Path(root)
        self.network = network
        self.attempts = attempts
        self.delay = delay
        self._sleep = sleep

    @property
    def directory(self) -> Path:
        return self.root / self.network

    def paths(self, unit_name: str) -> ArtifactEntry:
        return ArtifactEntry(
            address_path=self.directory / f"{unit_name}{ADDRESS_FILE_SUFFIX}.json",
            artifact_path=self.directory / f"{unit_name}.json",
        )

    def export(self, record: DeployedContractRecord, artifact: Dict[str, Any]) -> ArtifactEntry:
        entry = self.paths(record.name)

        payload = dict(artifact)
        payload["deployment"] = {
            "network": self.network,
            "chainId": record.chain_id,
            "address": record.address,
            "transactionHash": record.tx_hash,
            "blockNumber": record.block_number,
            "deployer": record.deployer,
        }

        print(f"(i) Exporting {record.name} artifacts to {self.directory}")
        previous_artifact = self._snapshot(entry.artifact_path)
        self._write(payload, entry.artifact_path, record.name)
        try:
            self._write({"address": record.address}, entry.address_path, record.name)
        except ArtifactWriteError:
            self._restore(entry.artifact_path, previous_artifact)
            raise
        return entry

    def read_address(self, unit_name: str) -> Optional[str]:
        address_path = self.paths(unit_name).address_path
        if not address_path.exists():
            return None
        return _load_json(address_path)["address"]

    @staticmethod
    def _snapshot(filepath: Path) -> Optional[bytes]:
        if not filepath.exists():
            return None
        return filepath.read_bytes()

    @staticmethod
    def _restore(filepath: Path, previous: Optional[bytes]) -> None:
        try:
            if previous is None:
                filepath.unlink()
            else:
                write_bytes_atomic(previous, filepath)
        except OSError as e:
            print(f"(!) Cannot roll back {filepath}: {e}")

    def _write(self, data: Any, filepath: Path, unit_name: str) -> None:
        write_with_retries(
            lambda: write_json_atomic(data, filepath),
            filepath,
            unit_name=unit_name,
            attempts=self.attempts,
            delay=self.delay,
            sleep=self._sleep,
        )
