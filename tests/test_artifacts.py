import json

import pytest

from deployer.artifacts import ArtifactExporter
from deployer.exceptions import ArtifactWriteError
from deployer.manifest import DeployedContractRecord
from tests.conftest import CHAIN_ID, DEPLOYER, NETWORK, address_for

ARTIFACT = {
    "contractName": "SwylClub",
    "abi": [{"type": "constructor", "inputs": [{"name": "_wrapper", "type": "address"}]}],
    "bytecode": "0x6080",
    "deployedBytecode": "0x6080",
}


def _record(nonce=0):
    return DeployedContractRecord(
        name="SwylClub",
        address=address_for(nonce),
        chain_id=CHAIN_ID,
        block_number=100 + nonce,
        tx_hash="0x" + format(nonce + 1, "064x"),
        deployer=DEPLOYER,
    )


def _load(path):
    with open(path) as file:
        return json.load(file)


def test_export_layout(exporter, tmp_path):
    entry = exporter.export(_record(), ARTIFACT)

    network_dir = tmp_path / "artifacts" / NETWORK
    assert entry.address_path == network_dir / "SwylClubAddress.json"
    assert entry.artifact_path == network_dir / "SwylClub.json"
    assert _load(entry.address_path) == {"address": address_for(0)}

    artifact = _load(entry.artifact_path)
    assert artifact["abi"] == ARTIFACT["abi"]
    assert artifact["contractName"] == "SwylClub"
    assert artifact["deployment"] == {
        "network": NETWORK,
        "chainId": CHAIN_ID,
        "address": address_for(0),
        "transactionHash": "0x" + format(1, "064x"),
        "blockNumber": 100,
        "deployer": DEPLOYER,
    }
    assert exporter.read_address("SwylClub") == address_for(0)
    assert exporter.read_address("SwylDonation") is None


def test_redeploy_overwrites(exporter):
    exporter.export(_record(0), ARTIFACT)
    entry = exporter.export(_record(1), ARTIFACT)
    assert _load(entry.address_path) == {"address": address_for(1)}
    assert _load(entry.artifact_path)["deployment"]["address"] == address_for(1)
    # no temporary files are left behind
    assert sorted(p.name for p in entry.artifact_path.parent.iterdir()) == [
        "SwylClub.json",
        "SwylClubAddress.json",
    ]


def test_crash_mid_write_leaves_previous_artifact(exporter, monkeypatch, sleeps):
    entry = exporter.export(_record(0), ARTIFACT)
    previous_artifact = entry.artifact_path.read_text()

    def crashing_dump(data, file, **kwargs):
        file.write(json.dumps(data)[:10])  # partial content
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("deployer.utils.json.dump", crashing_dump)
    with pytest.raises(ArtifactWriteError) as exc_info:
        exporter.export(_record(1), ARTIFACT)

    assert exc_info.value.unit_name == "SwylClub"
    assert sleeps == [exporter.delay] * (exporter.attempts - 1)
    # readers still see the complete previous pair
    assert entry.artifact_path.read_text() == previous_artifact
    assert _load(entry.address_path) == {"address": address_for(0)}
    assert sorted(p.name for p in entry.artifact_path.parent.iterdir()) == [
        "SwylClub.json",
        "SwylClubAddress.json",
    ]


def test_crash_on_first_export_publishes_nothing(exporter, monkeypatch):
    def failing_replace(src, dst):
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr("deployer.utils.os.replace", failing_replace)
    with pytest.raises(ArtifactWriteError):
        exporter.export(_record(), ARTIFACT)

    entry = exporter.paths("SwylClub")
    assert not entry.artifact_path.exists()
    assert not entry.address_path.exists()
    assert list(exporter.directory.iterdir()) == []


def test_transient_write_error_is_retried(exporter, monkeypatch, sleeps):
    import os

    real_replace = os.replace
    failures = [OSError(16, "Device or resource busy")]

    def flaky_replace(src, dst):
        if failures:
            raise failures.pop()
        real_replace(src, dst)

    monkeypatch.setattr("deployer.utils.os.replace", flaky_replace)
    entry = exporter.export(_record(), ARTIFACT)

    assert sleeps == [exporter.delay]
    assert _load(entry.address_path) == {"address": address_for(0)}


def test_exporters_are_scoped_by_network(tmp_path):
    testnet = ArtifactExporter(root=tmp_path, network="hedera_testnet")
    local = ArtifactExporter(root=tmp_path, network="local")
    testnet.export(_record(0), ARTIFACT)
    local.export(_record(1), ARTIFACT)
    assert testnet.read_address("SwylClub") == address_for(0)
    assert local.read_address("SwylClub") == address_for(1)


def _fail_address_replace(monkeypatch):
    import os

    real_replace = os.replace

    def replace(src, dst):
        if str(dst).endswith("Address.json"):
            raise OSError(28, "No space left on device")
        real_replace(src, dst)

    monkeypatch.setattr("deployer.utils.os.replace", replace)


def test_failed_address_write_restores_previous_artifact(exporter, monkeypatch):
    entry = exporter.export(_record(0), ARTIFACT)
    previous_artifact = entry.artifact_path.read_text()

    _fail_address_replace(monkeypatch)
    with pytest.raises(ArtifactWriteError):
        exporter.export(_record(1), ARTIFACT)

    # both files still describe the first deployment
    assert entry.artifact_path.read_text() == previous_artifact
    artifact_address = _load(entry.artifact_path)["deployment"]["address"]
    assert artifact_address == _load(entry.address_path)["address"] == address_for(0)
    assert sorted(p.name for p in entry.artifact_path.parent.iterdir()) == [
        "SwylClub.json",
        "SwylClubAddress.json",
    ]


def test_failed_first_address_write_removes_artifact(exporter, monkeypatch):
    _fail_address_replace(monkeypatch)
    with pytest.raises(ArtifactWriteError):
        exporter.export(_record(), ARTIFACT)

    assert list(exporter.directory.iterdir()) == []
