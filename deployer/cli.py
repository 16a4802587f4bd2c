import os
import signal
import threading
from pathlib import Path
from typing import Optional

import click
from dotenv import find_dotenv, load_dotenv

from deployer.chain import ChainClient
from deployer.exceptions import DeploymentError
from deployer.manifest import DeploymentManifest, read_manifest
from deployer.options import (
    artifacts_dir_option,
    autosign_option,
    env_file_option,
    manifest_option,
    max_attempts_option,
    network_option,
    plan_option,
    resume_option,
    verify_option,
)
from deployer.orchestrator import deploy_plan
from deployer.params import DeploymentPlan
from deployer.sequencer import sequence


def _default_client(autosign: bool) -> ChainClient:
    # ape loads its project and plugins on import
    from deployer.ape_client import ApeChainClient

    return ApeChainClient(autosign=autosign)


def _echo_manifest(manifest: DeploymentManifest) -> None:
    click.echo(f"Network: {manifest.network} (chain id {manifest.chain_id})")
    for name, record in manifest.records.items():
        click.echo(f"\t{name}={record.address} (block {record.block_number})")
    for failure in manifest.failures:
        error = f" {failure.error}:" if failure.error else ""
        click.echo(f"\t{failure.name}: {failure.status.value}{error} {failure.detail or ''}")
    for name, detail in manifest.unverified.items():
        click.echo(f"\t{name}: unverified ({detail})")
    if manifest.cancelled:
        click.echo("(!) Run was cancelled.")


@click.group()
@env_file_option
@click.pass_context
def cli(ctx, env_file: Optional[Path]):
    """Sequence, deploy and record a plan of contracts."""
    ctx.ensure_object(dict)
    # an explicit file wins over variables already set in the shell
    load_dotenv(env_file or find_dotenv(usecwd=True), override=env_file is not None)
    ctx.obj.setdefault("client_factory", _default_client)
    ctx.obj.setdefault("environ", os.environ)


@cli.command()
@network_option
@plan_option
@artifacts_dir_option
@resume_option
@autosign_option
@verify_option
@max_attempts_option
@click.pass_context
def deploy(
    ctx,
    network: str,
    plan_filepath: Path,
    artifacts_dir: Optional[Path],
    resume: bool,
    autosign: bool,
    verify: bool,
    max_attempts: Optional[int],
):
    """Deploy every unit of a plan and export its artifacts."""
    cancel_event = threading.Event()
    previous_handler = signal.signal(signal.SIGTERM, lambda *_: cancel_event.set())
    try:
        manifest = deploy_plan(
            network=network,
            plan_filepath=plan_filepath,
            client=ctx.obj["client_factory"](autosign),
            artifacts_dir=artifacts_dir,
            resume=resume,
            autosign=autosign,
            verify=verify,
            max_attempts=max_attempts,
            environ=ctx.obj["environ"],
            cancel_event=cancel_event,
        )
    except DeploymentError as e:
        raise click.ClickException(str(e))
    finally:
        signal.signal(signal.SIGTERM, previous_handler)

    if not manifest.succeeded:
        ctx.exit(1)


@cli.command(name="sequence")
@plan_option
@click.pass_context
def sequence_command(ctx, plan_filepath: Path):
    """Print the order in which a plan's units would be deployed."""
    try:
        plan = DeploymentPlan.from_yaml(plan_filepath, environ=ctx.obj["environ"])
        ordered = sequence(plan)
    except DeploymentError as e:
        raise click.ClickException(str(e))

    for position, unit in enumerate(ordered, start=1):
        dependencies = ", ".join(sorted(unit.dependencies)) or "-"
        click.echo(f"{position}. {unit.name} (depends on: {dependencies})")


@cli.command()
@manifest_option
@click.pass_context
def show(ctx, manifest_filepath: Path):
    """Print a deployment manifest."""
    try:
        manifest = read_manifest(manifest_filepath)
    except DeploymentError as e:
        raise click.ClickException(str(e))
    _echo_manifest(manifest)
    if not manifest.succeeded:
        ctx.exit(1)


if __name__ == "__main__":
    cli()
