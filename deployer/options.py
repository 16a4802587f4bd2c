from pathlib import Path

import click

from deployer.constants import SUPPORTED_NETWORKS
from deployer.types import MinInt

network_option = click.option(
    "--network",
    "-n",
    help="Target network; its settings are read from <NETWORK>_* environment variables.",
    type=click.Choice(SUPPORTED_NETWORKS),
    required=True,
)

plan_option = click.option(
    "--plan",
    "-p",
    "plan_filepath",
    help="Filepath of the deployment plan (YAML)",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)

artifacts_dir_option = click.option(
    "--artifacts-dir",
    "-o",
    help="Root directory for exported artifacts (defaults to the plan's artifacts.dir)",
    type=click.Path(file_okay=False, path_type=Path),
    required=False,
)

manifest_option = click.option(
    "--manifest",
    "-m",
    "manifest_filepath",
    help="Filepath of a deployment manifest",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=True,
)

resume_option = click.option(
    "--resume",
    help="Reuse units recorded in the existing manifest instead of redeploying them.",
    is_flag=True,
    default=False,
)

autosign_option = click.option(
    "--autosign",
    help="Sign transactions and skip confirmation prompts.",
    is_flag=True,
    default=False,
)

verify_option = click.option(
    "--verify",
    help="Publish deployed contracts to the network's block explorer.",
    is_flag=True,
    default=False,
)

max_attempts_option = click.option(
    "--max-attempts",
    help="Attempts per deployment phase on transient network errors.",
    type=MinInt(1),
    required=False,
)

env_file_option = click.option(
    "--env-file",
    help="Read network settings from this .env file (defaults to ./.env when present).",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    required=False,
)
