#!/usr/bin/python3

from dotenv import load_dotenv

from deployer.ape_client import ApeChainClient
from deployer.constants import CONSTRUCTOR_PARAMS_DIR, LOCAL
from deployer.orchestrator import deploy_plan

PLAN_FILEPATH = CONSTRUCTOR_PARAMS_DIR / "local" / "swyl.yml"


def main():
    load_dotenv(override=True)
    # local test accounts sign without prompting
    manifest = deploy_plan(
        network=LOCAL,
        plan_filepath=PLAN_FILEPATH,
        client=ApeChainClient(autosign=True),
        autosign=True,
    )
    if not manifest.succeeded:
        exit(1)
