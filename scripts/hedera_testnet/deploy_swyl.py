#!/usr/bin/python3

from dotenv import load_dotenv

from deployer.ape_client import ApeChainClient
from deployer.constants import CONSTRUCTOR_PARAMS_DIR, HEDERA_TESTNET
from deployer.orchestrator import deploy_plan

AUTOSIGN = False
VERIFY = False
RESUME = True
PLAN_FILEPATH = CONSTRUCTOR_PARAMS_DIR / "hedera_testnet" / "swyl.yml"


def main():
    load_dotenv(override=True)
    manifest = deploy_plan(
        network=HEDERA_TESTNET,
        plan_filepath=PLAN_FILEPATH,
        client=ApeChainClient(autosign=AUTOSIGN),
        resume=RESUME,
        autosign=AUTOSIGN,
        verify=VERIFY,
    )
    if not manifest.succeeded:
        exit(1)
