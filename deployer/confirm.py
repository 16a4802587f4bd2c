from collections import OrderedDict

from ape.utils import ZERO_ADDRESS

from deployer.exceptions import DeploymentAborted


def _abort_on_no(question: str) -> None:
    answer = input(question)
    if answer.lower().strip() == "n":
        print("Aborting deployment!")
        raise DeploymentAborted(f"Operator declined: {question.strip()}")


def _confirm_deployment(unit_name: str) -> None:
    """Asks the user to confirm the deployment of a single unit."""
    _abort_on_no(f"Deploy {unit_name} Y/N? ")


def _confirm_zero_address() -> None:
    _abort_on_no("Zero Address detected for deployment parameter; Continue? Y/N? ")


def _is_zero_address(value) -> bool:
    values = value if isinstance(value, list) else [value]
    for v in values:
        if isinstance(v, str) and v.lower() == ZERO_ADDRESS.lower():
            return True
    return False


def _confirm_resolution(resolved_params: OrderedDict, unit_name: str) -> None:
    """Asks the user to confirm the resolved constructor parameters for a single unit."""
    if len(resolved_params) == 0:
        print(f"\n(i) No constructor parameters for {unit_name}")
        _confirm_deployment(unit_name)
        return

    print(f"\nConstructor parameters for {unit_name}")
    contains_zero_address = False
    for name, resolved_value in resolved_params.items():
        print(f"\t{name}={resolved_value}")
        if not contains_zero_address:
            contains_zero_address = _is_zero_address(resolved_value)

    _confirm_deployment(unit_name)
    if contains_zero_address:
        _confirm_zero_address()
