import os
import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Any, FrozenSet, Iterator, List, Mapping, NamedTuple, Optional

import yaml

from deployer.exceptions import ConfigError, SequencingInvariantViolation
from deployer.utils import _load_yaml

CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"
CONTRACT_TYPE_KEY = "contract_type"


class VariableContext:
    """Everything needed to turn raw configuration values into literals and variables."""

    def __init__(
        self,
        contract_name: str,
        constants: typing.Dict[str, Any] = None,
        environ: Mapping[str, str] = None,
    ):
        self.contract_name = contract_name
        self.constants = constants or dict()
        self.environ = environ if environ is not None else os.environ


class ResolutionContext(NamedTuple):
    """Deployment-time values: addresses of deployed units and the signer address."""

    addresses: Mapping[str, str]
    deployer_address: Optional[str] = None


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = "$"

    @abstractmethod
    def resolve(self, context: ResolutionContext) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result

    def __eq__(self, other):
        return type(self) is type(other) and vars(self) == vars(other)

    def __hash__(self):
        return hash((type(self), tuple(sorted(vars(self).items()))))


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self, context: ResolutionContext) -> Any:
        if not context.deployer_address:
            raise SequencingInvariantViolation("Deployer address is not known yet.")
        return context.deployer_address

    def __repr__(self):
        return f"{self.VARIABLE_PREFIX}{self.DEPLOYER_INDICATOR}"


class ContractReference(Variable):
    """The address of another unit in the same plan."""

    def __init__(self, unit_name: str):
        self.unit_name = unit_name

    def resolve(self, context: ResolutionContext) -> Any:
        try:
            return context.addresses[self.unit_name]
        except KeyError:
            raise SequencingInvariantViolation(
                f"Address of '{self.unit_name}' requested before it was deployed."
            )

    def __repr__(self):
        return f"{self.VARIABLE_PREFIX}{self.unit_name}"


class Constant:
    @classmethod
    def is_constant(cls, value: str, context: VariableContext) -> bool:
        """Returns True if the variable names a deployment constant."""
        return value in context.constants

    @classmethod
    def lookup(cls, constant_name: str, context: VariableContext) -> Any:
        return context.constants[constant_name]


class EnvironmentValue:
    ENV_PREFIX = "env:"

    @classmethod
    def is_env(cls, value: str) -> bool:
        return value.startswith(cls.ENV_PREFIX)

    @classmethod
    def lookup(cls, variable: str, context: VariableContext) -> Any:
        key = variable[len(cls.ENV_PREFIX) :]
        value = context.environ.get(key)
        if value is None or value == "":
            raise ConfigError(
                f"{key} is not set (required by {context.contract_name}).", key=key
            )
        return value


def _process_raw_value(value: Any, context: VariableContext) -> Any:
    """Turns constants and environment values into literals and the rest into variables."""
    if isinstance(value, list):
        return [_process_raw_value(v, context) for v in value]

    if not Variable.is_variable(value):
        return value  # literally a value

    variable = value[len(Variable.VARIABLE_PREFIX) :]
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif EnvironmentValue.is_env(variable):
        return EnvironmentValue.lookup(variable, context)
    elif Constant.is_constant(variable, context):
        return Constant.lookup(variable, context)
    elif not variable:
        raise ConfigError(f"Empty variable in constructor of {context.contract_name}.")
    return ContractReference(variable)


def _process_raw_values(values: Mapping, context: VariableContext) -> OrderedDict:
    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, context)
    return processed_parameters


def _collect_references(value: Any) -> List[str]:
    if isinstance(value, list):
        references = list()
        for v in value:
            references.extend(_collect_references(v))
        return references
    if isinstance(value, ContractReference):
        return [value.unit_name]
    return []


def _resolve_param(value: Any, context: ResolutionContext) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, list):
        return [_resolve_param(v, context) for v in value]

    if isinstance(value, Variable):
        return value.resolve(context)

    return value


class DeploymentUnit:
    """One contract's declarative deployment: name, constructor arguments and dependencies."""

    def __init__(
        self,
        name: str,
        constructor: Optional[Mapping[str, Any]] = None,
        contract_type: Optional[str] = None,
        context: Optional[VariableContext] = None,
    ):
        if not name or not isinstance(name, str):
            raise ConfigError(f"Invalid deployment unit name: {name!r}")
        self.name = name
        self.contract_type = contract_type or name
        context = context or VariableContext(contract_name=name)
        self.constructor = _process_raw_values(constructor or OrderedDict(), context)

    @property
    def dependencies(self) -> FrozenSet[str]:
        """Names of the units referenced by the constructor arguments."""
        references = list()
        for value in self.constructor.values():
            references.extend(_collect_references(value))
        return frozenset(references)

    def resolve(self, context: ResolutionContext) -> OrderedDict:
        """Substitutes every variable in the constructor arguments."""
        resolved = OrderedDict()
        for name, value in self.constructor.items():
            resolved[name] = _resolve_param(value, context)
        return resolved

    def __repr__(self):
        return f"DeploymentUnit({self.name!r})"


class DeploymentPlan:
    """The set of units targeted at one network. Unit names are unique."""

    def __init__(
        self,
        units: typing.Iterable[DeploymentUnit],
        name: Optional[str] = None,
        chain_id: Optional[int] = None,
        constants: Optional[typing.Dict[str, Any]] = None,
        artifacts_dir: Optional[Path] = None,
    ):
        self.units = OrderedDict()
        for unit in units:
            if unit.name in self.units:
                raise ConfigError(f"Duplicate deployment unit '{unit.name}' in plan.")
            self.units[unit.name] = unit
        self.name = name
        self.chain_id = chain_id
        self.constants = constants or dict()
        self.artifacts_dir = artifacts_dir

    def __iter__(self) -> Iterator[DeploymentUnit]:
        return iter(self.units.values())

    def __len__(self) -> int:
        return len(self.units)

    def __contains__(self, name: str) -> bool:
        return name in self.units

    def __getitem__(self, name: str) -> DeploymentUnit:
        return self.units[name]

    @property
    def names(self) -> List[str]:
        return list(self.units)

    @classmethod
    def from_config(
        cls, config: typing.Dict, environ: Optional[Mapping[str, str]] = None
    ) -> "DeploymentPlan":
        """Builds a plan from a parsed deployment file."""
        if not isinstance(config, dict):
            raise ConfigError("Malformed deployment file.")

        contracts = config.get("contracts")
        if not contracts:
            raise ConfigError("Deployment file missing 'contracts' field.", key="contracts")

        deployment = config.get("deployment") or dict()
        chain_id = deployment.get("chain_id")
        if chain_id is not None:
            try:
                chain_id = int(chain_id)
            except (TypeError, ValueError):
                raise ConfigError(f"Malformed chain_id '{chain_id}'.", key="chain_id")

        artifacts_dir = (config.get("artifacts") or dict()).get("dir")
        constants = cls._process_constants(config.get("constants") or dict(), environ)

        units = list()
        for contract_info in contracts:
            unit = cls._unit_from_config(contract_info, constants, environ)
            if unit.name in constants:
                raise ConfigError(f"'{unit.name}' is both a constant and a deployment unit.")
            units.append(unit)

        return cls(
            units=units,
            name=deployment.get("name"),
            chain_id=chain_id,
            constants=constants,
            artifacts_dir=Path(artifacts_dir) if artifacts_dir else None,
        )

    @classmethod
    def from_yaml(
        cls, filepath: Path, environ: Optional[Mapping[str, str]] = None
    ) -> "DeploymentPlan":
        try:
            config = _load_yaml(filepath)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read deployment file {filepath}: {e}")
        return cls.from_config(config, environ=environ)

    @staticmethod
    def _process_constants(
        constants: typing.Dict, environ: Optional[Mapping[str, str]]
    ) -> typing.Dict:
        """Constants may themselves be read from the environment ($env:NAME)."""
        processed = dict()
        for name, value in constants.items():
            context = VariableContext(contract_name=f"constant {name}", environ=environ)
            if Variable.is_variable(value) and EnvironmentValue.is_env(value[1:]):
                value = EnvironmentValue.lookup(value[1:], context)
            processed[name] = value
        return processed

    @staticmethod
    def _unit_from_config(
        contract_info: Any, constants: typing.Dict, environ: Optional[Mapping[str, str]]
    ) -> DeploymentUnit:
        if isinstance(contract_info, str):
            return DeploymentUnit(name=contract_info)

        if not isinstance(contract_info, dict) or len(contract_info) != 1:
            raise ConfigError("Malformed constructor parameters YAML.")

        contract_name = list(contract_info.keys())[0]  # only one entry
        contract_data = contract_info[contract_name] or dict()
        if not isinstance(contract_data, dict):
            raise ConfigError(f"Malformed constructor parameter config for {contract_name}.")

        constructor = contract_data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY) or OrderedDict()
        if not isinstance(constructor, dict):
            raise ConfigError(f"Constructor parameters of {contract_name} must be a mapping.")

        context = VariableContext(
            contract_name=contract_name, constants=constants, environ=environ
        )
        return DeploymentUnit(
            name=contract_name,
            constructor=constructor,
            contract_type=contract_data.get(CONTRACT_TYPE_KEY),
            context=context,
        )
