import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from eth_typing import ChecksumAddress
from eth_utils import is_address, to_checksum_address

from mako_deployment.constants import ENTRY_POINT_ADDRESS, FULL_DEPLOYMENT, ONE_WEEK_IN_SECONDS
from mako_deployment.errors import DependencyUnresolved
from mako_deployment.utils import _load_yaml, get_artifact_filepath, to_wei, validate_config

CONTRACT_CONSTRUCTOR_PARAMETER_KEY = "constructor"
CONTRACT_TAGS_KEY = "tags"
CONTRACT_INITIALIZE_KEY = "initialize"
CONTRACT_KEYS = (CONTRACT_CONSTRUCTOR_PARAMETER_KEY, CONTRACT_TAGS_KEY, CONTRACT_INITIALIZE_KEY)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# available to every params file unless overridden in its 'constants' section
BUILTIN_CONSTANTS = {
    "ENTRY_POINT": ENTRY_POINT_ADDRESS,
    "ONE_WEEK": ONE_WEEK_IN_SECONDS,
    "ZERO_ADDRESS": ZERO_ADDRESS,
    "EMPTY_BYTES": b"",
}


class VariableContext:
    """Parsing context for the raw values of a single contract."""

    def __init__(
        self,
        contract_names: List[str],
        contract_name: str,
        constants: typing.Dict[str, Any] = None,
    ):
        self.contract_names = contract_names or list()
        self.contract_name = contract_name
        self.constants = dict(BUILTIN_CONSTANTS)
        self.constants.update(constants or dict())


class ResolutionContext(NamedTuple):
    """
    Values available when turning a constructor template into arguments.

    With ``eager`` set, unresolved contract references resolve to the zero
    address so templates can be validated before anything is deployed.
    """

    addresses: typing.Mapping[str, ChecksumAddress]
    deployer: ChecksumAddress = ZERO_ADDRESS
    eager: bool = False


# Argument slots


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


class Literal(Variable):
    def __init__(self, value: Any):
        self.value = value

    def resolve(self, context: ResolutionContext) -> Any:
        return self.value

    def __eq__(self, other):
        return isinstance(other, Literal) and other.value == self.value

    def __hash__(self):
        return hash(repr(self.value))

    def __repr__(self):
        return f"Literal({self.value!r})"


class Constant(Literal):  # oxymoron anyone...
    def __init__(self, constant_name: str, context: VariableContext):
        try:
            constant_value = context.constants[constant_name]
        except KeyError:
            raise DeploymentConfig.Invalid(
                f"Constant '{constant_name}' not found in deployment file."
            )
        if isinstance(constant_value, str) and is_address(constant_value):
            constant_value = to_checksum_address(constant_value)
        super().__init__(constant_value)
        self.constant_name = constant_name

    @classmethod
    def is_constant(cls, value: str) -> bool:
        """Returns True if the variable is a deployment constant."""
        return value.isupper()


class Wei(Literal):
    """An amount in wei, written as '$wei:0.1 ether' or '$wei:SOME_CONSTANT'."""

    WEI_PREFIX = "wei:"

    def __init__(self, variable: str, context: VariableContext):
        raw_amount = variable[len(self.WEI_PREFIX) :].strip()
        if Constant.is_constant(raw_amount):
            raw_amount = Constant(raw_amount, context).value
        try:
            super().__init__(to_wei(raw_amount))
        except ValueError as e:
            raise DeploymentConfig.Invalid(f"{context.contract_name}: {e}") from e

    @classmethod
    def is_wei(cls, value: str) -> bool:
        return value.startswith(cls.WEI_PREFIX)


class DeployerAccount(Variable):
    DEPLOYER_INDICATOR = "deployer"

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        """Returns True if the variable is a special deployer variable."""
        return value == cls.DEPLOYER_INDICATOR

    def resolve(self, context: ResolutionContext) -> Any:
        return context.deployer

    def __eq__(self, other):
        return isinstance(other, DeployerAccount)

    def __hash__(self):
        return hash(self.DEPLOYER_INDICATOR)

    def __repr__(self):
        return "DeployerAccount()"


class Reference(Variable):
    """The deployed address of another contract declared in the same params file."""

    def __init__(self, contract_name: str, dependent: Optional[str] = None):
        self.contract_name = contract_name
        self.dependent = dependent

    def resolve(self, context: ResolutionContext) -> Any:
        """Resolves a contract address."""
        address = context.addresses.get(self.contract_name)
        if address is None:
            if context.eager:
                return ZERO_ADDRESS
            raise DependencyUnresolved(self.dependent, self.contract_name)
        return address

    def __eq__(self, other):
        return isinstance(other, Reference) and other.contract_name == self.contract_name

    def __hash__(self):
        return hash(self.contract_name)

    def __repr__(self):
        return f"Reference({self.contract_name!r})"


def _resolve_param(value: Any, context: ResolutionContext) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, (list, tuple)):
        return [_resolve_param(v, context) for v in value]

    if isinstance(value, Variable):
        return value.resolve(context)

    return value  # literally a value


def _resolve_params(parameters: typing.Mapping, context: ResolutionContext) -> OrderedDict:
    resolved_parameters = OrderedDict()
    for name, value in parameters.items():
        resolved_parameters[name] = _resolve_param(value, context)

    return resolved_parameters


def _variable_from_value(variable: Any, context: VariableContext) -> Variable:
    variable = variable.strip(Variable.VARIABLE_PREFIX)
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif Wei.is_wei(variable):
        return Wei(variable, context)
    elif variable in context.contract_names:
        return Reference(variable, dependent=context.contract_name)
    elif Constant.is_constant(variable):
        return Constant(variable, context)
    else:
        # checked against the declared contracts when planning
        return Reference(variable, dependent=context.contract_name)


def _process_raw_value(value: Any, variable_context: VariableContext) -> Any:
    if isinstance(value, list):
        return tuple(_process_raw_value(v, variable_context) for v in value)

    if Variable.is_variable(value):
        return _variable_from_value(value, variable_context)

    if isinstance(value, str) and is_address(value):
        return Literal(to_checksum_address(value))

    return Literal(value)


def _process_raw_values(values: typing.Mapping, variable_context: VariableContext) -> OrderedDict:
    processed_parameters = OrderedDict()
    for name, value in values.items():
        processed_parameters[name] = _process_raw_value(value, variable_context)

    return processed_parameters


def _collect_references(value: Any) -> List[str]:
    if isinstance(value, (list, tuple)):
        names = list()
        for item in value:
            names.extend(_collect_references(item))
        return names
    if isinstance(value, Reference):
        return [value.contract_name]
    return []


# Contracts


class InitAction(Enum):
    DEPOSIT = "deposit"
    ADD_STAKE = "addStake"

    @property
    def method_name(self) -> str:
        return self.value


class InitializationStep(NamedTuple):
    """A single funding call made on a freshly deployed contract."""

    contract_name: str
    index: int  # 1-based position in the contract's sequence
    action: InitAction
    amount: int  # wei sent along with the call
    unstake_delay: Optional[int] = None  # seconds, addStake only

    @property
    def args(self) -> Tuple[Any, ...]:
        if self.action == InitAction.ADD_STAKE:
            return (self.unstake_delay,)
        return ()

    def describe(self) -> str:
        if self.action == InitAction.ADD_STAKE:
            return (
                f"{self.contract_name}.{self.action.method_name}"
                f"({self.unstake_delay}) with value {self.amount}"
            )
        return f"{self.contract_name}.{self.action.method_name}() with value {self.amount}"


class ContractSpec(NamedTuple):
    name: str
    constructor: Tuple[Tuple[str, Any], ...] = ()
    tags: Tuple[str, ...] = ()
    steps: Tuple[InitializationStep, ...] = ()

    @property
    def requires_init(self) -> bool:
        return len(self.steps) > 0

    @property
    def parameters(self) -> OrderedDict:
        return OrderedDict(self.constructor)

    @property
    def dependencies(self) -> Tuple[str, ...]:
        """Names of the contracts referenced by the constructor, in first-use order."""
        names = list()
        for _, value in self.constructor:
            for name in _collect_references(value):
                if name not in names:
                    names.append(name)
        return tuple(names)

    def resolve(self, context: ResolutionContext) -> OrderedDict:
        """Resolves the constructor parameters of this contract."""
        return _resolve_params(self.parameters, context)


def _parse_steps(
    contract_name: str, raw_steps: Any, variable_context: VariableContext
) -> Tuple[InitializationStep, ...]:
    if raw_steps is None:
        return ()
    if not isinstance(raw_steps, list):
        raise DeploymentConfig.Invalid(
            f"'{CONTRACT_INITIALIZE_KEY}' of {contract_name} must be a list."
        )

    actions = {action.value: action for action in InitAction}
    steps = list()
    for index, raw_step in enumerate(raw_steps, start=1):
        if not isinstance(raw_step, dict) or len(raw_step) != 1:
            raise DeploymentConfig.Invalid(
                f"Malformed initialization step {index} for {contract_name}."
            )
        action_name, step_data = list(raw_step.items())[0]
        action = actions.get(action_name)
        if action is None:
            raise DeploymentConfig.Invalid(
                f"Unknown initialization action '{action_name}' for {contract_name}; "
                f"expected one of {list(actions)}."
            )
        step_data = step_data or dict()

        if "amount" not in step_data:
            raise DeploymentConfig.Invalid(f"{contract_name} step {index} is missing 'amount'.")
        amount = _process_step_value(step_data["amount"], variable_context)
        try:
            amount = to_wei(amount)
        except ValueError as e:
            raise DeploymentConfig.Invalid(f"{contract_name} step {index}: {e}") from e

        unstake_delay = None
        if action == InitAction.ADD_STAKE:
            if "unstake_delay" not in step_data:
                raise DeploymentConfig.Invalid(
                    f"{contract_name} step {index} is missing 'unstake_delay'."
                )
            unstake_delay = _process_step_value(step_data["unstake_delay"], variable_context)
            if not isinstance(unstake_delay, int) or unstake_delay <= 0:
                raise DeploymentConfig.Invalid(
                    f"{contract_name} step {index} has invalid unstake_delay {unstake_delay!r}."
                )

        steps.append(
            InitializationStep(
                contract_name=contract_name,
                index=index,
                action=action,
                amount=amount,
                unstake_delay=unstake_delay,
            )
        )
    return tuple(steps)


def _process_step_value(value: Any, variable_context: VariableContext) -> Any:
    """Step values may only be literals or constants."""
    processed = _process_raw_value(value, variable_context)
    if not isinstance(processed, Literal):
        raise DeploymentConfig.Invalid(
            f"Initialization values of {variable_context.contract_name} "
            f"must be literals or constants, got {value!r}."
        )
    return processed.value


def _get_contract_names(config: typing.Dict) -> List[str]:
    contract_names = list()
    for contract_info in config["contracts"]:
        if isinstance(contract_info, str):
            contract_names.append(contract_info)
        elif isinstance(contract_info, dict) and len(contract_info) == 1:
            contract_names.extend(list(contract_info.keys()))
        else:
            raise DeploymentConfig.Invalid("Malformed contracts section in params YAML.")

    duplicates = {name for name in contract_names if contract_names.count(name) > 1}
    if duplicates:
        raise DeploymentConfig.Invalid(f"Contracts declared more than once: {sorted(duplicates)}")
    return contract_names


class DeploymentConfig:
    """Represents the contracts, stages and constants declared in a params file."""

    class Invalid(ValueError):
        """Raised when the params file is malformed"""

    def __init__(
        self,
        name: str,
        chain_id: int,
        specs: typing.Sequence[ContractSpec],
        constants: Optional[Dict[str, Any]] = None,
        store_filepath: Optional[Path] = None,
    ):
        self.name = name
        self.chain_id = chain_id
        self.specs = tuple(specs)
        self.constants = constants or dict()
        self.store_filepath = store_filepath
        self._specs_by_name = OrderedDict((spec.name, spec) for spec in self.specs)

    @classmethod
    def from_yaml(
        cls, filepath: Path, chain_id: Optional[int] = None, live: bool = False
    ) -> "DeploymentConfig":
        config = _load_yaml(filepath)
        if not isinstance(config, dict):
            raise cls.Invalid(f"Params file {filepath} is empty or malformed.")
        return cls.from_dict(config, chain_id=chain_id, live=live)

    @classmethod
    def from_dict(
        cls, config: typing.Dict, chain_id: Optional[int] = None, live: bool = False
    ) -> "DeploymentConfig":
        try:
            store_filepath = validate_config(config=config, chain_id=chain_id, live=live)
        except ValueError as e:
            raise cls.Invalid(str(e)) from e

        print("Processing contract parameters...")
        contract_names = _get_contract_names(config)
        constants = config.get("constants") or dict()

        specs = list()
        for contract_info in config["contracts"]:
            if isinstance(contract_info, str):
                specs.append(ContractSpec(name=contract_info))
                continue

            contract_name = list(contract_info.keys())[0]  # only one entry
            contract_data = contract_info[contract_name] or dict()
            if not isinstance(contract_data, dict):
                raise cls.Invalid(f"Malformed parameters for {contract_name}.")
            unknown_keys = set(contract_data) - set(CONTRACT_KEYS)
            if unknown_keys:
                raise cls.Invalid(f"Unknown keys for {contract_name}: {sorted(unknown_keys)}")

            variable_context = VariableContext(
                contract_names=contract_names, constants=constants, contract_name=contract_name
            )
            specs.append(cls._process_contract(contract_name, contract_data, variable_context))

        return cls(
            name=config["deployment"].get("name", ""),
            chain_id=int(config["deployment"]["chain_id"]),
            specs=specs,
            constants=constants,
            store_filepath=get_artifact_filepath(config),
        )

    @classmethod
    def _process_contract(
        cls, contract_name: str, contract_data: Dict, variable_context: VariableContext
    ) -> ContractSpec:
        raw_parameters = contract_data.get(CONTRACT_CONSTRUCTOR_PARAMETER_KEY) or OrderedDict()
        if not isinstance(raw_parameters, dict):
            raise cls.Invalid(f"Constructor parameters of {contract_name} must be a mapping.")
        parameters = _process_raw_values(raw_parameters, variable_context)

        tags = contract_data.get(CONTRACT_TAGS_KEY) or list()
        if isinstance(tags, str):
            tags = [tags]
        if FULL_DEPLOYMENT in tags:
            raise cls.Invalid(f"'{FULL_DEPLOYMENT}' is implicit and cannot be used as a tag.")

        steps = _parse_steps(
            contract_name, contract_data.get(CONTRACT_INITIALIZE_KEY), variable_context
        )
        return ContractSpec(
            name=contract_name,
            constructor=tuple(parameters.items()),
            tags=tuple(str(tag) for tag in tags),
            steps=steps,
        )

    @property
    def contract_names(self) -> List[str]:
        return list(self._specs_by_name)

    @property
    def stages(self) -> List[str]:
        """All stage tags in declaration order, followed by the full deployment."""
        stages = list()
        for spec in self.specs:
            for tag in spec.tags:
                if tag not in stages:
                    stages.append(tag)
        stages.append(FULL_DEPLOYMENT)
        return stages

    def get(self, contract_name: str) -> Optional[ContractSpec]:
        return self._specs_by_name.get(contract_name)

    def __contains__(self, contract_name: str) -> bool:
        return contract_name in self._specs_by_name

    def tagged(self, stage_tag: str) -> List[ContractSpec]:
        if stage_tag == FULL_DEPLOYMENT:
            return list(self.specs)
        return [spec for spec in self.specs if stage_tag in spec.tags]
