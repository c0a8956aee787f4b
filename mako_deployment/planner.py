import heapq
from collections import OrderedDict
from typing import Dict, List, NamedTuple, Sequence, Tuple

from eth_abi import is_encodable

from mako_deployment.artifacts import ContractInterface
from mako_deployment.constants import FULL_DEPLOYMENT
from mako_deployment.errors import (
    CyclicDependency,
    InvalidConstructorArguments,
    UnknownContract,
    UnknownStage,
)
from mako_deployment.params import (
    ContractSpec,
    DeploymentConfig,
    InitializationStep,
    ResolutionContext,
)
from mako_deployment.registry import ArtifactRegistry


class PlanEntry(NamedTuple):
    spec: ContractSpec
    dependencies: Tuple[str, ...]

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def steps(self) -> Tuple[InitializationStep, ...]:
        return self.spec.steps

    @property
    def requires_init(self) -> bool:
        return self.spec.requires_init


class StagePlan(NamedTuple):
    """Deployments of a stage, each entry after every contract it references."""

    stage: str
    entries: Tuple[PlanEntry, ...]

    @property
    def contract_names(self) -> List[str]:
        return [entry.name for entry in self.entries]

    def __iter__(self):
        return iter(self.entries)

    def __len__(self):
        return len(self.entries)


def _validate_constructor_abi_inputs(
    contract_name: str,
    abi_inputs: List[Dict],
    resolved_parameters: OrderedDict,
) -> None:
    """Validates the constructor parameters against the constructor ABI."""
    if len(resolved_parameters) != len(abi_inputs):
        raise InvalidConstructorArguments(
            f"Constructor parameters length mismatch - "
            f"{contract_name} ABI requires {len(abi_inputs)}, Got {len(resolved_parameters)}.",
            contract_name=contract_name,
        )
    if not abi_inputs:
        return  # no constructor parameters

    codex = enumerate(zip(abi_inputs, resolved_parameters.items()), start=0)
    for position, (abi_input, resolved_input) in codex:
        name, value = resolved_input
        # validate name
        if abi_input["name"] != name:
            raise InvalidConstructorArguments(
                f"{contract_name} constructor parameter '{name}' at position {position} does not "
                f"match the expected ABI name '{abi_input['name']}'.",
                contract_name=contract_name,
            )

        # tuples are left to the encoder
        if abi_input["type"].startswith("tuple"):
            continue

        # validate value type
        if not is_encodable(abi_input["type"], value):
            raise InvalidConstructorArguments(
                f"Constructor param name '{name}' at position {position} has a value '{value}' "
                f"whose type does not match expected ABI type '{abi_input['type']}'",
                contract_name=contract_name,
            )


def _find_cycle(remaining: Sequence[str], edges: Dict[str, Tuple[str, ...]]) -> List[str]:
    """Walks dependencies from the first unplaced contract until a name repeats."""
    path = [remaining[0]]
    while True:
        current = path[-1]
        next_name = next(name for name in edges[current] if name in remaining)
        if next_name in path:
            return path[path.index(next_name) :] + [next_name]
        path.append(next_name)


def order_specs(specs: Sequence[ContractSpec]) -> List[ContractSpec]:
    """
    Topologically orders specs so that every contract follows the contracts
    it references. Ties go to declaration order.
    """
    position = {spec.name: index for index, spec in enumerate(specs)}
    edges = {spec.name: spec.dependencies for spec in specs}

    unmet = {name: {d for d in deps if d in position} for name, deps in edges.items()}
    dependents = {name: list() for name in position}
    for name, deps in unmet.items():
        for dependency in deps:
            dependents[dependency].append(name)

    ready = [position[name] for name, deps in unmet.items() if not deps]
    heapq.heapify(ready)

    ordered = list()
    while ready:
        spec = specs[heapq.heappop(ready)]
        ordered.append(spec)
        for dependent in dependents[spec.name]:
            unmet[dependent].discard(spec.name)
            if not unmet[dependent]:
                heapq.heappush(ready, position[dependent])

    if len(ordered) != len(specs):
        placed = {spec.name for spec in ordered}
        remaining = [spec.name for spec in specs if spec.name not in placed]
        raise CyclicDependency(_find_cycle(remaining, edges))

    return ordered


class DeploymentPlanner:
    """Computes which contracts a stage deploys and in which order."""

    def __init__(self, config: DeploymentConfig, registry: ArtifactRegistry):
        self.config = config
        self.registry = registry

    def _select(self, stage_tag: str) -> List[ContractSpec]:
        tagged = self.config.tagged(stage_tag)
        if not tagged:
            raise UnknownStage(
                f"No contracts are tagged '{stage_tag}'; available stages: {self.config.stages}"
            )

        # pull in referenced contracts the stage does not tag itself
        selected = {spec.name for spec in tagged}
        pending = list(tagged)
        while pending:
            spec = pending.pop()
            for dependency in spec.dependencies:
                if dependency not in self.config:
                    raise UnknownContract(
                        f"{spec.name} references '{dependency}', "
                        f"which is not declared in {self.config.name or 'the params file'}",
                        contract_name=dependency,
                    )
                if dependency not in selected:
                    selected.add(dependency)
                    pending.append(self.config.get(dependency))

        # keep declaration order for tie breaking
        return [spec for spec in self.config.specs if spec.name in selected]

    def _validate(self, spec: ContractSpec, interface: ContractInterface) -> None:
        resolved = spec.resolve(ResolutionContext(addresses={}, eager=True))
        _validate_constructor_abi_inputs(
            contract_name=spec.name,
            abi_inputs=interface.constructor_inputs,
            resolved_parameters=resolved,
        )

    def plan(self, stage_tag: str = FULL_DEPLOYMENT) -> StagePlan:
        specs = self._select(stage_tag)
        ordered = order_specs(specs)

        for spec in ordered:
            interface = self.registry.interface(spec.name)
            self._validate(spec, interface)

        entries = tuple(PlanEntry(spec=spec, dependencies=spec.dependencies) for spec in ordered)
        return StagePlan(stage=stage_tag, entries=entries)
