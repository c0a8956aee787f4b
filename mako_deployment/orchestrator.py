import time
import typing
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Dict, FrozenSet, NamedTuple, Optional

from mako_deployment.constants import FULL_DEPLOYMENT
from mako_deployment.deployer import Deployer, DeployerContext
from mako_deployment.errors import DeploymentError, InitializationFailed, InvalidResumePoint
from mako_deployment.initializer import Initializer
from mako_deployment.manifest import DeploymentManifest, ManifestBuilder
from mako_deployment.params import DeploymentConfig
from mako_deployment.planner import DeploymentPlanner, PlanEntry, StagePlan
from mako_deployment.registry import ArtifactRegistry, DeploymentRecord
from mako_deployment.utils import _write_json


class RunOptions(NamedTuple):
    force_redeploy: bool = False
    confirmations: Optional[int] = None  # overrides the context
    timeout: Optional[float] = None  # overrides the context
    skip_initialization: FrozenSet[str] = frozenset()
    # contract name -> 1-based step index
    resume_from: typing.Mapping[str, int] = MappingProxyType({})


class RunResult(NamedTuple):
    stage: str
    network: str
    manifest: DeploymentManifest
    error: Optional[DeploymentError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> Dict:
        data = self.manifest.to_dict()
        data["ok"] = self.ok
        if self.error is not None:
            data["error"] = self.error.to_dict()
        return data

    def write(self, filepath: Path) -> Path:
        return _write_json(self.to_dict(), Path(filepath))


class Orchestrator:
    """
    Plans a stage, then deploys and initializes its contracts one by one.

    The first failure stops the run. Nothing is rolled back: on-chain state
    cannot be undone and records of completed deployments stay valid, so the
    stage can simply be run again.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        registry: ArtifactRegistry,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.registry = registry
        self.planner = DeploymentPlanner(config=config, registry=registry)
        self.deployer = Deployer(registry=registry, clock=clock)
        self.initializer = Initializer(registry=registry)

    def plan(self, stage_tag: str = FULL_DEPLOYMENT) -> StagePlan:
        return self.planner.plan(stage_tag)

    @staticmethod
    def _context(context: DeployerContext, options: RunOptions) -> DeployerContext:
        changes = dict()
        if options.confirmations is not None:
            changes["confirmations"] = options.confirmations
        if options.timeout is not None:
            changes["timeout"] = options.timeout
        return context._replace(**changes)

    def _initialize(
        self,
        entry: PlanEntry,
        record: DeploymentRecord,
        context: DeployerContext,
        options: RunOptions,
        manifest: ManifestBuilder,
    ) -> None:
        if entry.name in options.skip_initialization:
            print(f"(i) Skipping initialization of {entry.name}")
            return

        start_at = options.resume_from.get(entry.name, 1)
        manifest.initializing(entry.name, completed_steps=start_at - 1)
        try:
            receipts = self.initializer.initialize(
                record=record, steps=entry.steps, context=context, start_at=start_at
            )
        except InitializationFailed as e:
            manifest.initialization_failed(entry.name, error=e, receipts=e.receipts)
            raise
        manifest.initialized(entry.name, receipts=receipts)

    def _process(
        self,
        entry: PlanEntry,
        addresses: Dict[str, str],
        context: DeployerContext,
        options: RunOptions,
        manifest: ManifestBuilder,
    ) -> None:
        existing = self.registry.store.get(context.network, entry.name)
        resolved_args = {name: addresses[name] for name in entry.dependencies if name in addresses}
        try:
            record = self.deployer.deploy(
                spec=entry.spec,
                resolved_args=resolved_args,
                context=context,
                force_redeploy=options.force_redeploy,
            )
        except DeploymentError as e:
            manifest.deployment_failed(entry.name, error=e)
            raise

        reused = existing is not None and record == existing
        manifest.deployed(record, reused=reused)
        addresses[entry.name] = record.address

        if entry.requires_init:
            self._initialize(entry, record, context, options, manifest)

    @staticmethod
    def _check_resume_points(plan: StagePlan, options: RunOptions) -> None:
        entries = {entry.name: entry for entry in plan}
        for contract_name, start_at in options.resume_from.items():
            entry = entries.get(contract_name)
            if entry is None:
                print(f"(!) Ignoring resume point for {contract_name}; not part of {plan.stage}")
                continue
            if not 1 <= start_at <= len(entry.steps) + 1:
                raise InvalidResumePoint(
                    f"Cannot resume {contract_name} at step {start_at}; "
                    f"it has {len(entry.steps)} initialization step(s)",
                    contract_name=contract_name,
                    step_index=start_at,
                )

    def run(
        self,
        stage_tag: str,
        context: DeployerContext,
        options: Optional[RunOptions] = None,
    ) -> RunResult:
        options = options or RunOptions()
        context = self._context(context, options)
        manifest = ManifestBuilder(network=context.network, stage=stage_tag)

        try:
            plan = self.planner.plan(stage_tag)
            self._check_resume_points(plan, options)
        except DeploymentError as e:
            print(f"(!) Planning {stage_tag} failed: {e}")
            return RunResult(stage_tag, context.network, manifest.build(), error=e)

        print(
            f"(i) Stage {stage_tag} on network {context.network}: "
            f"{', '.join(plan.contract_names)}"
        )
        addresses = dict()
        for entry in plan:
            try:
                self._process(entry, addresses, context, options, manifest)
            except DeploymentError as e:
                print(f"(!) Halting {stage_tag}: {e}")
                return RunResult(stage_tag, context.network, manifest.build(), error=e)

        print(f"(i) Stage {stage_tag} complete")
        return RunResult(stage_tag, context.network, manifest.build())
