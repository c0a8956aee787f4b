#!/usr/bin/python3

import sys
from collections import OrderedDict
from pathlib import Path

import click
from ape.cli import ConnectedProviderCommand, account_option

from mako_deployment.artifacts import ApeProjectProvider, HardhatArtifactProvider
from mako_deployment.chain import ApeChainClient
from mako_deployment.confirm import _confirm_plan
from mako_deployment.constants import MANIFEST_SUFFIX
from mako_deployment.deployer import DeployerContext
from mako_deployment.errors import DeploymentError
from mako_deployment.manifest import ContractState
from mako_deployment.networks import describe_network, is_local_network, network_identifier
from mako_deployment.options import (
    autosign_option,
    confirmations_option,
    force_redeploy_option,
    params_option,
    resume_option,
    skip_init_option,
    stage_option,
    timeout_option,
)
from mako_deployment.orchestrator import Orchestrator, RunOptions
from mako_deployment.params import DeploymentConfig
from mako_deployment.registry import ArtifactRegistry, JSONDeploymentStore


@click.command(cls=ConnectedProviderCommand, name="deploy")
@account_option()
@params_option
@stage_option
@force_redeploy_option
@confirmations_option
@timeout_option
@skip_init_option
@resume_option
@autosign_option
@click.option(
    "--artifacts",
    "artifacts_dir",
    help="Read compiled contracts from a hardhat artifacts directory instead of the ape project.",
    type=click.Path(file_okay=False, exists=True, path_type=Path),
    required=False,
)
def cli(
    account,
    params_filepath,
    stage,
    force_redeploy,
    confirmations,
    timeout,
    skip_initialization,
    resume_from,
    autosign,
    artifacts_dir,
):
    """
    Deploys a stage of the Mako contracts and funds its paymasters.

    ape run deploy --stage TokenPaymaster --network ethereum:sepolia:infura --account mako-deployer
    ape run deploy --stage Full-Deployment --network ethereum:local:test --autosign
    """
    network = network_identifier()
    live = not is_local_network()
    try:
        config = DeploymentConfig.from_yaml(params_filepath, chain_id=int(network), live=live)
    except DeploymentConfig.Invalid as e:
        raise click.ClickException(str(e))

    if live:
        account.set_autosign(autosign)
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")

    if artifacts_dir:
        provider = HardhatArtifactProvider(artifacts_dir)
    else:
        provider = ApeProjectProvider()
    store = JSONDeploymentStore(config.store_filepath)
    orchestrator = Orchestrator(config=config, registry=ArtifactRegistry(provider, store))

    context = DeployerContext(
        network=network,
        chain=ApeChainClient(account),
        confirmations=confirmations,
        timeout=timeout,
    )
    options = RunOptions(
        force_redeploy=force_redeploy,
        skip_initialization=frozenset(skip_initialization),
        resume_from=dict(resume_from),
    )

    print(
        f"Account: {account.address}",
        f"Config: {params_filepath}",
        f"Registry: {config.store_filepath}",
        f"Network: {describe_network()}",
        f"Stage: {stage}",
        f"Force redeploy: {force_redeploy}",
        sep="\n",
    )

    if not autosign:
        try:
            plan = orchestrator.plan(stage)
        except DeploymentError as e:
            raise click.ClickException(str(e))
        records = OrderedDict((entry.name, store.get(network, entry.name)) for entry in plan)
        _confirm_plan(plan, records)

    result = orchestrator.run(stage, context=context, options=options)

    manifest_filepath = result.write(config.store_filepath.with_suffix(MANIFEST_SUFFIX))
    print(f"(i) Manifest written to {manifest_filepath}!")

    for name, record in result.manifest.records.items():
        print(f"{name} deployed to: {record.address}")

    if not result.ok:
        error = result.error
        print(f"\n(!) {error.kind}: {error}")
        if error.step_index is not None:
            print(
                f"(!) Steps before {error.step_index} of {error.contract_name} are confirmed. "
                f"Check the contract's balances, then rerun with "
                f"--resume {error.contract_name}:{error.step_index} "
                f"or --skip-init {error.contract_name}."
            )
        initialized = [
            name
            for name, entry in result.manifest.entries.items()
            if entry.state == ContractState.INITIALIZED
        ]
        for name in initialized:
            print(f"(!) {name} was funded in this run; pass --skip-init {name} when rerunning.")
    sys.exit(result.exit_code)
