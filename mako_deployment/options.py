from pathlib import Path

import click

from mako_deployment.constants import (
    CONSTRUCTOR_PARAMS_DIR,
    DEFAULT_CONFIRMATION_TIMEOUT,
    DEFAULT_CONFIRMATIONS,
    FULL_DEPLOYMENT,
)
from mako_deployment.types import MinInt, PositiveFloat, ResumePoint

params_option = click.option(
    "--params",
    "-p",
    "params_filepath",
    help="Deployment params YAML file.",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    default=CONSTRUCTOR_PARAMS_DIR / "sepolia.yml",
    show_default=True,
)

stage_option = click.option(
    "--stage",
    "-s",
    help="Stage tag to deploy.",
    default=FULL_DEPLOYMENT,
    show_default=True,
)

force_redeploy_option = click.option(
    "--force-redeploy",
    help="Deploy again even if a deployment record exists for this network.",
    is_flag=True,
)

confirmations_option = click.option(
    "--confirmations",
    "-c",
    help="Number of confirmations to wait for after each transaction.",
    type=MinInt(1),
    default=DEFAULT_CONFIRMATIONS,
    show_default=True,
)

timeout_option = click.option(
    "--timeout",
    "-t",
    help="Seconds to wait for each confirmation.",
    type=PositiveFloat(),
    default=DEFAULT_CONFIRMATION_TIMEOUT,
    show_default=True,
)

skip_init_option = click.option(
    "--skip-init",
    "skip_initialization",
    help="Contract whose deposit and stake steps should not run (repeatable).",
    multiple=True,
)

resume_option = click.option(
    "--resume",
    "resume_from",
    help="Resume a contract's initialization at a step, e.g. TokenPaymaster:2 (repeatable).",
    type=ResumePoint(),
    multiple=True,
)

autosign_option = click.option(
    "--autosign",
    help="Sign transactions and skip confirmation prompts.",
    is_flag=True,
)
