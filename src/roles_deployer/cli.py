"""Role assignment deployer CLI (rolesctl).

Usage:
    rolesctl deploy --pac-selector prod            # Apply the roles plan
    rolesctl deploy -p dev --interactive           # Apply with browser login
    rolesctl show-plan --pac-selector prod         # Summarize the plan
"""

from __future__ import annotations

import asyncio
import dataclasses
from pathlib import Path
from typing import Any

import click

from .config import (
    DEFAULT_INPUT_FOLDER,
    AzureCloud,
    Config,
    ConfigurationError,
    RetryPolicy,
)
from .main import deploy_roles, setup_logging
from .plan_loader import PlanLoadError, load_plan

CLOUDS = tuple(c.value for c in AzureCloud)


def _build_config(
    pac_selector: str,
    input_folder: Path | None,
    definitions_folder: Path | None,
    cloud: str | None,
    tenant_id: str | None,
    interactive: bool,
    max_attempts: int | None,
    retry_interval: float | None,
    fail_on_degraded: bool | None,
    json_logs: bool | None,
) -> Config:
    """Environment configuration with the options that were given applied on top.

    Raises:
        ConfigurationError: If the environment or an option is invalid.
    """
    overrides: dict[str, Any] = {"pac_selector": pac_selector}
    if input_folder is not None:
        overrides["input_folder"] = input_folder
    if definitions_folder is not None:
        overrides["definitions_folder"] = definitions_folder
    if cloud is not None:
        overrides["cloud"] = AzureCloud(cloud)
    if tenant_id is not None:
        overrides["tenant_id"] = tenant_id
    if interactive:
        overrides["interactive"] = True
    if fail_on_degraded is not None:
        overrides["fail_on_degraded"] = fail_on_degraded
    if json_logs is not None:
        overrides["json_logging"] = json_logs

    config = Config.from_env(**overrides)

    if max_attempts is not None or retry_interval is not None:
        retry = RetryPolicy(
            max_attempts=max_attempts if max_attempts is not None else config.retry.max_attempts,
            interval_seconds=(
                retry_interval if retry_interval is not None else config.retry.interval_seconds
            ),
        )
        config = dataclasses.replace(config, retry=retry)
    return config


@click.group()
@click.version_option(version="0.1.0", prog_name="rolesctl")
def cli() -> None:
    """Role assignment deployer CLI (rolesctl).

    Applies precomputed role assignment plans to Azure RBAC.
    """
    pass


@cli.command()
@click.option(
    "--pac-selector",
    "-p",
    envvar="PAC_ENVIRONMENT_SELECTOR",
    required=True,
    help="Pac environment whose plan is applied",
)
@click.option(
    "--input-folder",
    "-i",
    type=click.Path(file_okay=False, path_type=Path),
    help="Folder containing plans-<selector>/",
)
@click.option(
    "--definitions-folder",
    "-d",
    type=click.Path(file_okay=False, path_type=Path),
    help="Folder containing global-settings.yaml",
)
@click.option("--cloud", type=click.Choice(CLOUDS), help="Azure cloud")
@click.option("--tenant-id", "-t", help="Tenant to authenticate against")
@click.option("--interactive", is_flag=True, help="Log in with a browser")
@click.option("--max-attempts", type=int, help="Attempts per role assignment creation")
@click.option("--retry-interval", type=float, help="Seconds between creation attempts")
@click.option(
    "--fail-on-degraded/--no-fail-on-degraded",
    default=None,
    help="Exit non-zero when an addition could not be applied (default: FAIL_ON_DEGRADED or true)",
)
@click.option(
    "--json-logs/--text-logs",
    default=None,
    help="Log format (default: ENABLE_JSON_LOGGING or JSON)",
)
def deploy(
    pac_selector: str,
    input_folder: Path | None,
    definitions_folder: Path | None,
    cloud: str | None,
    tenant_id: str | None,
    interactive: bool,
    max_attempts: int | None,
    retry_interval: float | None,
    fail_on_degraded: bool | None,
    json_logs: bool | None,
) -> None:
    """Apply the roles plan for a pac environment."""
    try:
        config = _build_config(
            pac_selector,
            input_folder,
            definitions_folder,
            cloud,
            tenant_id,
            interactive,
            max_attempts,
            retry_interval,
            fail_on_degraded,
            json_logs,
        )
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    setup_logging(json_output=config.json_logging)
    exit_code = asyncio.run(deploy_roles(config))
    if exit_code != 0:
        raise click.exceptions.Exit(exit_code)
    click.secho("✓ Role assignments deployed", fg="green")


@cli.command("show-plan")
@click.option(
    "--pac-selector",
    "-p",
    envvar="PAC_ENVIRONMENT_SELECTOR",
    required=True,
    help="Pac environment whose plan is shown",
)
@click.option(
    "--input-folder",
    "-i",
    type=click.Path(file_okay=False, path_type=Path),
    default=DEFAULT_INPUT_FOLDER,
    show_default=True,
    help="Folder containing plans-<selector>/",
)
def show_plan(pac_selector: str, input_folder: Path) -> None:
    """Summarize the roles plan without touching Azure."""
    try:
        plan = load_plan(Path(input_folder), pac_selector)
    except PlanLoadError as e:
        raise click.ClickException(str(e)) from e

    if plan is None:
        click.echo(f"No roles plan for '{pac_selector}', deployment would be skipped.")
        return

    click.echo(f"Plan created on {plan.created_on.isoformat()}")
    click.echo(f"  Removals:  {len(plan.removed)}")
    click.echo(f"  Additions: {len(plan.added)}")

    unresolved = [record for record in plan.added if record.needs_resolution]
    if unresolved:
        click.echo(f"  Additions resolved from policy assignment identities: {len(unresolved)}")

    for record in plan.removed:
        click.echo(f"  - {record.label}")
    for record in plan.added:
        click.echo(f"  + {record.label}")
