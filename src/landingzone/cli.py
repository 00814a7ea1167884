"""Fabric landing zone CLI (fabric-lz).

Usage:
    fabric-lz validate landing-zone.yaml          # Check the configuration file
    fabric-lz plan landing-zone.yaml              # Show what a run would converge
    fabric-lz apply landing-zone.yaml --simulate  # Look up live state, change nothing
    fabric-lz apply landing-zone.yaml --no-simulate
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import click

from .config import DEFAULT_SETTLE_DELAY_SECONDS, Config, ConfigurationError
from .declarations import (
    DesiredResource,
    ManagementGroupDeclaration,
    PolicyAssignmentDeclaration,
    SubscriptionPlacement,
)
from .main import run_provisioning, setup_logging
from .planner import Plan, build_plan
from .reconciler import OutcomeState, RunResult
from .security import SecretlessViolationError
from .spec_loader import SpecLoadError, load_spec

VERSION = "0.1.0"


def _load_plan(config_file: str, simulate_override: bool | None = None) -> Plan:
    try:
        spec = load_spec(Path(config_file))
        return build_plan(spec, simulate_override=simulate_override)
    except (SpecLoadError, ConfigurationError) as e:
        raise click.ClickException(str(e)) from e


def _describe(desired: DesiredResource, plan: Plan) -> str:
    context = plan.context
    match desired:
        case ManagementGroupDeclaration():
            parent = desired.parent_id
            if parent is not None and not desired.parent_is_external:
                parent = context.qualify(parent)
            return (
                f"management group  {context.qualify(desired.id)} "
                f"({desired.display_name}) under {parent or 'tenant root'}"
            )
        case SubscriptionPlacement():
            subscription = desired.subscription_id or "<not configured>"
            return (
                f"subscription      {subscription} -> "
                f"{context.qualify(desired.target_group_id)}"
            )
        case PolicyAssignmentDeclaration():
            return (
                f"policy assignment {desired.assignment_name} at "
                f"{context.qualify(desired.scope_id)} [{desired.enforcement_mode}]"
            )
        case _:
            raise TypeError(f"Unsupported declaration: {type(desired).__name__}")


def _print_result(result: RunResult) -> None:
    marker = "[simulate] " if result.simulate_only else ""
    for outcome in result.outcomes:
        line = f"{marker}{outcome.state.value:<13} {outcome.message}"
        if outcome.reason:
            line += f" ({outcome.reason})"
        click.echo(line)

    counts = ", ".join(
        f"{state.value}={result.count(state)}" for state in OutcomeState if result.count(state)
    )
    click.echo(f"\n{marker}{len(result.outcomes)} declarations: {counts or 'none'}")
    if result.aborted:
        click.echo("Run aborted after a management group failure.", err=True)


# =============================================================================
# CLI Group
# =============================================================================


@click.group()
@click.version_option(version=VERSION, prog_name="fabric-lz")
def cli() -> None:
    """Fabric landing zone CLI (fabric-lz).

    Converges management groups, subscription placements and policy
    assignments described in a YAML file.

    \b
    Quick Start:
        fabric-lz validate landing-zone.yaml
        fabric-lz plan landing-zone.yaml
        fabric-lz apply landing-zone.yaml --simulate
    """
    pass


@cli.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def validate(config_file: str) -> None:
    """Validate a landing zone configuration file."""
    plan = _load_plan(config_file)
    click.echo(f"Configuration valid: {len(plan)} declarations")


@cli.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
def plan(config_file: str) -> None:
    """Show the ordered declarations a run would converge."""
    loaded = _load_plan(config_file)
    context = loaded.context
    click.echo(f"Prefix: {context.naming_prefix or '<none>'}")
    click.echo(f"Region: {context.default_region}")
    click.echo(f"Simulate only: {context.simulate_only}")
    click.echo("")
    for index, desired in enumerate(loaded.declarations, start=1):
        click.echo(f"{index:>3}. {_describe(desired, loaded)}")


@cli.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--subscription", "-s", envvar="AZURE_SUBSCRIPTION_ID", help="API context subscription ID"
)
@click.option(
    "--simulate/--no-simulate",
    default=None,
    help="Override simulateOnly from the configuration file",
)
@click.option(
    "--settle-delay",
    type=click.IntRange(0, 300),
    default=DEFAULT_SETTLE_DELAY_SECONDS,
    show_default=True,
    help="Seconds to wait after creating a management group",
)
@click.option("--managed-identity", is_flag=True, help="Authenticate with managed identity")
@click.option("--client-id", envvar="AZURE_CLIENT_ID", help="User-assigned identity client ID")
@click.option("--verbose", "-v", is_flag=True, help="Write structured logs to stderr")
def apply(
    config_file: str,
    subscription: str | None,
    simulate: bool | None,
    settle_delay: int,
    managed_identity: bool,
    client_id: str | None,
    verbose: bool,
) -> None:
    """Converge the tenant to the configuration.

    \b
    Examples:
        fabric-lz apply landing-zone.yaml --simulate
        fabric-lz apply landing-zone.yaml --no-simulate --settle-delay 10
    """
    if not subscription:
        raise click.ClickException(
            "Azure subscription ID required. Set AZURE_SUBSCRIPTION_ID or use --subscription."
        )

    if verbose:
        setup_logging(json_output=False, stream=sys.stderr)

    try:
        config = Config(
            config_file=Path(config_file),
            subscription_id=subscription,
            simulate_only=simulate,
            settle_delay_seconds=settle_delay,
            client_id=client_id or None,
            use_managed_identity=managed_identity,
        )
        result = asyncio.run(run_provisioning(config))
    except (SpecLoadError, ConfigurationError) as e:
        raise click.ClickException(str(e)) from e
    except SecretlessViolationError as e:
        click.echo(str(e), err=True)
        sys.exit(2)

    _print_result(result)
    if not result.success:
        sys.exit(1)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
