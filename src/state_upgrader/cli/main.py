"""Main CLI entry point for state-upgrader."""

from pathlib import Path

import click

from .. import __version__
from ..config import UpgraderConfig, load_config
from ..database import DatabaseManager, KeyValueStateStore, ScopeProvider
from ..migrations.upgrader import Upgrader, run_upgrade
from ..utils.logging import setup_logging
from .utils import (
    CliError,
    error_handler,
    load_plan,
    output_json,
    output_table,
    success_message,
)


def _load_settings(ctx: click.Context) -> UpgraderConfig:
    try:
        config = load_config(
            ctx.obj["config"], ctx.obj["profile"], ctx.obj["cli_overrides"]
        )
    except FileNotFoundError as e:
        raise CliError(str(e), exit_code=2) from e

    setup_logging(
        log_level=config.log_level,
        log_file=Path(config.log_file).expanduser() if config.log_file else None,
        enable_structured=config.structured_logging,
        enable_console=ctx.obj["verbose"],
    )
    return config


@click.group()
@click.version_option(version=__version__, prog_name="state-upgrader")
@click.option("--config", "-c", help="Configuration file path")
@click.option("--profile", "-p", help="Configuration profile to use")
@click.option("--database-url", help="Override database_url setting")
@click.option("--log-level", help="Override log_level setting")
@click.option("--verbose", "-v", is_flag=True, help="Write log output to stderr")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.pass_context
def main(
    ctx: click.Context,
    config: str | None,
    profile: str | None,
    database_url: str | None,
    log_level: str | None,
    verbose: bool,
    json: bool,
) -> None:
    """State Upgrader - run migration plans and track their progress.

    PLAN_REF arguments name a plan as 'package.module:attribute', where the
    attribute is a MigrationPlan or a function returning one.
    """
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["profile"] = profile
    ctx.obj["verbose"] = verbose
    ctx.obj["json"] = json
    ctx.obj["cli_overrides"] = {
        k: v
        for k, v in {"database_url": database_url, "log_level": log_level}.items()
        if v is not None
    }


@main.command()
@click.argument("plan_ref")
@click.pass_context
@error_handler
def status(ctx: click.Context, plan_ref: str) -> None:
    """Show the recorded state of a plan and what is still pending."""
    settings = _load_settings(ctx)
    plan = load_plan(plan_ref)
    upgrader = Upgrader(plan, state_key_prefix=settings.state_key_prefix)

    with DatabaseManager.from_config(settings) as database:
        recorded = None
        if database.has_state_tables():
            store = KeyValueStateStore(ScopeProvider(database))
            recorded = store.get(upgrader.state_value_key)

    pending = plan.follow_path(recorded or plan.initial_state)

    if ctx.obj["json"]:
        output_json(
            {
                "plan": plan.name,
                "state_key": upgrader.state_value_key,
                "current_state": recorded,
                "final_state": plan.final_state,
                "pending": [
                    {
                        "from": t.source_state,
                        "to": t.target_state,
                        "migration": str(t.migration),
                    }
                    for t in pending
                ],
            }
        )
        return

    click.echo(f"Plan:          {plan.name}")
    click.echo(f"Current state: {recorded if recorded is not None else '(none)'}")
    click.echo(f"Final state:   {plan.final_state}")
    if not pending:
        success_message("Up to date")
        return

    click.echo(f"\n{len(pending)} pending migration(s):")
    output_table(
        ["From", "To", "Migration"],
        [[t.source_state, t.target_state, str(t.migration)] for t in pending],
    )


@main.command()
@click.argument("plan_ref")
@click.pass_context
@error_handler
def upgrade(ctx: click.Context, plan_ref: str) -> None:
    """Apply every pending migration of a plan."""
    settings = _load_settings(ctx)
    plan = load_plan(plan_ref)

    with DatabaseManager.from_config(settings) as database:
        result = run_upgrade(plan, database, settings.state_key_prefix)

    if ctx.obj["json"]:
        output_json(
            {
                "plan": result.plan_name,
                "origin_state": result.origin_state,
                "final_state": result.final_state,
                "first_run": result.first_run,
                "applied": [str(t) for t in result.applied],
            }
        )
        return

    for transition in result.applied:
        click.echo(f"  applied {transition}")
    if result.changed:
        success_message(
            f"Upgraded '{result.plan_name}' from '{result.origin_state}' "
            f"to '{result.final_state}'"
        )
    else:
        success_message(f"'{result.plan_name}' already at '{result.final_state}'")


@main.group()
def state() -> None:
    """Inspect persisted plan state."""
    pass


@state.command("get")
@click.argument("plan_name")
@click.pass_context
@error_handler
def state_get(ctx: click.Context, plan_name: str) -> None:
    """Print the state recorded for PLAN_NAME."""
    settings = _load_settings(ctx)
    key = f"{settings.state_key_prefix}{plan_name}"

    with DatabaseManager.from_config(settings) as database:
        value = None
        if database.has_state_tables():
            value = KeyValueStateStore(ScopeProvider(database)).get(key)

    if value is None:
        raise CliError(f"No state recorded for plan '{plan_name}'")

    if ctx.obj["json"]:
        output_json({"plan": plan_name, "state_key": key, "state": value})
    else:
        click.echo(value)


if __name__ == "__main__":
    main()
