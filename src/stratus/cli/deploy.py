"""
CLI: ``stratus deploy`` — infrastructure deployment commands.

Usage::

    stratus deploy run --template infrastructure/dev/main.bicep
    stratus deploy run --template main.bicep --env staging --location northeurope
    stratus deploy run --template main.bicep --what-if      # print parameters only
    stratus deploy run --template main.bicep --yes --json   # CI: approve rollback, JSON result

    stratus deploy names --env dev --location westeurope    # show derived resource names
    stratus deploy regions                                  # list known region codes
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(no_args_is_help=True)
console = Console()
err_console = Console(stderr=True)


def _parse_params(values: list[str]) -> dict[str, Any]:
    """``KEY=VALUE`` pairs; values that parse as JSON keep their type."""
    params: dict[str, Any] = {}
    for item in values:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected KEY=VALUE, got '{item}'", param_hint="--param")
        try:
            params[key] = json.loads(raw)
        except json.JSONDecodeError:
            params[key] = raw
    return params


# ── Run ──────────────────────────────────────────────────────────────────


@app.command("run")
def deploy_run(
    template: Path = typer.Option(..., "--template", "-t", help="Template file (Bicep or ARM JSON)."),
    env: str | None = typer.Option(None, "--env", "-e", help="Environment name."),
    location: str | None = typer.Option(None, "--location", "-l", help="Initial region."),
    fallback_location: str | None = typer.Option(
        None, "--fallback-location", help="Region used when a conflict forces relocation.",
    ),
    application: str | None = typer.Option(None, "--app", "-a", help="Application name used in resource names."),
    max_retries: int | None = typer.Option(None, "--max-retries", help="Conflict-driven retries allowed."),
    what_if: bool = typer.Option(False, "--what-if", help="Print parameters without deploying."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print full parameter payloads and debug logs."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Approve rollback without asking."),
    non_interactive: bool = typer.Option(
        False, "--non-interactive", help="Never prompt; menus use --choice, rollback uses --yes.",
    ),
    choice: int | None = typer.Option(
        None, "--choice", min=1, help="1-based answer for conflict menus when non-interactive.",
    ),
    no_storage: bool = typer.Option(False, "--no-storage", help="Do not deploy the storage account."),
    no_database: bool = typer.Option(False, "--no-database", help="Do not deploy the database."),
    no_app_service: bool = typer.Option(False, "--no-app-service", help="Do not deploy the App Service."),
    no_messaging: bool = typer.Option(False, "--no-messaging", help="Do not deploy Communication Services."),
    param: list[str] = typer.Option([], "--param", "-p", help="Extra template parameter KEY=VALUE. Repeatable."),
    json_out: bool = typer.Option(False, "--json", help="Output the result as JSON."),
) -> None:
    """Deploy the template, recovering from conflicts and rolling back on failure."""
    from stratus.core.errors import InvalidConfigError
    from stratus.core.logging import configure_logging
    from stratus.core.settings import get_settings
    from stratus.deploy.config import DeploymentConfig
    from stratus.deploy.orchestrator import run_deployment
    from stratus.deploy.prompts import AutoPrompter, ConsolePrompter

    settings = get_settings()
    configure_logging(level="DEBUG" if verbose else settings.log_level, json_format=settings.json_logs)

    try:
        config = DeploymentConfig.from_env(
            environment=env,
            application=application,
            location=location,
            fallback_location=fallback_location,
            max_retries=max_retries,
            dry_run=what_if or None,
            verbose=verbose or None,
            assume_yes=yes or None,
            deploy_storage=False if no_storage else None,
            deploy_database=False if no_database else None,
            deploy_app_service=False if no_app_service else None,
            deploy_messaging=False if no_messaging else None,
            extra_parameters=_parse_params(param) or None,
            template_path=template,
        )
        config.validate_components()
    except InvalidConfigError as e:
        err_console.print(f"[red]✗ {e.message}[/]")
        raise typer.Exit(code=1) from e

    # Keep stdout clean for JSON
    out = err_console if json_out else console
    prompter = (
        AutoPrompter(choice=choice - 1 if choice else None, approve=config.assume_yes)
        if non_interactive
        else ConsolePrompter(out)
    )

    out.print(f"[bold]stratus deploy[/] — run_id: {config.run_id}")
    out.print(f"  environment: {config.environment}  location: {config.location}")
    if config.dry_run:
        out.print("  [yellow]what-if: nothing will be deployed[/]")

    try:
        outcome = run_deployment(None, template, config=config, prompter=prompter, console=out)
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Interrupted.[/]")
        raise typer.Exit(code=130) from None

    if json_out:
        typer.echo(outcome.model_dump_json(indent=2))
    else:
        _print_outcome(outcome)

    if not outcome.success:
        raise typer.Exit(code=1)


# ── Names / regions ──────────────────────────────────────────────────────


@app.command("names")
def deploy_names(
    env: str = typer.Option("dev", "--env", "-e", help="Environment name."),
    location: str = typer.Option("westeurope", "--location", "-l", help="Region."),
    application: str = typer.Option("app", "--app", "-a", help="Application name."),
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show the resource names a deployment would use."""
    from stratus.deploy.naming import derived_names

    names = derived_names(env, location, application)
    if json_out:
        typer.echo(json.dumps(names, indent=2))
        return

    table = Table(title=f"Resource names — {env} / {location}")
    table.add_column("Role", style="cyan")
    table.add_column("Name", style="bold")
    for role, name in names.items():
        table.add_row(role, name)
    console.print(table)


@app.command("regions")
def deploy_regions() -> None:
    """List regions with a known short code."""
    from stratus.deploy.config import DEFAULT_FALLBACK_LOCATION
    from stratus.deploy.naming import REGION_CODES

    table = Table(title="Known Regions")
    table.add_column("Region", style="cyan")
    table.add_column("Code", style="bold")
    table.add_column("Notes")
    for region, code in REGION_CODES.items():
        note = "default fallback" if region == DEFAULT_FALLBACK_LOCATION else ""
        table.add_row(region, code, note)
    console.print(table)


# ── Helpers ──────────────────────────────────────────────────────────────


def _print_outcome(outcome: Any) -> None:
    """Print a human-readable run summary."""
    status = "[green]SUCCEEDED[/]" if outcome.success else "[red]FAILED[/]"
    if outcome.dry_run and outcome.success:
        status = "[yellow]WHAT-IF[/]"

    console.print(f"\n[bold]Result:[/] {status}  ({outcome.duration_seconds:.1f}s)")
    table = Table(show_header=False, box=None)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("location", outcome.final_location)
    table.add_row("resource group", outcome.final_resource_group)
    table.add_row("prefix", outcome.final_resource_prefix)
    table.add_row("storage account", outcome.final_storage_name)
    table.add_row("attempts", str(len(outcome.attempts)))
    if outcome.rollback is not None:
        table.add_row("rollback", outcome.rollback.summary)
    console.print(table)
