"""
Root Typer application for the Stratus CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="stratus",
    help="stratus — cloud infrastructure deployment with conflict recovery and rollback.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        from stratus import __version__

        try:
            v = pkg_version("stratus-deploy")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"stratus {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """stratus CLI — deploy templates, inspect naming, list regions."""


# ── Sub-command registration ─────────────────────────────────────────────

from stratus.cli.deploy import app as deploy_app  # noqa: E402

app.add_typer(deploy_app, name="deploy", help="Infrastructure deployment.")
