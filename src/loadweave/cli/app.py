"""Main Typer application — entry point for the ``loadweave`` CLI."""

from __future__ import annotations

import typer

from loadweave import __version__
from loadweave.cli.run import run_cmd

app = typer.Typer(
    name="loadweave",
    help="Run declarative HTTP load simulations.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.command("run", help="Run a simulation file.")(run_cmd)


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"loadweave {__version__}")
        raise typer.Exit


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """LoadWeave — weave virtual users through HTTP step chains."""
