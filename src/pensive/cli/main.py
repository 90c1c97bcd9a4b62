"""Pensive CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from pensive.cli.backup import backup_cmd, restore_cmd, vacuum_cmd
from pensive.cli.graph import concept_cmd, graph_cmd, trending_cmd
from pensive.cli.ingest import ingest_cmd
from pensive.cli.remove import remove_cmd
from pensive.cli.status import status_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("pensive")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"pensive {_installed_version()}")
        raise typer.Exit()


app = typer.Typer(
    name="pensive",
    help=(
        "Pensive: personal content store and concept graph.\n\n"
        "  pensive ingest    Load analysed documents.\n"
        "  pensive graph     Browse the concept graph."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log store activity to stderr."),
    ] = False,
) -> None:
    """Pensive: personal content store and concept graph."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
            force=True,
        )


app.command("ingest")(ingest_cmd)
app.command("remove")(remove_cmd)
app.command("graph")(graph_cmd)
app.command("trending")(trending_cmd)
app.command("concept")(concept_cmd)
app.command("status")(status_cmd)
app.command("backup")(backup_cmd)
app.command("restore")(restore_cmd)
app.command("vacuum")(vacuum_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Pensive version."""
    typer.echo(f"pensive {_installed_version()}")


if __name__ == "__main__":
    app()
