"""pensive backup / restore / vacuum: store maintenance.

Usage:
  pensive backup --output pensive-backup.json
  pensive restore --input pensive-backup.json --yes
  pensive vacuum
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from pensive.cli.common import (
    build_repository,
    console,
    database_for,
    load_cli_config,
    open_existing,
    report_persist_error,
)
from pensive.cli.errors import err_file_not_found, err_output_exists, err_restore_failed
from pensive.db.persistence import RestoreError

_StoreOption = Annotated[
    Path | None,
    typer.Option("--store", help="Store directory (default: store.path from config)."),
]


def backup_cmd(
    output: Annotated[
        Path,
        typer.Option("--output", "-o", help="File to write the backup to."),
    ],
    store: _StoreOption = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Overwrite an existing output file."),
    ] = False,
) -> None:
    """Write a pretty-printed backup of the whole store."""
    cfg = load_cli_config()
    opened = open_existing(store, cfg)
    if output.exists() and not yes:
        console.print(err_output_exists(str(output)))
        raise typer.Exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(opened.backup(), encoding="utf-8")
    console.print(f"[green]✓[/] Backup written: {output} ({opened.total_records()} records)")


def restore_cmd(
    input_path: Annotated[
        Path,
        typer.Option("--input", "-i", help="Backup file written by pensive backup."),
    ],
    store: _StoreOption = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Replace the whole store with the contents of a backup."""
    if not input_path.is_file():
        console.print(err_file_not_found(str(input_path)))
        raise typer.Exit(1)

    cfg = load_cli_config()
    db = database_for(store, cfg)
    opened = db.open()

    console.print(f"\nRestore [bold]{input_path}[/] into {db.path}")
    console.print(f"  Current store: {opened.total_records()} records (will be replaced)")
    if not yes:
        if not typer.confirm("Confirm restore?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    try:
        stats = opened.restore(input_path.read_text(encoding="utf-8"))
    except (RestoreError, UnicodeDecodeError, OSError) as exc:
        console.print(err_restore_failed(str(input_path), str(exc)))
        raise typer.Exit(1) from exc

    summary = ", ".join(f"{name} {count}" for name, count in stats.items())
    console.print(f"\n[green]✓[/] Restored: {summary}")
    report_persist_error(opened)


def vacuum_cmd(store: _StoreOption = None) -> None:
    """Prune dangling records and recount concept frequencies."""
    cfg = load_cli_config()
    repo = build_repository(open_existing(store, cfg), cfg)
    report = repo.vacuum()

    if report.total_changes == 0:
        console.print("[green]✓[/] Store is clean, nothing to do.")
        return

    console.print("[green]✓[/] Vacuum complete")
    console.print(
        f"  Relationships removed: {report.relationships_removed}\n"
        f"  Analyses removed:      {report.analyses_removed}\n"
        f"  Concept links removed: {report.links_removed}\n"
        f"  Concepts recounted:    {report.concepts_recounted}"
    )
    report_persist_error(repo.store)
