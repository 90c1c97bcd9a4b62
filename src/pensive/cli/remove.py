"""pensive remove: delete a content record and everything it originated.

Removes, in one batch:
  - the analysis
  - relationships whose content_id is the content
  - concept links of the content
  - the content record

Concepts stay; run ``pensive vacuum`` to recount their frequencies.

Usage:
  pensive remove --id 3f2a...
  pensive remove --id 3f2a... --yes
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from pensive.cli.common import (
    build_repository,
    console,
    load_cli_config,
    open_existing,
    report_persist_error,
)
from pensive.cli.errors import err_content_not_found, warn_vacuum_suggested
from pensive.db.schema import CONCEPT_LINKS, RELATIONSHIPS


def remove_cmd(
    content_id: Annotated[
        str,
        typer.Option("--id", help="Id of the content to remove."),
    ],
    store: Annotated[
        Path | None,
        typer.Option("--store", help="Store directory (default: store.path from config)."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip confirmation prompt."),
    ] = False,
) -> None:
    """Remove a content record and its analysis, edges and links."""
    cfg = load_cli_config()
    repo = build_repository(open_existing(store, cfg), cfg)

    content = repo.get_content(content_id)
    if content is None:
        console.print(err_content_not_found(content_id))
        raise typer.Exit(0)

    has_analysis = repo.get_analysis_for_content(content_id) is not None
    edge_count = repo.store.count(RELATIONSHIPS, where={"content_id": content_id})
    link_count = repo.store.count(CONCEPT_LINKS, where={"content_id": content_id})

    console.print(f"\nRemove content: [bold]{content.title}[/]")
    console.print(
        f"  Analysis: {'yes' if has_analysis else 'no'}  |  "
        f"Relationships: {edge_count}  |  "
        f"Concept links: {link_count}"
    )

    if not yes:
        if not typer.confirm("Confirm removal?", default=False):
            console.print("[dim]Cancelled.[/]")
            raise typer.Exit(0)

    repo.delete_content(content_id)

    console.print(f"\n[green]✓[/] Removed: {content.title}")
    console.print(f"  {edge_count} relationships, {link_count} concept links deleted")
    report_persist_error(repo.store)
    console.print(f"\n{warn_vacuum_suggested()}")
