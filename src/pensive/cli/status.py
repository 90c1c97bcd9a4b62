"""pensive status: store overview.

Shows the store location, record counts per table, content by source and
priority, and the most frequent concepts.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from pensive.cli.common import build_repository, console, database_for, load_cli_config
from pensive.db.connection import Database
from pensive.db.repository import ContentRepository
from pensive.graph.query import GraphQueryEngine


def status_cmd(
    store: Annotated[
        Path | None,
        typer.Option("--store", help="Store directory (default: store.path from config)."),
    ] = None,
) -> None:
    """Show store status: tables, content and concepts."""
    cfg = load_cli_config()
    db = database_for(store, cfg)

    # ---- Panel 1: Store ----
    _show_store_panel(db)
    if not db.exists():
        return

    opened = db.open()
    repo = build_repository(opened, cfg)

    # ---- Panel 2: Content ----
    _show_content_panel(repo)

    # ---- Panel 3: Concepts ----
    _show_concept_panel(GraphQueryEngine(opened))


# ---------------------------------------------------------------------------
# Panel renderers
# ---------------------------------------------------------------------------


def _show_store_panel(db: Database) -> None:
    if not db.exists():
        console.print(
            Panel(
                f"[yellow]No store found at {db.path}.[/]\n"
                "  Run:  pensive ingest --file <analysed.json>",
                title="[bold]Store[/]",
                expand=False,
            )
        )
        return

    size_kb = db.path.stat().st_size / 1024
    console.print(
        Panel(
            f"Location:  {db.path} ({size_kb:.1f} KB)\nKey:       {db.key}",
            title="[bold]Store[/]",
            expand=False,
        )
    )


def _show_content_panel(repo: ContentRepository) -> None:
    stats = repo.get_stats()

    table = Table(show_header=False, box=None, padding=(0, 1))
    for name, count in repo.store.table_stats().items():
        table.add_row(name, f"[bold]{count:,}[/]")
    console.print(Panel(table, title="[bold]Tables[/]", expand=False))

    lines = [
        f"Content: [bold]{stats.total_content}[/]  |  Analysed: [bold]{stats.total_analyses}[/]",
    ]
    if stats.by_source:
        by_source = ", ".join(f"{s or '(none)'} {n}" for s, n in sorted(stats.by_source.items()))
        lines.append(f"By source:    {by_source}")
    if stats.by_priority:
        by_priority = ", ".join(f"{p} {n}" for p, n in sorted(stats.by_priority.items()))
        lines.append(f"By priority:  {by_priority}")
    recent = repo.find_recent(limit=1)
    if recent:
        lines.append(f"Last ingest:  {(recent[0].created_at or '')[:10]}  {recent[0].title}")
    console.print(Panel("\n".join(lines), title="[bold]Content[/]", expand=False))


def _show_concept_panel(engine: GraphQueryEngine) -> None:
    stats = engine.get_concept_stats(top=5)
    if stats.total == 0:
        console.print(Panel("[dim]No concepts yet.[/]", title="[bold]Concepts[/]", expand=False))
        return

    lines = [f"Concepts: [bold]{stats.total}[/]  |  Avg frequency: {stats.average_frequency:.1f}"]
    lines.append(
        "By type:  " + ", ".join(f"{t} {n}" for t, n in sorted(stats.by_type.items()))
    )
    lines.append("Top:      " + ", ".join(f"{c.name} ({c.frequency})" for c in stats.top))
    console.print(Panel("\n".join(lines), title="[bold]Concepts[/]", expand=False))
