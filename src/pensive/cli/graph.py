"""pensive graph / trending / concept: read-only views of the concept graph.

Usage:
  pensive graph --level 50 --search rust
  pensive graph --json > graph.json
  pensive trending --timeframe monthly --limit 5
  pensive concept --name WebAssembly
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import typer
from rich.panel import Panel
from rich.table import Table

from pensive.cli.common import console, load_cli_config, open_existing
from pensive.cli.errors import (
    err_concept_not_found,
    err_concept_ref_required,
    err_invalid_timeframe,
)
from pensive.graph.builder import ConceptBuilder
from pensive.graph.query import ConceptDetails, GraphQueryEngine, Timeframe

_StoreOption = Annotated[
    Path | None,
    typer.Option("--store", help="Store directory (default: store.path from config)."),
]


def graph_cmd(
    level: Annotated[
        int | None,
        typer.Option("--level", "-l", min=0, max=100, help="Abstraction level 0-100."),
    ] = None,
    search: Annotated[
        str,
        typer.Option("--search", "-s", help="Filter concepts by name, description or type."),
    ] = "",
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the graph as JSON."),
    ] = False,
    store: _StoreOption = None,
) -> None:
    """Show the concept graph filtered by abstraction level and search."""
    cfg = load_cli_config()
    engine = GraphQueryEngine(open_existing(store, cfg))
    level = cfg.graph.abstraction_level if level is None else level
    graph = engine.get_concept_graph(level, search)

    if as_json:
        typer.echo(json.dumps(graph.to_dict(), indent=2, ensure_ascii=False))
        return

    if not graph.nodes:
        console.print("[yellow]No concepts match.[/] Try a lower --level or another --search.")
        return

    labels = {n.id: n.label for n in graph.nodes}
    table = Table(
        title=f"Concepts (level {level}, min frequency {graph.min_frequency})",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Concept")
    table.add_column("Type")
    table.add_column("Freq", justify="right")
    table.add_column("Density", justify="right")
    table.add_column("Id", style="dim")
    for node in graph.nodes:
        table.add_row(node.label, node.type, str(node.frequency), f"{node.density:.0f}", node.id)
    console.print(table)

    edges = Table(title="Relationships", show_header=True, header_style="bold")
    edges.add_column("From")
    edges.add_column("Type")
    edges.add_column("To")
    edges.add_column("Weight", justify="right")
    for edge in graph.edges:
        edges.add_row(labels[edge.source], edge.type, labels[edge.target], f"{edge.weight:.2f}")
    if graph.edges:
        console.print(edges)
    console.print(f"[dim]{len(graph.nodes)} concepts, {len(graph.edges)} relationships[/]")


def trending_cmd(
    timeframe: Annotated[
        str | None,
        typer.Option("--timeframe", "-t", help="weekly, monthly or quarterly."),
    ] = None,
    limit: Annotated[
        int | None,
        typer.Option("--limit", "-n", min=1, help="Maximum concepts to show."),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print results as JSON."),
    ] = False,
    store: _StoreOption = None,
) -> None:
    """Show concepts whose mention rate grew in the latest window."""
    cfg = load_cli_config()
    name = (timeframe or cfg.trending.timeframe).lower()
    try:
        frame = Timeframe(name)
    except ValueError:
        console.print(err_invalid_timeframe(name))
        raise typer.Exit(1) from None

    engine = GraphQueryEngine(open_existing(store, cfg))
    trending = engine.get_trending_concepts(frame, limit or cfg.trending.limit)

    if as_json:
        typer.echo(json.dumps([t.to_dict() for t in trending], indent=2, ensure_ascii=False))
        return

    if not trending:
        console.print(f"[yellow]No content in the {frame.value} window.[/]")
        return

    table = Table(title=f"Trending ({frame.value})", show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Concept")
    table.add_column("Type")
    table.add_column("Growth", justify="right")
    table.add_column("Recent", justify="right")
    table.add_column("Prior", justify="right")
    for rank, item in enumerate(trending, start=1):
        table.add_row(
            str(rank),
            item.concept.name,
            item.concept.type.value,
            f"{item.growth:.2f}×",
            str(item.recent_mentions),
            str(item.prior_mentions),
        )
    console.print(table)


def concept_cmd(
    concept_id: Annotated[
        str | None,
        typer.Option("--id", help="Concept id."),
    ] = None,
    name: Annotated[
        str | None,
        typer.Option("--name", help="Concept name (case-insensitive)."),
    ] = None,
    store: _StoreOption = None,
) -> None:
    """Show one concept with related concepts and the content mentioning it."""
    if not concept_id and not name:
        console.print(err_concept_ref_required())
        raise typer.Exit(1)

    cfg = load_cli_config()
    opened = open_existing(store, cfg)
    if not concept_id:
        found = ConceptBuilder(opened).find_concept(name or "")
        concept_id = found["id"] if found else None

    details = GraphQueryEngine(opened).get_concept_details(concept_id) if concept_id else None
    if details is None:
        console.print(err_concept_not_found(concept_id or name or ""))
        raise typer.Exit(1)

    _show_details(details)


def _show_details(details: ConceptDetails) -> None:
    c = details.concept
    stats = details.relationship_stats
    lines = [
        f"Type:        {c.type.value}",
        f"Frequency:   {c.frequency}",
        f"Id:          [dim]{c.id}[/]",
        f"Edges:       {stats.outgoing} out, {stats.incoming} in",
    ]
    if stats.by_type:
        by_type = ", ".join(f"{t} {n}" for t, n in sorted(stats.by_type.items()))
        lines.append(f"By type:     {by_type}")
    if c.description:
        lines.append(f"\n{c.description}")
    console.print(Panel("\n".join(lines), title=f"[bold]{c.name}[/]", expand=False))

    if details.related:
        related = ", ".join(f"{r.name} ({r.frequency})" for r in details.related)
        console.print(f"[bold]Related:[/] {related}")

    if details.articles:
        table = Table(title="Mentioned in", show_header=True, header_style="bold")
        table.add_column("Title")
        table.add_column("Source")
        table.add_column("Added")
        for article in details.articles:
            table.add_row(article.title, article.source or "-", (article.created_at or "")[:10])
        console.print(table)
