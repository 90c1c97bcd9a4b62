"""pensive ingest: load analysed documents into the store.

Each file holds one document object or a list of them, as written by the
analysis producer::

  pensive ingest --file today.json
  pensive ingest -f a.json -f b.json --dry-run

Content is deduplicated by body hash, then by normalised URL. A document
whose content already has an analysis is reported as a duplicate and left
untouched.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from pensive.cli.common import (
    build_repository,
    console,
    database_for,
    load_cli_config,
    report_persist_error,
)
from pensive.cli.errors import err_file_not_found, err_invalid_document
from pensive.db.repository import ContentRepository
from pensive.ingest.document import DocumentError, DocumentInput, load_documents
from pensive.ingest.urls import content_hash


def ingest_cmd(
    file: Annotated[
        list[Path] | None,
        typer.Option("--file", "-f", help="Analysed-document JSON file (repeatable)."),
    ] = None,
    store: Annotated[
        Path | None,
        typer.Option("--store", help="Store directory (default: store.path from config)."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show what would be ingested without writing."),
    ] = False,
) -> None:
    """Ingest analysed documents into the Pensive store."""
    files = file or []
    if not files:
        console.print("[red]Error:[/] No --file specified. Use --file PATH.")
        raise typer.Exit(1)

    cfg = load_cli_config()
    db = database_for(store, cfg)
    repo = build_repository(db.open(), cfg)

    failed = False
    for path in files:
        console.print(f"\n[bold]→ {path}[/]")
        if not path.is_file():
            console.print(err_file_not_found(str(path)))
            failed = True
            continue
        try:
            documents = load_documents(path)
        except DocumentError as exc:
            console.print(err_invalid_document(str(path), str(exc)))
            failed = True
            continue

        if dry_run:
            for doc in documents:
                _preview(doc, repo)
            continue

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Ingesting…", total=len(documents))
            results = []
            for doc in documents:
                results.append(_ingest(doc, repo))
                progress.advance(task)

        created = sum(1 for status, _ in results if status == "new")
        for status, doc in results:
            if status == "new":
                console.print(f"  [green]✓[/] {doc.title}")
            elif status == "analysed":
                console.print(f"  [green]✓[/] {doc.title} [dim](analysis added to existing content)[/]")
            else:
                console.print(f"  [dim]= {doc.title} (duplicate, skipped)[/]")
        console.print(f"  {created} new, {len(results) - created} already known")

    if dry_run:
        console.print("\n[dim]Dry run: nothing written.[/]")
    else:
        report_persist_error(repo.store)

    if failed:
        raise typer.Exit(1)


def _ingest(doc: DocumentInput, repo: ContentRepository) -> tuple[str, DocumentInput]:
    """Store one document. Returns ``(status, doc)`` with status new/analysed/duplicate."""
    existing = repo.find_by_hash(content_hash(doc.body)) or (
        repo.find_by_url(doc.url) if doc.url else None
    )
    content_id = repo.create_content(doc.title, doc.url, doc.body, doc.source)

    if doc.analysis is None or repo.get_analysis_for_content(content_id) is not None:
        return ("duplicate" if existing else "new"), doc

    a = doc.analysis
    repo.create_analysis(
        content_id,
        summary=a.summary,
        entities=a.entities,
        relationships=a.relationships,
        tags=a.tags,
        priority=a.priority,
        confidence=a.confidence,
    )
    return ("analysed" if existing else "new"), doc


def _preview(doc: DocumentInput, repo: ContentRepository) -> None:
    existing = repo.find_by_hash(content_hash(doc.body)) or (
        repo.find_by_url(doc.url) if doc.url else None
    )
    if existing is not None:
        console.print(f"  [dim]= {doc.title} (duplicate of {existing.id})[/]")
        return
    n_entities = len(doc.analysis.entities) if doc.analysis else 0
    n_tags = len(doc.analysis.tags) if doc.analysis else 0
    console.print(
        f"  [dim]\\[dry-run][/] {doc.title}  "
        f"({n_entities} entities, {n_tags} tags, source: {doc.source or '-'})"
    )
