"""Pensive rich error messages: actionable feedback.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from pensive.cli.errors import err_no_store
    console.print(err_no_store(".pensive/pensive-database.json"))
    raise typer.Exit(1)
"""

from __future__ import annotations


def err_no_store(path: str) -> str:
    """No store blob at the configured location."""
    return (
        f"[red]Error:[/] No store found at '{path}'.\n"
        "  Run:  pensive ingest --file <analysed.json>\n"
        "  or point to an existing store with --store <dir>."
    )


def err_config(message: str) -> str:
    """pensive.yaml or ~/.pensive/config.yaml is invalid."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {message}\n"
        "  Fix pensive.yaml (or ~/.pensive/config.yaml) and retry."
    )


def err_invalid_document(path: str, message: str) -> str:
    """Producer payload could not be parsed."""
    return (
        f"[red]Error:[/] Cannot ingest '{path}': {message}\n"
        "  Each document needs a non-empty 'title' and 'body'; see  pensive ingest --help"
    )


def err_file_not_found(path: str) -> str:
    return (
        f"[red]Error:[/] File not found: '{path}'\n"
        "  Check the path and retry."
    )


def err_content_not_found(content_id: str) -> str:
    """Content id is not in the store."""
    return (
        f"[yellow]Content not found:[/] '{content_id}' is not in the store.\n"
        "  Run:  pensive status  to see what has been ingested."
    )


def err_concept_not_found(ref: str) -> str:
    """Concept id or name is not in the store."""
    return (
        f"[yellow]Concept not found:[/] '{ref}'.\n"
        "  Run:  pensive graph --search <text>  to find concept ids."
    )


def err_concept_ref_required() -> str:
    return (
        "[red]Error:[/] Specify a concept with --id or --name.\n"
        "  Example:  pensive concept --name Rust"
    )


def err_invalid_timeframe(value: str) -> str:
    return (
        f"[red]Error:[/] Unknown timeframe '{value}'.\n"
        "  Use one of: weekly, monthly, quarterly"
    )


def err_restore_failed(path: str, message: str) -> str:
    """Backup blob was rejected; nothing was changed."""
    return (
        f"[red]Error:[/] Cannot restore from '{path}': {message}\n"
        "  The store was left unchanged. Use a file written by  pensive backup."
    )


def err_output_exists(path: str) -> str:
    return (
        f"[red]Error:[/] Output file already exists: '{path}'\n"
        "  Choose another --output path or pass --yes to overwrite."
    )


def warn_persist_failed(message: str) -> str:
    """Changes were applied in memory but could not be written."""
    return (
        f"[yellow]⚠[/] Changes could not be saved to disk: {message}\n"
        "  Check permissions and free space of the store directory, then retry."
    )


def warn_vacuum_suggested() -> str:
    """Shown after pensive remove: frequencies are recounted only by vacuum."""
    return (
        "[yellow]⚠[/] Concept frequencies still count the removed content.\n"
        "  Run:  pensive vacuum  to recount them."
    )
