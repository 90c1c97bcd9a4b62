"""Shared plumbing for CLI commands: config, store opening, wiring."""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from pensive.cli.errors import err_config, err_no_store, warn_persist_failed
from pensive.config import ConfigError, PensiveConfig, load_config
from pensive.db.connection import Database
from pensive.db.repository import ContentRepository
from pensive.db.store import IndexedStore
from pensive.graph.builder import ConceptBuilder

console = Console()


def load_cli_config() -> PensiveConfig:
    """Load the merged config or exit with an actionable message."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def database_for(store: Path | None, cfg: PensiveConfig) -> Database:
    """``--store`` flag wins over the configured store path."""
    return Database(store if store is not None else Path(cfg.store.path), key=cfg.store.key)


def open_existing(store: Path | None, cfg: PensiveConfig) -> IndexedStore:
    """Open a store that must already exist on disk."""
    db = database_for(store, cfg)
    if not db.exists():
        console.print(err_no_store(str(db.path)))
        raise typer.Exit(1)
    return db.open()


def build_repository(store: IndexedStore, cfg: PensiveConfig) -> ContentRepository:
    builder = ConceptBuilder(
        store,
        cooccurrence_strength=cfg.graph.cooccurrence_strength,
        explicit_strength=cfg.graph.explicit_strength,
        strength_increment=cfg.graph.strength_increment,
        max_cooccurrence_concepts=cfg.graph.max_cooccurrence_concepts,
    )
    return ContentRepository(store, builder, tracking_params=cfg.ingest.tracking_params)


def report_persist_error(store: IndexedStore) -> None:
    if store.last_persist_error:
        console.print(warn_persist_failed(store.last_persist_error))
