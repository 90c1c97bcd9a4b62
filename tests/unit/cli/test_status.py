"""Tests for pensive status and version output."""

from __future__ import annotations

import logging
from pathlib import Path

from typer.testing import CliRunner

from pensive.cli.main import app

runner = CliRunner()


# ---------------------------------------------------------------------------
# pensive --version
# ---------------------------------------------------------------------------


def test_version_flag_exits_zero() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("pensive ")


def test_version_command_shows_version() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "pensive" in result.output.lower()


def test_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("ingest", "graph", "trending", "status", "vacuum"):
        assert command in result.output


# ---------------------------------------------------------------------------
# pensive status
# ---------------------------------------------------------------------------


def test_status_no_store(store_dir: Path) -> None:
    result = runner.invoke(app, ["status", "--store", str(store_dir)])
    assert result.exit_code == 0
    assert "No store found" in result.output
    assert not store_dir.exists()


def test_status_shows_panels(populated_store: Path) -> None:
    result = runner.invoke(app, ["status", "--store", str(populated_store)])
    assert result.exit_code == 0, result.output
    for title in ("Store", "Tables", "Content", "Concepts"):
        assert title in result.output
    assert "Analysed: 2" in result.output
    assert "podcast 1" in result.output
    assert "Rust (2)" in result.output


def test_status_empty_store(isolated_config: Path, store_dir: Path, write_docs) -> None:
    bare = write_docs(isolated_config / "bare.json", [{"title": "Bare", "body": "text"}])
    runner.invoke(app, ["ingest", "--file", str(bare), "--store", str(store_dir)])

    result = runner.invoke(app, ["status", "--store", str(store_dir)])
    assert result.exit_code == 0, result.output
    assert "No concepts yet" in result.output


def test_verbose_flag_enables_debug_logging(populated_store: Path) -> None:
    root = logging.getLogger()
    saved_level, saved_handlers = root.level, root.handlers[:]
    try:
        result = runner.invoke(app, ["--verbose", "status", "--store", str(populated_store)])
        assert result.exit_code == 0, result.output
        assert root.level == logging.DEBUG
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
