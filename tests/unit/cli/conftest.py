"""Fixtures for CLI tests: an isolated config and a populated store directory."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from pensive.cli.main import app

DOCS = [
    {
        "title": "Rust and WebAssembly",
        "url": "https://example.com/rust-wasm?utm_source=rss",
        "body": "Rust compiles to WebAssembly.",
        "source": "rss",
        "analysis": {
            "summary": {"sentence": "Rust targets the browser."},
            "entities": [
                {"name": "Rust", "type": "technology"},
                {"name": "WebAssembly", "type": "technology"},
            ],
            "relationships": [{"from": "Rust", "to": "WebAssembly", "type": "USES"}],
            "tags": ["systems"],
            "priority": "read",
        },
    },
    {
        "title": "Rust vs Go",
        "url": "https://example.com/rust-go",
        "body": "Rust and Go compared.",
        "source": "podcast",
        "analysis": {
            "summary": {"sentence": "Two languages."},
            "entities": [
                {"name": "Rust", "type": "technology"},
                {"name": "Go", "type": "technology"},
            ],
            "priority": "skim",
        },
    },
]


def _write_docs(path: Path, docs: list[dict] | None = None) -> Path:
    path.write_text(json.dumps(DOCS if docs is None else docs), encoding="utf-8")
    return path


@pytest.fixture
def write_docs():
    """Write producer documents (DOCS by default) to a JSON file."""
    return _write_docs


@pytest.fixture
def store_dir(isolated_config: Path) -> Path:
    return isolated_config / "store"


@pytest.fixture
def populated_store(store_dir: Path, isolated_config: Path) -> Path:
    """Store directory with DOCS already ingested."""
    docs = _write_docs(isolated_config / "docs.json")
    result = CliRunner().invoke(app, ["ingest", "--file", str(docs), "--store", str(store_dir)])
    assert result.exit_code == 0, result.output
    return store_dir
