"""Tests for analysis-producer payload parsing."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from pensive.db.models import ConceptType, Priority, RelationshipType
from pensive.ingest.document import DocumentError, load_documents, parse_documents


def _payload(**overrides) -> dict:
    doc = {
        "title": "Rust 2.0",
        "url": "https://example.com/rust",
        "body": "Rust news.",
        "source": "rss",
        "analysis": {
            "summary": {"sentence": "Rust.", "paragraph": "Rust news.", "isFullRead": True},
            "entities": [{"name": "Rust", "type": "technology"}, {"name": "Ferris", "type": "mascot"}],
            "relationships": [{"from": "Rust", "to": "WebAssembly", "type": "competes-with"}],
            "tags": ["systems", ""],
            "priority": "deep_dive",
            "confidence": 0.9,
        },
    }
    doc.update(overrides)
    return doc


def test_parse_single_document():
    (doc,) = parse_documents(_payload())
    assert doc.title == "Rust 2.0"
    assert doc.source == "rss"
    a = doc.analysis
    assert a.summary.is_full_read is True
    assert [(e.name, e.type) for e in a.entities] == [
        ("Rust", ConceptType.TECHNOLOGY),
        ("Ferris", ConceptType.CONCEPT),
    ]
    assert a.relationships[0].type is RelationshipType.COMPETES_WITH
    assert a.tags == ["systems"]
    assert a.priority is Priority.DEEP_DIVE
    assert a.confidence == 0.9


def test_parse_list_and_defaults():
    docs = parse_documents([_payload(), {"title": "Bare", "body": "text"}])
    assert len(docs) == 2
    assert docs[1].analysis is None
    assert docs[1].url == ""


def test_unknown_relationship_type_becomes_relates_to():
    payload = _payload()
    payload["analysis"]["relationships"] = [{"from": "a", "to": "b", "type": "LOVES"}]
    (doc,) = parse_documents(payload)
    assert doc.analysis.relationships[0].type is RelationshipType.RELATES_TO


def test_missing_confidence_and_priority():
    payload = _payload()
    del payload["analysis"]["confidence"]
    del payload["analysis"]["priority"]
    (doc,) = parse_documents(payload)
    assert doc.analysis.confidence is None
    assert doc.analysis.priority is Priority.READ


@pytest.mark.parametrize(
    "payload",
    [
        "just a string",
        {"body": "no title"},
        {"title": "no body"},
        {"title": "   ", "body": "x"},
        _payload(analysis="nope"),
        _payload(analysis={"priority": "urgent"}),
        _payload(analysis={"entities": "Rust"}),
        _payload(analysis={"entities": [{"type": "person"}]}),
        _payload(analysis={"relationships": [{"from": "a"}]}),
        _payload(analysis={"confidence": "high"}),
    ],
)
def test_invalid_payloads(payload):
    with pytest.raises(DocumentError):
        parse_documents(payload)


def test_document_error_is_value_error():
    assert issubclass(DocumentError, ValueError)


def test_load_documents(tmp_path: Path):
    path = tmp_path / "docs.json"
    path.write_text(json.dumps([_payload()]), encoding="utf-8")
    assert load_documents(path)[0].title == "Rust 2.0"


def test_load_documents_bad_json(tmp_path: Path):
    path = tmp_path / "docs.json"
    path.write_text("{oops", encoding="utf-8")
    with pytest.raises(DocumentError):
        load_documents(path)
