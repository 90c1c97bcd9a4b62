"""Parsing of analysed-document payloads handed over by the analysis producer.

Accepted shape (one object, or a list of them)::

    {
      "title": "...", "url": "...", "body": "...", "source": "rss",
      "analysis": {
        "summary": {"sentence": "...", "paragraph": "...", "is_full_read": false},
        "entities": [{"name": "Rust", "type": "technology"}],
        "relationships": [{"from": "Rust", "to": "WebAssembly", "type": "USES"}],
        "tags": ["systems"],
        "priority": "read",
        "confidence": 0.9
      }
    }

Parsing is lenient about vocabulary (unknown entity types become ``concept``,
unknown relationship types become ``RELATES_TO``, camelCase keys and
``deep_dive`` are accepted) and strict about structure.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pensive.db.models import (
    ConceptType,
    EntityInput,
    Priority,
    RelationshipInput,
    RelationshipType,
    Summary,
)


class DocumentError(ValueError):
    """Raised when a producer payload is structurally invalid."""


@dataclass
class AnalysisInput:
    summary: Summary = field(default_factory=Summary)
    entities: list[EntityInput] = field(default_factory=list)
    relationships: list[RelationshipInput] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    priority: Priority = Priority.READ
    confidence: float | None = None


@dataclass
class DocumentInput:
    title: str
    body: str
    url: str = ""
    source: str = ""
    analysis: AnalysisInput | None = None


def load_documents(path: Path | str) -> list[DocumentInput]:
    """Read and parse a JSON payload file.

    Raises:
        DocumentError: If the file is not valid JSON or not a valid payload.
        OSError: If the file cannot be read.
    """
    text = Path(path).read_text(encoding="utf-8")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DocumentError(f"{path}: not valid JSON ({exc})") from exc
    return parse_documents(data)


def parse_documents(data: Any) -> list[DocumentInput]:
    """Parse one document object or a list of them."""
    items = data if isinstance(data, list) else [data]
    return [_parse_document(item, pos) for pos, item in enumerate(items)]


def _get(obj: dict[str, Any], snake: str, default: Any = None) -> Any:
    if snake in obj:
        return obj[snake]
    head, *rest = snake.split("_")
    camel = head + "".join(part.title() for part in rest)
    return obj.get(camel, default)


def _parse_document(obj: Any, pos: int) -> DocumentInput:
    if not isinstance(obj, dict):
        raise DocumentError(f"Document #{pos} must be an object")

    title = obj.get("title")
    body = obj.get("body", obj.get("content"))
    if not isinstance(title, str) or not title.strip():
        raise DocumentError(f"Document #{pos} is missing a title")
    if not isinstance(body, str) or not body.strip():
        raise DocumentError(f"Document #{pos} ({title!r}) is missing a body")

    analysis = obj.get("analysis")
    return DocumentInput(
        title=title.strip(),
        body=body,
        url=str(obj.get("url") or ""),
        source=str(obj.get("source") or ""),
        analysis=_parse_analysis(analysis, pos) if analysis is not None else None,
    )


def _parse_analysis(obj: Any, pos: int) -> AnalysisInput:
    if not isinstance(obj, dict):
        raise DocumentError(f"Document #{pos}: analysis must be an object")

    summary = obj.get("summary") or {}
    if isinstance(summary, str):
        summary = {"sentence": summary}
    if not isinstance(summary, dict):
        raise DocumentError(f"Document #{pos}: summary must be an object or a string")

    try:
        priority = Priority.parse(obj.get("priority") or Priority.READ)
    except ValueError as exc:
        raise DocumentError(f"Document #{pos}: {exc}") from exc

    confidence = obj.get("confidence")
    if confidence is not None:
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise DocumentError(f"Document #{pos}: confidence must be a number")
        confidence = float(confidence)

    return AnalysisInput(
        summary=Summary(
            sentence=str(summary.get("sentence") or ""),
            paragraph=str(summary.get("paragraph") or ""),
            is_full_read=bool(_get(summary, "is_full_read", False)),
        ),
        entities=[_parse_entity(e, pos) for e in _list(obj, "entities", pos)],
        relationships=[_parse_relationship(r, pos) for r in _list(obj, "relationships", pos)],
        tags=[str(t) for t in _list(obj, "tags", pos) if str(t).strip()],
        priority=priority,
        confidence=confidence,
    )


def _list(obj: dict[str, Any], key: str, pos: int) -> list[Any]:
    value = obj.get(key) or []
    if not isinstance(value, list):
        raise DocumentError(f"Document #{pos}: '{key}' must be a list")
    return value


def _parse_entity(obj: Any, pos: int) -> EntityInput:
    if isinstance(obj, str):
        return EntityInput(name=obj)
    if not isinstance(obj, dict) or not isinstance(obj.get("name"), str):
        raise DocumentError(f"Document #{pos}: each entity needs a string 'name'")
    return EntityInput(name=obj["name"], type=ConceptType.coerce(obj.get("type")))


def _parse_relationship(obj: Any, pos: int) -> RelationshipInput:
    if not isinstance(obj, dict):
        raise DocumentError(f"Document #{pos}: each relationship must be an object")
    source = obj.get("from", obj.get("source"))
    target = obj.get("to", obj.get("target"))
    if not isinstance(source, str) or not isinstance(target, str):
        raise DocumentError(f"Document #{pos}: relationships need string 'from' and 'to'")
    return RelationshipInput(
        source=source, target=target, type=RelationshipType.coerce(obj.get("type"))
    )
