"""Domain models for the Pensive record store."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ConceptType(str, Enum):
    CONCEPT = "concept"
    PERSON = "person"
    ORGANIZATION = "organization"
    TECHNOLOGY = "technology"
    METHODOLOGY = "methodology"

    @classmethod
    def coerce(cls, value: str | ConceptType | None) -> ConceptType:
        """Map a producer-supplied type onto a known member (unknown → CONCEPT)."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.CONCEPT


class RelationshipType(str, Enum):
    INCLUDES = "INCLUDES"
    RELATES_TO = "RELATES_TO"
    IMPLEMENTS = "IMPLEMENTS"
    USES = "USES"
    COMPETES_WITH = "COMPETES_WITH"
    CO_OCCURS = "CO_OCCURS"

    @classmethod
    def coerce(cls, value: str | RelationshipType | None) -> RelationshipType:
        """Map a producer-supplied type onto a known member (unknown → RELATES_TO)."""
        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().upper().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError:
            return cls.RELATES_TO


class Priority(str, Enum):
    SKIM = "skim"
    READ = "read"
    DEEP_DIVE = "deep-dive"

    @classmethod
    def parse(cls, value: str | Priority) -> Priority:
        """Parse a priority, accepting ``deep_dive`` as ``deep-dive``.

        Raises:
            ValueError: If *value* is not a known priority.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower().replace("_", "-"))
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ValueError(f"Unknown priority {value!r} (expected one of: {allowed})") from None


@dataclass
class Summary:
    sentence: str = ""
    paragraph: str = ""
    is_full_read: bool = False

    def to_record(self) -> dict[str, Any]:
        return {
            "sentence": self.sentence,
            "paragraph": self.paragraph,
            "is_full_read": self.is_full_read,
        }


@dataclass
class EntityInput:
    """An entity as supplied by the analysis producer."""

    name: str
    type: ConceptType = ConceptType.CONCEPT


@dataclass
class RelationshipInput:
    """An explicit relationship as supplied by the analysis producer."""

    source: str
    target: str
    type: RelationshipType = RelationshipType.RELATES_TO


@dataclass
class Content:
    id: str
    title: str
    url: str
    body: str
    source: str
    content_hash: str
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Analysis:
    id: str
    content_id: str
    summary: Summary
    priority: Priority
    confidence: float
    entities: list[dict[str, Any]] = field(default_factory=list)
    relationships: list[dict[str, Any]] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    concept_ids: list[str] = field(default_factory=list)
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Concept:
    id: str
    name: str
    type: ConceptType
    frequency: int = 0
    description: str = ""
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def name_key(self) -> str:
        return concept_key(self.name)


@dataclass
class Relationship:
    id: str
    from_concept_id: str
    to_concept_id: str
    type: RelationshipType
    strength: float
    content_id: str
    created_at: str | None = None
    updated_at: str | None = None


def concept_key(name: str) -> str:
    """Matching key for concept names: trimmed, inner whitespace collapsed, case-folded."""
    return " ".join(name.split()).casefold()


def content_from_record(rec: dict[str, Any]) -> Content:
    return Content(
        id=rec["id"],
        title=rec.get("title", ""),
        url=rec.get("url", ""),
        body=rec.get("body", ""),
        source=rec.get("source", ""),
        content_hash=rec.get("content_hash", ""),
        created_at=rec.get("created_at"),
        updated_at=rec.get("updated_at"),
    )


def analysis_from_record(rec: dict[str, Any]) -> Analysis:
    summary = rec.get("summary") or {}
    return Analysis(
        id=rec["id"],
        content_id=rec["content_id"],
        summary=Summary(
            sentence=summary.get("sentence", ""),
            paragraph=summary.get("paragraph", ""),
            is_full_read=bool(summary.get("is_full_read", False)),
        ),
        priority=Priority.parse(rec.get("priority", Priority.READ.value)),
        confidence=float(rec.get("confidence", 0.0)),
        entities=list(rec.get("entities", [])),
        relationships=list(rec.get("relationships", [])),
        tags=list(rec.get("tags", [])),
        concept_ids=list(rec.get("concept_ids", [])),
        created_at=rec.get("created_at"),
        updated_at=rec.get("updated_at"),
    )


def concept_from_record(rec: dict[str, Any]) -> Concept:
    return Concept(
        id=rec["id"],
        name=rec.get("name", ""),
        type=ConceptType.coerce(rec.get("type")),
        frequency=int(rec.get("frequency", 0)),
        description=rec.get("description") or "",
        created_at=rec.get("created_at"),
        updated_at=rec.get("updated_at"),
    )


def relationship_from_record(rec: dict[str, Any]) -> Relationship:
    return Relationship(
        id=rec["id"],
        from_concept_id=rec["from_concept_id"],
        to_concept_id=rec["to_concept_id"],
        type=RelationshipType.coerce(rec.get("type")),
        strength=float(rec.get("strength", 0.0)),
        content_id=rec.get("content_id", ""),
        created_at=rec.get("created_at"),
        updated_at=rec.get("updated_at"),
    )
