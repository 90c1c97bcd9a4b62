"""Content repository: deduplicated ingest, analysis attachment, cascading delete.

Single interface for content, analysis, maintenance and backup. Concept and
edge bookkeeping is delegated to ``pensive.graph.builder.ConceptBuilder``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pensive.db.models import (
    Analysis,
    Content,
    EntityInput,
    Priority,
    RelationshipInput,
    Summary,
    analysis_from_record,
    content_from_record,
)
from pensive.db.schema import ANALYSIS, CONCEPT_LINKS, CONCEPTS, CONTENT, RELATIONSHIPS
from pensive.db.store import IndexedStore
from pensive.graph.builder import ConceptBuilder
from pensive.graph.query import Timeframe, parse_timestamp
from pensive.ingest.urls import TRACKING_PARAMS, content_hash, normalize_url

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE = 0.8


class PreconditionError(Exception):
    """Raised when an operation's preconditions on existing data are not met."""


class ContentNotFoundError(PreconditionError):
    def __init__(self, content_id: str) -> None:
        super().__init__(f"Content {content_id!r} does not exist")
        self.content_id = content_id


class AnalysisExistsError(PreconditionError):
    def __init__(self, content_id: str) -> None:
        super().__init__(f"Content {content_id!r} already has an analysis")
        self.content_id = content_id


@dataclass
class Page:
    items: list[tuple[Content, Analysis | None]]
    total: int
    has_more: bool


@dataclass
class ContentStats:
    total_content: int = 0
    total_analyses: int = 0
    total_concepts: int = 0
    total_relationships: int = 0
    by_source: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)


@dataclass
class VacuumReport:
    relationships_removed: int = 0
    analyses_removed: int = 0
    links_removed: int = 0
    concepts_recounted: int = 0

    @property
    def total_changes(self) -> int:
        return (
            self.relationships_removed
            + self.analyses_removed
            + self.links_removed
            + self.concepts_recounted
        )


class ContentRepository:
    """Data access layer for content and its analysis.

    Wraps a shared ``IndexedStore`` owned by the caller.
    """

    def __init__(
        self,
        store: IndexedStore,
        builder: ConceptBuilder | None = None,
        tracking_params: Iterable[str] = TRACKING_PARAMS,
    ) -> None:
        """Initialise with an open store.

        Args:
            store: The shared store.
            builder: Concept builder writing into the same store (a default
                one is created if omitted).
            tracking_params: Query parameters stripped by URL normalisation.
        """
        self.store = store
        self.builder = builder or ConceptBuilder(store)
        self.tracking_params = tuple(tracking_params)

    def normalize_url(self, url: str) -> str:
        return normalize_url(url, self.tracking_params)

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def create_content(self, title: str, url: str, body: str, source: str) -> str:
        """Insert a content record unless an equivalent one already exists.

        Duplicates are detected by body hash first, then by normalised URL.
        A duplicate only has its ``updated_at`` refreshed.

        Returns:
            The id of the new or existing content record.
        """
        digest = content_hash(body)
        normalized = self.normalize_url(url) if url else ""

        with self.store.batch():
            existing = self.find_by_hash(digest)
            if existing is None and normalized:
                existing = self.find_by_url(normalized)
            if existing is not None:
                logger.debug("Duplicate content %r -> %s", title, existing.id)
                self.store.update(CONTENT, existing.id, {})
                return existing.id

            return self.store.insert(
                CONTENT,
                {
                    "title": title,
                    "url": normalized,
                    "body": body,
                    "source": source,
                    "content_hash": digest,
                },
            )

    def get_content(self, content_id: str) -> Content | None:
        rec = self.store.find_by_id(CONTENT, content_id)
        return content_from_record(rec) if rec else None

    def find_by_hash(self, digest: str) -> Content | None:
        hits = self.store.find_by_index(CONTENT, "content_hash", digest)
        return content_from_record(hits[0]) if hits else None

    def find_by_url(self, url: str) -> Content | None:
        """Content whose stored URL equals *url* after normalisation."""
        normalized = self.normalize_url(url)
        if not normalized:
            return None
        hits = self.store.find_by_index(CONTENT, "url", normalized)
        return content_from_record(hits[0]) if hits else None

    def find_by_source(self, source: str) -> list[Content]:
        return [content_from_record(r) for r in self.store.find_by_index(CONTENT, "source", source)]

    def find_recent(self, limit: int = 10) -> list[Content]:
        rows = self.store.find_all(CONTENT, order_by="created_at", descending=True, limit=limit)
        return [content_from_record(r) for r in rows]

    def find_by_timeframe(
        self, timeframe: Timeframe | str, now: datetime | None = None
    ) -> list[Content]:
        """Content created inside the window of *timeframe* ending at *now*, newest first."""
        start, end = Timeframe(timeframe).window(now or self.store.now())
        selected = []
        for rec in self.store.find_all(CONTENT, order_by="created_at", descending=True):
            created = parse_timestamp(rec.get("created_at"))
            if created is not None and start <= created <= end:
                selected.append(content_from_record(rec))
        return selected

    def search_content(self, query: str) -> list[Content]:
        query = query.strip()
        if not query:
            return []
        return [
            content_from_record(r)
            for r in self.store.search(CONTENT, query, ["title", "body", "url"])
        ]

    def delete_content(self, content_id: str) -> bool:
        """Delete content and everything that originated from it.

        Removes the Analysis, every Relationship whose ``content_id`` is
        *content_id*, and the content's concept links. Concepts are kept and
        their frequency is left as is (``vacuum`` recounts it).

        Returns:
            True if the content existed.
        """
        with self.store.batch():
            if self.store.find_by_id(CONTENT, content_id) is None:
                return False
            for rec in self.store.find_by_index(ANALYSIS, "content_id", content_id):
                self.store.delete(ANALYSIS, rec["id"])
            for rec in self.store.find_by_index(RELATIONSHIPS, "content_id", content_id):
                self.store.delete(RELATIONSHIPS, rec["id"])
            for rec in self.store.find_by_index(CONCEPT_LINKS, "content_id", content_id):
                self.store.delete(CONCEPT_LINKS, rec["id"])
            self.store.delete(CONTENT, content_id)
        logger.info("Deleted content %s", content_id)
        return True

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    def create_analysis(
        self,
        content_id: str,
        summary: Summary,
        entities: Iterable[EntityInput] = (),
        relationships: Iterable[RelationshipInput] = (),
        tags: Iterable[str] = (),
        priority: Priority | str = Priority.READ,
        confidence: float | None = None,
    ) -> str:
        """Attach the analysis of a content record and grow the concept graph.

        Args:
            content_id: Existing content without an analysis.
            summary: One-sentence and one-paragraph summaries.
            entities: Typed entities mentioned by the content.
            relationships: Explicit relationships between named concepts.
            tags: Free-form tags.
            priority: ``skim``, ``read`` or ``deep-dive``.
            confidence: 0..1 (clamped); defaults to 0.8.

        Returns:
            The id of the new Analysis record.

        Raises:
            ContentNotFoundError: If *content_id* does not exist.
            AnalysisExistsError: If the content already has an analysis.
            ValueError: If *priority* is unknown.
        """
        priority = Priority.parse(priority)
        if confidence is None:
            confidence = DEFAULT_CONFIDENCE
        confidence = max(0.0, min(1.0, float(confidence)))
        tags = [t for t in tags if t and t.strip()]

        with self.store.batch():
            if self.store.find_by_id(CONTENT, content_id) is None:
                raise ContentNotFoundError(content_id)
            if self.store.find_by_index(ANALYSIS, "content_id", content_id):
                raise AnalysisExistsError(content_id)

            graph = self.builder.ingest_document(content_id, entities, tags, relationships)
            return self.store.insert(
                ANALYSIS,
                {
                    "content_id": content_id,
                    "summary": summary.to_record(),
                    "entities": graph.entities,
                    "relationships": graph.relationships,
                    "tags": tags,
                    "concept_ids": list(graph.concept_ids.values()),
                    "priority": priority.value,
                    "confidence": confidence,
                },
            )

    def get_analysis_for_content(self, content_id: str) -> Analysis | None:
        hits = self.store.find_by_index(ANALYSIS, "content_id", content_id)
        return analysis_from_record(hits[0]) if hits else None

    def get_content_with_analysis(self, content_id: str) -> tuple[Content, Analysis | None] | None:
        content = self.get_content(content_id)
        if content is None:
            return None
        return content, self.get_analysis_for_content(content_id)

    def list_with_analysis(
        self,
        limit: int = 20,
        offset: int = 0,
        source: str | None = None,
        priority: Priority | str | None = None,
    ) -> Page:
        """Newest-first page of content paired with its analysis.

        Args:
            limit: Page size.
            offset: Number of items to skip.
            source: Only content from this source.
            priority: Only content whose analysis has this priority.
        """
        where: dict[str, Any] = {"source": source} if source is not None else {}
        rows = self.store.join(
            CONTENT, ANALYSIS, "id", "content_id",
            where=where or None, order_by="created_at", descending=True,
        )
        if priority is not None:
            wanted = Priority.parse(priority).value
            rows = [r for r in rows if r["joined"] and r["joined"].get("priority") == wanted]

        window = rows[offset : offset + limit]
        items = [
            (
                content_from_record(r),
                analysis_from_record(r["joined"]) if r["joined"] else None,
            )
            for r in window
        ]
        return Page(items=items, total=len(rows), has_more=offset + len(window) < len(rows))

    # ------------------------------------------------------------------
    # Statistics & maintenance
    # ------------------------------------------------------------------

    def get_stats(self) -> ContentStats:
        by_source = {
            str(source): len(rows) for source, rows in self.store.group_by(CONTENT, "source").items()
        }
        by_priority = {
            str(priority): len(rows)
            for priority, rows in self.store.group_by(ANALYSIS, "priority").items()
        }
        return ContentStats(
            total_content=self.store.count(CONTENT),
            total_analyses=self.store.count(ANALYSIS),
            total_concepts=self.store.count(CONCEPTS),
            total_relationships=self.store.count(RELATIONSHIPS),
            by_source=by_source,
            by_priority=by_priority,
        )

    def vacuum(self) -> VacuumReport:
        """Prune dangling records and recount concept frequencies from links.

        Removes relationships with a missing endpoint, analyses whose content
        is gone, and concept links whose concept or content is gone. Each
        concept's frequency is then reset to the number of documents linked
        to it.
        """
        report = VacuumReport()
        with self.store.batch():
            for edge in self.store.find_all(RELATIONSHIPS):
                if (
                    self.store.find_by_id(CONCEPTS, edge["from_concept_id"]) is None
                    or self.store.find_by_id(CONCEPTS, edge["to_concept_id"]) is None
                ):
                    self.store.delete(RELATIONSHIPS, edge["id"])
                    report.relationships_removed += 1

            for analysis in self.store.find_all(ANALYSIS):
                if self.store.find_by_id(CONTENT, analysis["content_id"]) is None:
                    self.store.delete(ANALYSIS, analysis["id"])
                    report.analyses_removed += 1

            for link in self.store.find_all(CONCEPT_LINKS):
                if (
                    self.store.find_by_id(CONCEPTS, link["concept_id"]) is None
                    or self.store.find_by_id(CONTENT, link["content_id"]) is None
                ):
                    self.store.delete(CONCEPT_LINKS, link["id"])
                    report.links_removed += 1

            for concept in self.store.find_all(CONCEPTS):
                linked = len(self.builder.get_content_ids_for_concept(concept["id"]))
                if int(concept.get("frequency", 0)) != linked:
                    self.store.update(CONCEPTS, concept["id"], {"frequency": linked})
                    report.concepts_recounted += 1

        logger.info(
            "Vacuum: %d relationships, %d analyses, %d links removed; %d concepts recounted",
            report.relationships_removed,
            report.analyses_removed,
            report.links_removed,
            report.concepts_recounted,
        )
        return report

    def backup(self) -> str:
        return self.store.backup()

    def restore(self, blob: str) -> dict[str, int]:
        return self.store.restore(blob)
