"""Read-only views over the concept graph.

Nothing here mutates the store. Every query degrades to an empty result for
an empty store or an unknown id.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from dateutil.parser import isoparse
from dateutil.relativedelta import relativedelta

from pensive.db.models import (
    Concept,
    Content,
    concept_from_record,
    content_from_record,
)
from pensive.db.schema import CONCEPT_LINKS, CONCEPTS, CONTENT, RELATIONSHIPS
from pensive.db.store import IndexedStore

MIN_DENSITY = 10.0
MAX_DENSITY = 100.0


class Timeframe(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"

    @property
    def span(self) -> relativedelta:
        if self is Timeframe.WEEKLY:
            return relativedelta(days=7)
        if self is Timeframe.MONTHLY:
            return relativedelta(months=1)
        return relativedelta(months=3)

    def window(self, now: datetime) -> tuple[datetime, datetime]:
        """``(start, end)`` of the window ending at *now*."""
        return now - self.span, now


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass
class GraphNode:
    id: str
    label: str
    type: str
    density: float
    frequency: int
    description: str = ""


@dataclass
class GraphEdge:
    id: str
    source: str
    target: str
    type: str
    weight: float


@dataclass
class ConceptGraph:
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    min_frequency: int = 1
    max_frequency: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [asdict(n) for n in self.nodes],
            "edges": [asdict(e) for e in self.edges],
        }


@dataclass
class TrendingConcept:
    concept: Concept
    growth: float
    recent_mentions: int
    prior_mentions: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.concept.id,
            "name": self.concept.name,
            "type": self.concept.type.value,
            "frequency": self.concept.frequency,
            "growth": round(self.growth, 4),
            "recent_mentions": self.recent_mentions,
            "prior_mentions": self.prior_mentions,
        }


@dataclass
class RelationshipStats:
    incoming: int = 0
    outgoing: int = 0
    by_type: dict[str, int] = field(default_factory=dict)


@dataclass
class ConceptDetails:
    concept: Concept
    related: list[Concept]
    articles: list[Content]
    relationship_stats: RelationshipStats


@dataclass
class ConceptStats:
    total: int
    by_type: dict[str, int]
    top: list[Concept]
    average_frequency: float


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------


def fuzzy_match(text: str, query: str) -> bool:
    """Lenient ordered-subsequence match of *query* against the words of *text*.

    A word matches when scanning it left to right finds at least 80 % of the
    query's characters in order. Queries shorter than 3 characters never match.
    """
    query = query.lower()
    if len(query) < 3:
        return False
    required = len(query) * 4 // 5
    for word in text.lower().split():
        matched = 0
        for char in word:
            if matched < len(query) and char == query[matched]:
                matched += 1
        if matched >= required:
            return True
    return False


def density(frequency: int, max_frequency: int) -> float:
    """Display size of a node, 10..100, relative to the most frequent concept."""
    ratio = frequency / max(1, max_frequency) * 100
    return max(MIN_DENSITY, min(MAX_DENSITY, ratio))


def _matches_query(concept: dict[str, Any], query: str) -> bool:
    name = str(concept.get("name") or "")
    description = str(concept.get("description") or "")
    ctype = str(concept.get("type") or "")
    if any(query in value.lower() for value in (name, description, ctype)):
        return True
    return fuzzy_match(name, query) or fuzzy_match(description, query)


def parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = isoparse(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class GraphQueryEngine:
    """Graph, search, trending and statistics queries over an ``IndexedStore``."""

    def __init__(self, store: IndexedStore) -> None:
        self.store = store

    def get_concept_graph(self, abstraction_level: float = 0, search_query: str = "") -> ConceptGraph:
        """Build the filtered graph shown to the user.

        Args:
            abstraction_level: 0..100 (clamped). Concepts below
                ``max(1, ceil(level / 100 * max_frequency))`` are dropped, so a
                higher level keeps fewer, more dominant concepts.
            search_query: Optional filter on name, description or type
                (substring) and on name or description (fuzzy).

        Returns:
            ConceptGraph whose edges only join surviving nodes. Nodes are
            sorted by frequency (highest first), then label.
        """
        concepts = self.store.find_all(CONCEPTS)
        if not concepts:
            return ConceptGraph()

        level = max(0.0, min(100.0, float(abstraction_level)))
        max_frequency = max(int(c.get("frequency", 0)) for c in concepts)
        min_frequency = max(1, math.ceil(level * max_frequency / 100))

        kept = [c for c in concepts if int(c.get("frequency", 0)) >= min_frequency]
        query = search_query.strip().lower()
        if query:
            kept = [c for c in kept if _matches_query(c, query)]

        nodes = [
            GraphNode(
                id=c["id"],
                label=c.get("name", ""),
                type=c.get("type", "concept"),
                density=density(int(c.get("frequency", 0)), max_frequency),
                frequency=int(c.get("frequency", 0)),
                description=c.get("description") or "",
            )
            for c in kept
        ]
        nodes.sort(key=lambda n: (-n.frequency, n.label.lower(), n.id))

        kept_ids = {n.id for n in nodes}
        edges = [
            GraphEdge(
                id=e["id"],
                source=e["from_concept_id"],
                target=e["to_concept_id"],
                type=e.get("type", ""),
                weight=float(e.get("strength", 0.0)),
            )
            for e in self.store.find_all(RELATIONSHIPS)
            if e["from_concept_id"] in kept_ids and e["to_concept_id"] in kept_ids
        ]
        return ConceptGraph(
            nodes=nodes, edges=edges, min_frequency=min_frequency, max_frequency=max_frequency
        )

    def search_concepts(self, query: str, limit: int | None = None) -> list[Concept]:
        query = query.strip().lower()
        if not query:
            return []
        hits = [c for c in self.store.find_all(CONCEPTS) if _matches_query(c, query)]
        hits.sort(key=lambda c: (-int(c.get("frequency", 0)), str(c.get("name", "")).lower()))
        return [concept_from_record(c) for c in hits[:limit]]

    def get_related_concepts(self, concept_id: str, limit: int = 10) -> list[Concept]:
        """Neighbours of *concept_id* in either direction, most frequent first."""
        neighbour_ids: dict[str, None] = {}
        for edge in self.store.find_by_index(RELATIONSHIPS, "from_concept_id", concept_id):
            neighbour_ids[edge["to_concept_id"]] = None
        for edge in self.store.find_by_index(RELATIONSHIPS, "to_concept_id", concept_id):
            neighbour_ids[edge["from_concept_id"]] = None
        neighbour_ids.pop(concept_id, None)

        related = [
            rec
            for rec in (self.store.find_by_id(CONCEPTS, cid) for cid in neighbour_ids)
            if rec is not None
        ]
        related.sort(key=lambda c: (-int(c.get("frequency", 0)), str(c.get("name", "")).lower()))
        return [concept_from_record(c) for c in related[:limit]]

    def get_concept_details(self, concept_id: str) -> ConceptDetails | None:
        rec = self.store.find_by_id(CONCEPTS, concept_id)
        if rec is None:
            return None

        outgoing = self.store.find_by_index(RELATIONSHIPS, "from_concept_id", concept_id)
        incoming = self.store.find_by_index(RELATIONSHIPS, "to_concept_id", concept_id)
        by_type: dict[str, int] = {}
        for edge in outgoing + incoming:
            by_type[edge.get("type", "")] = by_type.get(edge.get("type", ""), 0) + 1

        content_ids = dict.fromkeys(
            link["content_id"]
            for link in self.store.find_by_index(CONCEPT_LINKS, "concept_id", concept_id)
        )
        articles = [
            content_from_record(c)
            for c in (self.store.find_by_id(CONTENT, cid) for cid in content_ids)
            if c is not None
        ]
        articles.sort(key=lambda c: c.created_at or "", reverse=True)

        return ConceptDetails(
            concept=concept_from_record(rec),
            related=self.get_related_concepts(concept_id),
            articles=articles,
            relationship_stats=RelationshipStats(
                incoming=len(incoming), outgoing=len(outgoing), by_type=by_type
            ),
        )

    def get_concept_stats(self, top: int = 10) -> ConceptStats:
        concepts = self.store.find_all(CONCEPTS, order_by="frequency", descending=True)
        by_type: dict[str, int] = {}
        for c in concepts:
            by_type[c.get("type", "concept")] = by_type.get(c.get("type", "concept"), 0) + 1
        total_frequency = sum(int(c.get("frequency", 0)) for c in concepts)
        return ConceptStats(
            total=len(concepts),
            by_type=by_type,
            top=[concept_from_record(c) for c in concepts[:top]],
            average_frequency=total_frequency / len(concepts) if concepts else 0.0,
        )

    def get_trending_concepts(
        self,
        timeframe: Timeframe | str = Timeframe.WEEKLY,
        limit: int = 10,
        now: datetime | None = None,
    ) -> list[TrendingConcept]:
        """Concepts whose mention rate grew in the latest window.

        ``recent_rate`` is mentions per document in ``[now - span, now]``;
        ``prior_rate`` is the same over the preceding window of equal
        calendar length (0 when it holds no documents). Growth is
        ``recent_rate / max(0.01, prior_rate)``. Only concepts mentioned in
        the recent window are returned, sorted by growth, then recent
        mentions, then name.
        """
        timeframe = Timeframe(timeframe)
        now = now or self.store.now()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        start, end = timeframe.window(now)
        prior_start = start - timeframe.span

        recent_docs: list[str] = []
        prior_docs: list[str] = []
        for content in self.store.find_all(CONTENT):
            created = parse_timestamp(content.get("created_at"))
            if created is None:
                continue
            if start <= created <= end:
                recent_docs.append(content["id"])
            elif prior_start <= created < start:
                prior_docs.append(content["id"])
        if not recent_docs:
            return []

        recent_counts = self._mention_counts(recent_docs)
        prior_counts = self._mention_counts(prior_docs)

        trending: list[TrendingConcept] = []
        for concept_id, recent in recent_counts.items():
            rec = self.store.find_by_id(CONCEPTS, concept_id)
            if rec is None:
                continue
            prior = prior_counts.get(concept_id, 0)
            recent_rate = recent / len(recent_docs)
            prior_rate = prior / len(prior_docs) if prior_docs else 0.0
            trending.append(
                TrendingConcept(
                    concept=concept_from_record(rec),
                    growth=recent_rate / max(0.01, prior_rate),
                    recent_mentions=recent,
                    prior_mentions=prior,
                )
            )

        trending.sort(key=lambda t: (-t.growth, -t.recent_mentions, t.concept.name.lower()))
        return trending[:limit]

    def _mention_counts(self, content_ids: list[str]) -> dict[str, int]:
        counts: dict[str, int] = {}
        if not content_ids:
            return counts
        for link in self.store.find_by_index(CONCEPT_LINKS, "content_id", content_ids):
            counts[link["concept_id"]] = counts.get(link["concept_id"], 0) + 1
        return counts
