"""Concept & relationship builder.

Turns the entities, tags and explicit relationships of one analysed document
into concept nodes, concept↔content links and weighted edges.

Rules:

* Concepts are matched by ``name_key`` (case-folded, whitespace-collapsed);
  the first spelling seen is kept as the display name.
* A concept's ``frequency`` grows by exactly one per document that mentions
  it, however many times the document mentions it.
* Every unordered pair of the document's first ``max_cooccurrence_concepts``
  concepts gets a ``CO_OCCURS`` edge. Co-occurrence is undirected.
* Re-seeing an existing ``(from, to, type)`` edge strengthens it by
  ``strength_increment`` (capped at 1.0) instead of duplicating it.
* Edges never connect a concept to itself.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from pensive.db.models import (
    ConceptType,
    EntityInput,
    RelationshipInput,
    RelationshipType,
    concept_key,
)
from pensive.db.schema import ANALYSIS, CONCEPT_LINKS, CONCEPTS, RELATIONSHIPS
from pensive.db.store import IndexedStore

logger = logging.getLogger(__name__)


@dataclass
class ConceptMention:
    name: str
    type: ConceptType
    key: str


@dataclass
class DocumentGraph:
    """What ``ingest_document`` did for one document."""

    # name_key → concept id, in mention order
    concept_ids: dict[str, str] = field(default_factory=dict)
    entities: list[dict[str, Any]] = field(default_factory=list)
    relationships: list[dict[str, Any]] = field(default_factory=list)
    cooccurrence_ids: list[str] = field(default_factory=list)


class ConceptBuilder:
    """Writes concepts, links and edges into an ``IndexedStore``.

    Args:
        store: The shared store.
        cooccurrence_strength: Initial strength of a new ``CO_OCCURS`` edge.
        explicit_strength: Initial strength of a new explicit edge.
        strength_increment: Added to an existing edge each time it recurs.
        max_cooccurrence_concepts: Only the first N concepts of a document
            are paired for co-occurrence.
    """

    def __init__(
        self,
        store: IndexedStore,
        *,
        cooccurrence_strength: float = 0.5,
        explicit_strength: float = 0.8,
        strength_increment: float = 0.1,
        max_cooccurrence_concepts: int = 25,
    ) -> None:
        self.store = store
        self.cooccurrence_strength = cooccurrence_strength
        self.explicit_strength = explicit_strength
        self.strength_increment = strength_increment
        self.max_cooccurrence_concepts = max_cooccurrence_concepts

    # ------------------------------------------------------------------
    # Concepts
    # ------------------------------------------------------------------

    def find_concept(self, name: str) -> dict[str, Any] | None:
        """Return the concept record whose name matches *name* case-insensitively."""
        key = concept_key(name)
        if not key:
            return None
        hits = self.store.find_by_index(CONCEPTS, "name_key", key)
        return hits[0] if hits else None

    def find_or_create_concept(self, name: str, type: ConceptType | str = ConceptType.CONCEPT) -> str:
        """Return the id of the concept named *name*, counting one more mention.

        An existing concept gets ``frequency + 1`` and keeps its type; a new
        one starts at frequency 1.

        Raises:
            ValueError: If *name* is blank.
        """
        key = concept_key(name)
        if not key:
            raise ValueError("Concept name must not be blank")

        with self.store.batch():
            existing = self.find_concept(name)
            if existing is not None:
                self.store.update(
                    CONCEPTS, existing["id"], {"frequency": int(existing.get("frequency", 0)) + 1}
                )
                return existing["id"]

            concept_id = self.store.insert(
                CONCEPTS,
                {
                    "name": " ".join(name.split()),
                    "name_key": key,
                    "type": ConceptType.coerce(type).value,
                    "frequency": 1,
                    "description": "",
                },
            )
            logger.debug("New concept %r (%s)", name, concept_id)
            return concept_id

    def concept_set(
        self,
        entities: Iterable[EntityInput] = (),
        tags: Iterable[str] = (),
        relationships: Iterable[RelationshipInput] = (),
    ) -> list[ConceptMention]:
        """Distinct concepts mentioned by a document, in first-mention order.

        Typed entities come first, then tags and explicit relationship
        endpoints not already present (both typed ``concept``).
        """
        mentions: dict[str, ConceptMention] = {}

        def add(name: str, ctype: ConceptType) -> None:
            key = concept_key(name)
            if key and key not in mentions:
                mentions[key] = ConceptMention(name=" ".join(name.split()), type=ctype, key=key)

        for entity in entities:
            add(entity.name, ConceptType.coerce(entity.type))
        for tag in tags:
            add(tag, ConceptType.CONCEPT)
        for rel in relationships:
            add(rel.source, ConceptType.CONCEPT)
            add(rel.target, ConceptType.CONCEPT)
        return list(mentions.values())

    def update_concept_description(self, concept_id: str, description: str) -> bool:
        return self.store.update(CONCEPTS, concept_id, {"description": description.strip()})

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def ingest_document(
        self,
        content_id: str,
        entities: Iterable[EntityInput] = (),
        tags: Iterable[str] = (),
        relationships: Iterable[RelationshipInput] = (),
    ) -> DocumentGraph:
        """Upsert the concepts of one document and wire up its edges.

        Args:
            content_id: The content record the mentions belong to.
            entities: Typed entities from the analysis.
            tags: Free-form tags (become ``concept``-typed concepts).
            relationships: Explicit relationships between named concepts.

        Returns:
            DocumentGraph with the concept ids, the entity/relationship
            entries to store on the Analysis, and the co-occurrence edge ids.
        """
        entities = list(entities)
        relationships = list(relationships)
        graph = DocumentGraph()

        with self.store.batch():
            for mention in self.concept_set(entities, tags, relationships):
                concept_id = self.find_or_create_concept(mention.name, mention.type)
                graph.concept_ids[mention.key] = concept_id
                self.link_concept_to_content(concept_id, content_id)

            for entity in entities:
                concept_id = graph.concept_ids.get(concept_key(entity.name))
                if concept_id is not None:
                    graph.entities.append(
                        {
                            "name": entity.name,
                            "type": ConceptType.coerce(entity.type).value,
                            "concept_id": concept_id,
                        }
                    )

            paired = list(graph.concept_ids.values())[: self.max_cooccurrence_concepts]
            for i, first in enumerate(paired):
                for second in paired[i + 1 :]:
                    graph.cooccurrence_ids.append(
                        self.add_relationship(
                            first,
                            second,
                            RelationshipType.CO_OCCURS,
                            content_id,
                            self.cooccurrence_strength,
                        )
                    )

            for rel in relationships:
                from_id = graph.concept_ids.get(concept_key(rel.source))
                to_id = graph.concept_ids.get(concept_key(rel.target))
                if from_id is None or to_id is None or from_id == to_id:
                    continue
                rel_type = RelationshipType.coerce(rel.type)
                rel_id = self.add_relationship(
                    from_id, to_id, rel_type, content_id, self.explicit_strength
                )
                graph.relationships.append(
                    {
                        "from": rel.source,
                        "to": rel.target,
                        "type": rel_type.value,
                        "relationship_id": rel_id,
                    }
                )

        logger.debug(
            "Content %s: %d concepts, %d co-occurrence edges, %d explicit edges",
            content_id,
            len(graph.concept_ids),
            len(graph.cooccurrence_ids),
            len(graph.relationships),
        )
        return graph

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def find_relationship(
        self, from_id: str, to_id: str, rel_type: RelationshipType | str
    ) -> dict[str, Any] | None:
        """Existing edge for the triple; ``CO_OCCURS`` matches either direction."""
        rel_type = RelationshipType.coerce(rel_type)
        pairs = [(from_id, to_id)]
        if rel_type is RelationshipType.CO_OCCURS:
            pairs.append((to_id, from_id))
        for source, target in pairs:
            for edge in self.store.find_by_index(RELATIONSHIPS, "from_concept_id", source):
                if edge["to_concept_id"] == target and edge.get("type") == rel_type.value:
                    return edge
        return None

    def add_relationship(
        self,
        from_id: str,
        to_id: str,
        rel_type: RelationshipType | str,
        content_id: str,
        strength: float,
    ) -> str:
        """Create the edge, or strengthen it if the triple already exists.

        Raises:
            ValueError: If both ends are the same concept.
        """
        if from_id == to_id:
            raise ValueError("A relationship cannot connect a concept to itself")
        rel_type = RelationshipType.coerce(rel_type)

        with self.store.batch():
            existing = self.find_relationship(from_id, to_id, rel_type)
            if existing is not None:
                strength = min(1.0, round(float(existing["strength"]) + self.strength_increment, 6))
                self.store.update(RELATIONSHIPS, existing["id"], {"strength": strength})
                return existing["id"]

            return self.store.insert(
                RELATIONSHIPS,
                {
                    "from_concept_id": from_id,
                    "to_concept_id": to_id,
                    "type": rel_type.value,
                    "strength": min(1.0, max(0.0, float(strength))),
                    "content_id": content_id,
                },
            )

    # ------------------------------------------------------------------
    # Concept ↔ content links
    # ------------------------------------------------------------------

    def link_concept_to_content(self, concept_id: str, content_id: str) -> str:
        """Return the link id for the pair, creating it on first use."""
        with self.store.batch():
            for link in self.store.find_by_index(CONCEPT_LINKS, "content_id", content_id):
                if link["concept_id"] == concept_id:
                    return link["id"]
            return self.store.insert(
                CONCEPT_LINKS, {"concept_id": concept_id, "content_id": content_id}
            )

    def get_content_ids_for_concept(self, concept_id: str) -> list[str]:
        links = self.store.find_by_index(CONCEPT_LINKS, "concept_id", concept_id)
        return list(dict.fromkeys(link["content_id"] for link in links))

    def get_concept_ids_for_content(self, content_id: str) -> list[str]:
        links = self.store.find_by_index(CONCEPT_LINKS, "content_id", content_id)
        return list(dict.fromkeys(link["concept_id"] for link in links))

    # ------------------------------------------------------------------
    # Merge
    # ------------------------------------------------------------------

    def merge_concepts(self, source_id: str, target_id: str) -> bool:
        """Fold concept *source_id* into *target_id* and delete the source.

        Edges are re-pointed to the target; edges that would become
        self-loops are dropped and edges that would duplicate an existing
        target edge are folded into it (keeping the higher strength). Links
        are re-pointed without creating duplicates, and the target's
        frequency grows by the number of documents only the source mentioned.

        Returns:
            False if the ids are equal or either concept does not exist.
        """
        if source_id == target_id:
            return False
        source = self.store.find_by_id(CONCEPTS, source_id)
        target = self.store.find_by_id(CONCEPTS, target_id)
        if source is None or target is None:
            return False

        with self.store.batch():
            self._repoint_edges(source_id, target_id, "from_concept_id", "to_concept_id")
            self._repoint_edges(source_id, target_id, "to_concept_id", "from_concept_id")

            target_docs = set(self.get_content_ids_for_concept(target_id))
            shared = 0
            for link in self.store.find_by_index(CONCEPT_LINKS, "concept_id", source_id):
                if link["content_id"] in target_docs:
                    shared += 1
                    self.store.delete(CONCEPT_LINKS, link["id"])
                else:
                    self.store.update(CONCEPT_LINKS, link["id"], {"concept_id": target_id})

            for analysis in self.store.find_all(ANALYSIS):
                ids = analysis.get("concept_ids") or []
                if source_id in ids:
                    repointed = [target_id if cid == source_id else cid for cid in ids]
                    self.store.update(
                        ANALYSIS, analysis["id"], {"concept_ids": list(dict.fromkeys(repointed))}
                    )

            frequency = int(target.get("frequency", 0)) + int(source.get("frequency", 0)) - shared
            self.store.update(CONCEPTS, target_id, {"frequency": max(0, frequency)})
            self.store.delete(CONCEPTS, source_id)

        logger.info("Merged concept %r into %r", source.get("name"), target.get("name"))
        return True

    def _repoint_edges(self, source_id: str, target_id: str, end: str, other_end: str) -> None:
        for edge in self.store.find_by_index(RELATIONSHIPS, end, source_id):
            other = edge[other_end]
            if other in (source_id, target_id):
                self.store.delete(RELATIONSHIPS, edge["id"])
                continue
            if end == "from_concept_id":
                duplicate = self.find_relationship(target_id, other, edge["type"])
            else:
                duplicate = self.find_relationship(other, target_id, edge["type"])
            if duplicate is not None:
                strength = max(float(duplicate["strength"]), float(edge["strength"]))
                self.store.update(RELATIONSHIPS, duplicate["id"], {"strength": strength})
                self.store.delete(RELATIONSHIPS, edge["id"])
            else:
                self.store.update(RELATIONSHIPS, edge["id"], {end: target_id})
