"""Table names, secondary index registry, and the blob version stamp."""

from __future__ import annotations

CONTENT = "content"
ANALYSIS = "analysis"
CONCEPTS = "concepts"
RELATIONSHIPS = "relationships"
CONCEPT_LINKS = "concept_links"

TABLES: tuple[str, ...] = (CONTENT, ANALYSIS, CONCEPTS, RELATIONSHIPS, CONCEPT_LINKS)

# Fields queried by equality on hot paths; every other field falls back to a scan.
INDEXES: dict[str, tuple[str, ...]] = {
    CONTENT: ("source", "created_at", "content_hash", "url"),
    ANALYSIS: ("content_id", "priority"),
    CONCEPTS: ("type", "name", "name_key"),
    RELATIONSHIPS: ("from_concept_id", "to_concept_id", "content_id"),
    CONCEPT_LINKS: ("concept_id", "content_id"),
}

# Fields every loaded record must carry, with their accepted JSON types.
# Blobs that break these are refused on restore and at startup.
REQUIRED_FIELDS: dict[str, dict[str, tuple[type, ...]]] = {
    CONTENT: {"content_hash": (str,)},
    ANALYSIS: {"content_id": (str,)},
    CONCEPTS: {"name": (str,), "frequency": (int,)},
    RELATIONSHIPS: {"from_concept_id": (str,), "to_concept_id": (str,), "strength": (int, float)},
    CONCEPT_LINKS: {"concept_id": (str,), "content_id": (str,)},
}

# Bumped whenever the serialized blob layout changes. Blobs stamped with a
# newer version are refused rather than half-loaded.
CURRENT_VERSION = 1
