"""Pensive concept graph: building and querying."""

from pensive.graph.builder import ConceptBuilder, ConceptMention, DocumentGraph
from pensive.graph.query import (
    ConceptDetails,
    ConceptGraph,
    ConceptStats,
    GraphEdge,
    GraphNode,
    GraphQueryEngine,
    Timeframe,
    TrendingConcept,
    density,
    fuzzy_match,
)

__all__ = [
    "ConceptBuilder",
    "ConceptDetails",
    "ConceptGraph",
    "ConceptMention",
    "ConceptStats",
    "DocumentGraph",
    "GraphEdge",
    "GraphNode",
    "GraphQueryEngine",
    "Timeframe",
    "TrendingConcept",
    "density",
    "fuzzy_match",
]
