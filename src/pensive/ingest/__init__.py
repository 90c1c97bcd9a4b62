"""Pensive ingest helpers: payload parsing, URL normalisation, dedup hashing."""

from pensive.ingest.document import (
    AnalysisInput,
    DocumentError,
    DocumentInput,
    load_documents,
    parse_documents,
)
from pensive.ingest.urls import TRACKING_PARAMS, content_hash, normalize_url

__all__ = [
    "AnalysisInput",
    "DocumentError",
    "DocumentInput",
    "TRACKING_PARAMS",
    "content_hash",
    "load_documents",
    "normalize_url",
    "parse_documents",
]
