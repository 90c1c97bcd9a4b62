"""URL normalisation and body hashing used for content deduplication."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

TRACKING_PARAMS: tuple[str, ...] = (
    "utm_source",
    "utm_medium",
    "utm_campaign",
    "utm_content",
    "utm_term",
    "ref",
    "source",
)


def content_hash(body: str) -> str:
    """Return the SHA-256 hex digest of *body* (UTF-8)."""
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def normalize_url(url: str, tracking_params: Iterable[str] = TRACKING_PARAMS) -> str:
    """Canonical form of *url* for duplicate detection.

    Drops tracking query parameters and the fragment, lower-cases scheme and
    host, and strips a single trailing slash. Strings that do not parse as an
    absolute URL are returned trimmed and otherwise unchanged.

    Examples:
        >>> normalize_url("https://Example.com/post/?utm_source=x&id=3#top")
        'https://example.com/post?id=3'
    """
    stripped = url.strip()
    try:
        parts = urlsplit(stripped)
        netloc = parts.netloc
        # Accessing .port validates it; bad ports raise ValueError.
        parts.port
    except ValueError:
        return stripped
    if not parts.scheme or not netloc:
        return stripped

    drop = set(tracking_params)
    query = urlencode(
        [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in drop]
    )
    path = parts.path
    if path.endswith("/"):
        path = path[:-1]
    return urlunsplit((parts.scheme.lower(), netloc.lower(), path, query, ""))
