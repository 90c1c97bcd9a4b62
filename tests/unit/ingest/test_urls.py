"""Tests for URL normalisation and body hashing."""

from __future__ import annotations

import hashlib

import pytest

from pensive.ingest.urls import content_hash, normalize_url


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("https://example.com/post", "https://example.com/post"),
        ("https://example.com/post/", "https://example.com/post"),
        ("HTTPS://Example.COM/Post", "https://example.com/Post"),
        ("https://example.com/post#comments", "https://example.com/post"),
        (
            "https://example.com/post?utm_source=tw&utm_medium=social&id=7",
            "https://example.com/post?id=7",
        ),
        ("https://example.com/?ref=hn&source=rss", "https://example.com"),
        ("  https://example.com/a  ", "https://example.com/a"),
        ("not a url", "not a url"),
        ("  /relative/path ", "/relative/path"),
        ("", ""),
    ],
)
def test_normalize_url(raw, expected):
    assert normalize_url(raw) == expected


def test_normalize_url_custom_params():
    assert normalize_url("https://a.com/x?fbclid=1&q=2", ["fbclid"]) == "https://a.com/x?q=2"
    assert normalize_url("https://a.com/x?utm_source=1", []) == "https://a.com/x?utm_source=1"


def test_normalize_url_invalid_port_falls_back():
    assert normalize_url(" http://example.com:99999/x ") == "http://example.com:99999/x"


def test_content_hash_is_sha256():
    assert content_hash("hello") == hashlib.sha256(b"hello").hexdigest()
    assert content_hash("a") != content_hash("b")
