"""
Unit tests for locator fingerprinting.
"""

import pytest

from stagehand.media.fingerprint import fingerprint

pytestmark = pytest.mark.unit


def test_fingerprint_is_deterministic():
    url = "https://cdn.example.com/art/123.png?size=large"
    assert fingerprint(url) == fingerprint(url)


def test_fingerprint_differs_for_different_locators():
    assert fingerprint("https://cdn.example.com/a.png") != fingerprint(
        "https://cdn.example.com/b.png"
    )


def test_fingerprint_is_sha256_hex():
    value = fingerprint("https://cdn.example.com/a.png")
    assert len(value) == 64
    assert all(c in "0123456789abcdef" for c in value)


def test_fingerprint_is_sensitive_to_query():
    assert fingerprint("https://x/blob?id=1") != fingerprint("https://x/blob?id=2")
