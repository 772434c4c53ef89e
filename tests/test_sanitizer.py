"""
Tests for the input sanitizer.
"""

import pytest

from docquery.core.errors import SecurityError, ValidationError
from docquery.search.sanitizer import InputSanitizer


@pytest.fixture
def sanitizer():
    return InputSanitizer(max_length=200)


def test_trims_and_collapses_whitespace(sanitizer):
    assert sanitizer.sanitize("  receipts   from\tlast \n month  ") == "receipts from last month"


def test_allows_normal_queries(sanitizer):
    for query in [
        "how much did I spend at Kroger last month?",
        "receipts over $100",
        "Trader Joe's receipts (2025)",
        'invoices from "Acme Corp", please!',
        "prescription receipts",
    ]:
        assert sanitizer.sanitize(query) == query


@pytest.mark.parametrize("raw", ["", "   ", "\n\t", None])
def test_empty_query_is_validation_error(sanitizer, raw):
    with pytest.raises(ValidationError):
        sanitizer.sanitize(raw)


def test_length_limit(sanitizer):
    assert sanitizer.sanitize("a" * 200) == "a" * 200
    with pytest.raises(SecurityError):
        sanitizer.sanitize("a" * 201)


@pytest.mark.parametrize("raw", [
    "'; DROP TABLE documents; --",
    "receipts -- comment",
    "receipts; select",
    "receipts /* hidden */",
    "exec xp_cmdshell",
    "call sp_helpdb",
    "receipts\x00",
])
def test_denylisted_fragments_rejected(sanitizer, raw):
    with pytest.raises(SecurityError):
        sanitizer.sanitize(raw)


@pytest.mark.parametrize("raw", [
    "receipts <script>",
    "amount = 5",
    "receipts * from",
    "a|b",
    "café receipts",
    "receipts%",
])
def test_disallowed_characters_rejected(sanitizer, raw):
    with pytest.raises(SecurityError):
        sanitizer.sanitize(raw)


def test_rejects_instead_of_repairing(sanitizer):
    """A rejected query is never returned in a cleaned-up form."""
    with pytest.raises(SecurityError):
        sanitizer.sanitize("receipts; drop table documents")


def test_suspicious_phrases_flagged_but_allowed(sanitizer):
    query = sanitizer.sanitize("how do I drop table entries")
    assert sanitizer.is_suspicious(query) is True
    assert sanitizer.is_suspicious("receipts from last week") is False


def test_stats_track_rejections(sanitizer):
    sanitizer.sanitize("receipts")
    with pytest.raises(ValidationError):
        sanitizer.sanitize("")
    with pytest.raises(SecurityError):
        sanitizer.sanitize("x" * 300)
    with pytest.raises(SecurityError):
        sanitizer.sanitize("a;b")
    with pytest.raises(SecurityError):
        sanitizer.sanitize("a#b")

    stats = sanitizer.get_stats()
    assert stats["accepted"] == 1
    assert stats["rejected"] == 4
    assert stats["rejected_empty"] == 1
    assert stats["rejected_length"] == 1
    assert stats["rejected_pattern"] == 1
    assert stats["rejected_character"] == 1


def test_matched_denylist(sanitizer):
    assert sanitizer.matched_denylist("a; b -- c") == ["--", ";"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
