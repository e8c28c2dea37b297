"""Tests for knowledge relevance scoring."""

from __future__ import annotations

import pytest

from supportbot.knowledge.models import KnowledgeEntry
from supportbot.knowledge.ranking import normalize_query, score


def _entry(key: str, value: str = "", tags: list[str] | None = None) -> KnowledgeEntry:
    return KnowledgeEntry(id="e1", key=key, value=value, tags=tags or [])


class TestScore:
    def test_exact_key(self):
        # 100 for the exact key plus 10 for the single overlapping word
        assert score(_entry("Pricing"), normalize_query("Pricing")) == 110

    def test_key_contains(self):
        assert score(_entry("Our Pricing Plans"), normalize_query("pricing")) >= 50

    def test_exact_key_excludes_contains_bonus(self):
        assert score(_entry("pricing"), "pricing") == 100 + 10

    def test_tag_only(self):
        entry = _entry("FAQ", "Something else", ["Pricing"])
        assert score(entry, "pricing") == 40

    def test_tag_must_match_exactly(self):
        entry = _entry("FAQ", "Something else", ["pricing-plans"])
        assert score(entry, "pricing") == 0

    def test_value_contains(self):
        assert score(_entry("FAQ", "Ask about PRICING anytime"), "pricing") == 20

    def test_word_overlap_counts_every_pair(self):
        # "ship" is inside "shipping" and "shipment": two pairs
        assert score(_entry("Shipping and shipment"), "ship") == 50 + 10 + 10

    def test_multi_word_overlap(self):
        # no substring match on the whole query, only word pairs
        entry = _entry("Return Policy")
        assert score(entry, "policy for return") == 10 + 10

    def test_query_word_containing_key_word(self):
        assert score(_entry("Tax"), "taxes") == 10

    def test_bonuses_stack(self):
        entry = _entry("Pricing", "pricing details", ["pricing"])
        assert score(entry, "pricing") == 100 + 40 + 20 + 10

    def test_no_match(self):
        assert score(_entry("Hours", "Mon-Fri"), "warranty") == 0


@pytest.mark.parametrize(
    "raw,expected",
    [("  Pricing ", "pricing"), ("SHIPPING", "shipping"), ("a b", "a b")],
)
def test_normalize_query(raw, expected):
    assert normalize_query(raw) == expected
