"""Relevance scoring for knowledge search.

Scores are additive and unnormalized. Context injection depends on the exact
ordering they produce, so the weights below are load-bearing:

    +100  key equals the query
     +50  otherwise, key contains the query
     +40  some tag equals the query
     +20  value contains the query
     +10  per (query word, key word) pair where one contains the other
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from supportbot.knowledge.models import KnowledgeEntry

EXACT_KEY = 100
KEY_CONTAINS = 50
EXACT_TAG = 40
VALUE_CONTAINS = 20
WORD_OVERLAP = 10


def normalize_query(query: str) -> str:
    return query.strip().lower()


def score(entry: KnowledgeEntry, normalized_query: str) -> int:
    """Score an entry against an already-normalized query. 0 means no match."""
    key = entry.key.lower()
    value = entry.value.lower()
    tags = [tag.lower() for tag in entry.tags]

    total = 0
    if key == normalized_query:
        total += EXACT_KEY
    elif normalized_query in key:
        total += KEY_CONTAINS

    if normalized_query in tags:
        total += EXACT_TAG

    if normalized_query in value:
        total += VALUE_CONTAINS

    key_words = key.split()
    for query_word in normalized_query.split():
        for key_word in key_words:
            if query_word in key_word or key_word in query_word:
                total += WORD_OVERLAP

    return total
