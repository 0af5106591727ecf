"""
Multi-term keyword fusion.
"""

from __future__ import annotations

from collections.abc import Sequence

from ..models import SearchResult
from ..storage import MediaRecord

ORIGINAL_QUERY_SCORE = 1.0
EXPANSION_SCORE = 0.8
COLD_START_SCORE = 0.9
FALLBACK_SCORE = 0.5


def unique_terms(query: str, expansions: Sequence[str]) -> list[str]:
    """Deduplicate ``[query, *expansions]`` keeping first occurrences."""
    terms: list[str] = []
    for term in [query, *expansions]:
        if term not in terms:
            terms.append(term)
    return terms


def fuse_term_results(
    query: str,
    terms: Sequence[str],
    pages: Sequence[Sequence[MediaRecord]],
    limit: int,
) -> list[SearchResult]:
    """Merge per-term hits in term order.

    The first term to surface an item decides its score: ``1.0`` when that
    term is the original query, ``0.8`` otherwise. Output keeps insertion
    order and is cut to *limit*.
    """
    fused: dict[str, SearchResult] = {}
    for term, records in zip(terms, pages):
        score = ORIGINAL_QUERY_SCORE if term == query else EXPANSION_SCORE
        for record in records:
            if record.id not in fused:
                fused[record.id] = SearchResult.from_record(record, score)
    return list(fused.values())[:limit]
