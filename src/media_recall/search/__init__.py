"""Memory search and similar-items resolution."""

from .fusion import (
    COLD_START_SCORE,
    EXPANSION_SCORE,
    FALLBACK_SCORE,
    ORIGINAL_QUERY_SCORE,
    fuse_term_results,
    unique_terms,
)
from .service import SearchOrchestrator
from .similar import TAG_OVERLAP_SCORE, SimilarItemsResolver
from .workflow import MemorySearchEvent, MemorySearchWorkflow, SearchEndEvent

__all__ = [
    "COLD_START_SCORE",
    "EXPANSION_SCORE",
    "FALLBACK_SCORE",
    "ORIGINAL_QUERY_SCORE",
    "TAG_OVERLAP_SCORE",
    "fuse_term_results",
    "unique_terms",
    "SearchOrchestrator",
    "SimilarItemsResolver",
    "MemorySearchEvent",
    "MemorySearchWorkflow",
    "SearchEndEvent",
]
