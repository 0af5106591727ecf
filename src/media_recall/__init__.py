"""
media-recall - find half-remembered movies, shows, books and games.

This package ranks candidate media items for a free-text description by
expanding the query with Google Gemini, fusing per-term keyword hits from
a DuckDB corpus and importing from TMDb when the corpus has nothing. It
also resolves similar items through a vector index, local cosine
similarity or shared tags.

Example usage:
    >>> from media_recall import build_services
    >>> services = build_services()
    >>> results = await services.orchestrator.memory_search(
    ...     "time loop movie where a weatherman relives the same day"
    ... )
"""

from .errors import (
    InputError,
    InternalError,
    MediaRecallError,
    NotFound,
    ProviderUnavailable,
)
from .models import (
    MediaCreate,
    MediaItem,
    MediaSearchPage,
    MediaType,
    MemorySearchRequest,
    SearchResult,
    SimilarItemsRequest,
    TagRef,
)
from .search import SearchOrchestrator, SimilarItemsResolver
from .services import MediaRecallServices, build_services

__all__ = [
    # Errors
    "InputError",
    "InternalError",
    "MediaRecallError",
    "NotFound",
    "ProviderUnavailable",
    # Models
    "MediaCreate",
    "MediaItem",
    "MediaSearchPage",
    "MediaType",
    "MemorySearchRequest",
    "SearchResult",
    "SimilarItemsRequest",
    "TagRef",
    # Services
    "SearchOrchestrator",
    "SimilarItemsResolver",
    "MediaRecallServices",
    "build_services",
]
