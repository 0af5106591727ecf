"""Indexing pipeline for media-recall."""

from .pipeline import IndexingPipeline, SyncResult, embedding_text_for, vector_metadata
from .seed import DEFAULT_SEED_PAGES, SeedResult, seed_popular_movies

__all__ = [
    "IndexingPipeline",
    "SyncResult",
    "embedding_text_for",
    "vector_metadata",
    "DEFAULT_SEED_PAGES",
    "SeedResult",
    "seed_popular_movies",
]
