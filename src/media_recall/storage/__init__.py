"""Corpus storage backends for media-recall."""

from .base import (
    CorpusStore,
    EmbeddingRecord,
    MediaFilter,
    MediaRecord,
    SearchPage,
    TagRecord,
)
from .duckdb import DuckDBCorpusStore, normalize_tag_name

__all__ = [
    "CorpusStore",
    "EmbeddingRecord",
    "MediaFilter",
    "MediaRecord",
    "SearchPage",
    "TagRecord",
    "DuckDBCorpusStore",
    "normalize_tag_name",
]
