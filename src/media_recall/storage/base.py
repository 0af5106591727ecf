"""
Corpus store interfaces and data models for media persistence.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from ..models import MediaCreate, MediaType, TagCategory


@dataclass(frozen=True)
class TagRecord:
    """A case-normalized tag."""

    name: str
    category: TagCategory


@dataclass(frozen=True)
class EmbeddingRecord:
    """A stored embedding vector for a media item."""

    media_id: str
    values: list[float]
    model_version: str

    def is_usable(self, model_version: str | None = None) -> bool:
        """Return True when the vector is non-empty and matches *model_version*."""
        if not self.values:
            return False
        return model_version is None or self.model_version == model_version


@dataclass(frozen=True)
class MediaRecord:
    """A media item as held by the corpus store."""

    id: str
    type: MediaType
    title: str
    description: str | None = None
    release_year: int | None = None
    language: str | None = None
    poster_url: str | None = None
    external_id: str | None = None
    created_at: str = ""
    tags: tuple[TagRecord, ...] = ()
    embedding: EmbeddingRecord | None = None

    @property
    def tag_names(self) -> list[str]:
        return [tag.name for tag in self.tags]


@dataclass(frozen=True)
class MediaFilter:
    """Selection criteria for ``CorpusStore.find_many``."""

    ids: list[str] | None = None
    media_type: MediaType | None = None
    exclude_id: str | None = None
    tag_names: list[str] | None = None
    embedding_model: str | None = None
    include_embedding: bool = False
    limit: int | None = None


@dataclass(frozen=True)
class SearchPage:
    """One page of keyword search results."""

    items: list[MediaRecord] = field(default_factory=list)
    total: int = 0


class CorpusStore(Protocol):
    """Protocol for the system of record used by search and indexing."""

    async def find_by_id(
        self, media_id: str, *, include_embedding: bool = False
    ) -> MediaRecord | None:
        """Return a media item by id."""

    async def find_many(self, media_filter: MediaFilter) -> list[MediaRecord]:
        """Return media items matching *media_filter*."""

    async def find_by_title(self, title: str, media_type: MediaType) -> MediaRecord | None:
        """Return the first item with an exactly matching title and type."""

    async def create(self, media: MediaCreate) -> MediaRecord:
        """Persist a new media item, upserting its tags by name."""

    async def search(
        self,
        term: str,
        *,
        media_type: MediaType | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> SearchPage:
        """Case-insensitive substring search over title and description."""

    async def upsert_tag(self, name: str, category: TagCategory = "GENRE") -> TagRecord:
        """Return the tag called *name*, creating it if absent."""

    async def get_embedding(self, media_id: str) -> EmbeddingRecord | None:
        """Return the stored embedding for a media item."""

    async def save_embedding(
        self, media_id: str, values: list[float], model_version: str
    ) -> None:
        """Insert or replace the embedding of a media item."""

    async def list_missing_embeddings(
        self, *, model_version: str | None = None, limit: int | None = None
    ) -> list[MediaRecord]:
        """Return items lacking an embedding (or one of another model version)."""

    async def list_unindexed(
        self, *, model_version: str, limit: int | None = None
    ) -> list[MediaRecord]:
        """Return items with a *model_version* embedding not yet pushed to the index."""

    async def mark_indexed(self, media_ids: list[str], model_version: str) -> None:
        """Record that the current vectors of *media_ids* are in the index."""
