from __future__ import annotations

from typing import TYPE_CHECKING, Literal, TypeAlias

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from .storage.base import MediaRecord

MediaType: TypeAlias = Literal["MOVIE", "SHOW", "BOOK", "GAME"]
TagCategory: TypeAlias = Literal["MOOD", "THEME", "GENRE", "TROPE"]

MEDIA_TYPES: tuple[MediaType, ...] = ("MOVIE", "SHOW", "BOOK", "GAME")


class TagRef(BaseModel):
    """Tag name attached to a search result"""

    name: str = Field(description="Lower-cased tag name")


class SearchResult(BaseModel):
    """Ranked candidate returned by memory search or similar-items lookups"""

    id: str = Field(description="Media item id")
    type: MediaType = Field(description="Media type of the item")
    title: str = Field(description="Item title")
    description: str | None = Field(default=None, description="Item description")
    release_year: int | None = Field(default=None, description="Release year")
    poster_url: str | None = Field(default=None, description="Poster image URL")
    score: float = Field(
        description="Relevance score; not calibrated across fusion sources"
    )
    tags: list[TagRef] = Field(default_factory=list, description="Item tags")

    @classmethod
    def from_record(cls, record: MediaRecord, score: float) -> SearchResult:
        return cls(
            id=record.id,
            type=record.type,
            title=record.title,
            description=record.description,
            release_year=record.release_year,
            poster_url=record.poster_url,
            score=score,
            tags=[TagRef(name=tag.name) for tag in record.tags],
        )


class MemorySearchRequest(BaseModel):
    """Free-text description of a half-remembered title"""

    query: str = Field(
        min_length=10,
        max_length=1000,
        description="Description of the item, at least 10 characters",
    )
    type: MediaType | None = Field(
        default=None, description="Restrict results to one media type"
    )
    limit: int = Field(default=10, ge=1, le=20, description="Maximum results")


class SimilarItemsRequest(BaseModel):
    """Lookup of items similar to an existing one"""

    id: str = Field(min_length=1, description="Id of the source media item")
    limit: int = Field(default=5, ge=1, le=20, description="Maximum results")
    cross_media: bool = Field(
        default=True, description="Include media types other than the source's"
    )


class MediaCreate(BaseModel):
    """Input for creating a media item"""

    type: MediaType = Field(description="Media type")
    title: str = Field(min_length=1, max_length=500, description="Item title")
    description: str | None = Field(default=None, description="Item description")
    release_year: int | None = Field(default=None, description="Release year")
    language: str | None = Field(default=None, description="Original language")
    poster_url: str | None = Field(default=None, description="Poster image URL")
    external_id: str | None = Field(
        default=None, description="Identifier in the external catalog"
    )
    tags: list[str] = Field(default_factory=list, description="Tag names")


class MediaItem(BaseModel):
    """Stored media item as returned by the create and lookup endpoints"""

    id: str = Field(description="Media item id")
    type: MediaType = Field(description="Media type")
    title: str = Field(description="Item title")
    description: str | None = Field(default=None, description="Item description")
    release_year: int | None = Field(default=None, description="Release year")
    language: str | None = Field(default=None, description="Original language")
    poster_url: str | None = Field(default=None, description="Poster image URL")
    external_id: str | None = Field(
        default=None, description="Identifier in the external catalog"
    )
    created_at: str = Field(default="", description="Creation timestamp (ISO 8601)")
    tags: list[TagRef] = Field(default_factory=list, description="Item tags")
    has_embedding: bool = Field(
        default=False, description="Whether a stored embedding was loaded"
    )

    @classmethod
    def from_record(cls, record: MediaRecord) -> MediaItem:
        return cls(
            id=record.id,
            type=record.type,
            title=record.title,
            description=record.description,
            release_year=record.release_year,
            language=record.language,
            poster_url=record.poster_url,
            external_id=record.external_id,
            created_at=record.created_at,
            tags=[TagRef(name=tag.name) for tag in record.tags],
            has_embedding=record.embedding is not None,
        )


class MediaSearchPage(BaseModel):
    """One page of keyword search results with the total match count"""

    items: list[MediaItem] = Field(default_factory=list, description="Items on this page")
    total: int = Field(default=0, description="Matches across all pages")
