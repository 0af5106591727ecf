"""
Vector index interfaces, shared records and the cosine similarity measure.
"""

from __future__ import annotations

import math
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..models import MediaType


UPSERT_BATCH_SIZE = 100


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (|a| * |b|)``.

    Vectors of different length, empty vectors and zero-magnitude vectors
    have similarity ``0.0``.
    """
    if len(a) != len(b) or not a:
        return 0.0
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


@dataclass(frozen=True)
class VectorRecord:
    """A vector and its metadata as written to an index."""

    id: str
    values: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorMatch:
    """A nearest-neighbour hit returned by an index query."""

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorFilter:
    """Metadata restriction applied to index queries."""

    media_type: MediaType | None = None
    min_year: int | None = None
    max_year: int | None = None
    model_version: str | None = None

    def is_empty(self) -> bool:
        return (
            self.media_type is None
            and self.min_year is None
            and self.max_year is None
            and self.model_version is None
        )

    def matches(self, metadata: dict[str, Any]) -> bool:
        if self.media_type is not None and metadata.get("type") != self.media_type:
            return False
        if (
            self.model_version is not None
            and metadata.get("model_version") != self.model_version
        ):
            return False
        if self.min_year is None and self.max_year is None:
            return True
        year = metadata.get("release_year")
        if not isinstance(year, (int, float)) or isinstance(year, bool):
            return False
        if self.min_year is not None and year < self.min_year:
            return False
        if self.max_year is not None and year > self.max_year:
            return False
        return True


def chunked(records: Sequence[VectorRecord], size: int) -> Iterator[Sequence[VectorRecord]]:
    for start in range(0, len(records), size):
        yield records[start : start + size]


class VectorIndex(Protocol):
    """Protocol for nearest-neighbour indexes over media vectors."""

    async def is_available(self) -> bool:
        """Liveness probe; never raises."""

    async def upsert(
        self, vector_id: str, values: list[float], metadata: dict[str, Any] | None = None
    ) -> None:
        """Insert or replace a single vector."""

    async def upsert_many(self, records: Sequence[VectorRecord]) -> None:
        """Insert or replace vectors in fixed-size chunks."""

    async def query(
        self,
        vector: list[float],
        *,
        top_k: int = 10,
        vector_filter: VectorFilter | None = None,
    ) -> list[VectorMatch]:
        """Return the *top_k* nearest vectors, best first."""

    async def delete(self, vector_id: str) -> None:
        """Remove a vector by id."""

    async def delete_many(self, vector_ids: Sequence[str]) -> None:
        """Remove several vectors by id."""
