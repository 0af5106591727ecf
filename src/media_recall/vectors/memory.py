"""
In-process vector index using brute-force cosine similarity.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from ..errors import InputError
from .base import (
    UPSERT_BATCH_SIZE,
    VectorFilter,
    VectorMatch,
    VectorRecord,
    chunked,
    cosine_similarity,
)


class InMemoryVectorIndex:
    """Vector index held in a dict; always available."""

    def __init__(self, *, batch_size: int = UPSERT_BATCH_SIZE) -> None:
        self.batch_size = batch_size
        self._records: dict[str, VectorRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def get(self, vector_id: str) -> VectorRecord | None:
        return self._records.get(vector_id)

    async def is_available(self) -> bool:
        return True

    async def upsert(
        self, vector_id: str, values: list[float], metadata: dict[str, Any] | None = None
    ) -> None:
        await self.upsert_many(
            [VectorRecord(id=vector_id, values=list(values), metadata=dict(metadata or {}))]
        )

    async def upsert_many(self, records: Sequence[VectorRecord]) -> None:
        for chunk in chunked(records, self.batch_size):
            staged: dict[str, VectorRecord] = {}
            for record in chunk:
                if not record.values:
                    raise InputError(f"Vector {record.id!r} has no values.")
                staged[record.id] = VectorRecord(
                    id=record.id,
                    values=list(record.values),
                    metadata=dict(record.metadata),
                )
            self._records.update(staged)

    async def query(
        self,
        vector: list[float],
        *,
        top_k: int = 10,
        vector_filter: VectorFilter | None = None,
    ) -> list[VectorMatch]:
        scored: list[VectorMatch] = []
        for record in self._records.values():
            if len(record.values) != len(vector):
                continue
            if vector_filter is not None and not vector_filter.matches(record.metadata):
                continue
            scored.append(
                VectorMatch(
                    id=record.id,
                    score=cosine_similarity(vector, record.values),
                    metadata=dict(record.metadata),
                )
            )
        scored.sort(key=lambda match: (-match.score, match.id))
        return scored[: max(top_k, 0)]

    async def delete(self, vector_id: str) -> None:
        self._records.pop(vector_id, None)

    async def delete_many(self, vector_ids: Sequence[str]) -> None:
        for vector_id in vector_ids:
            self._records.pop(vector_id, None)
