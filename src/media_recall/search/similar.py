"""
Similar-items resolution.

Three strategies are tried in order, each used only when the previous one
cannot answer:

1. nearest neighbours of the same model version from the vector index,
   hydrated from the corpus;
2. brute-force cosine over stored embeddings of the same model version;
3. tag overlap, for items that have no usable embedding.
"""

from __future__ import annotations

import logging

from ..errors import NotFound
from ..models import MediaType, SearchResult
from ..storage import CorpusStore, EmbeddingRecord, MediaFilter, MediaRecord
from ..vectors import VectorFilter, VectorIndex, cosine_similarity


logger = logging.getLogger(__name__)

TAG_OVERLAP_SCORE = 0.5


class SimilarItemsResolver:
    """Find items similar to an existing one."""

    def __init__(
        self,
        store: CorpusStore,
        vector_index: VectorIndex | None = None,
        model_version: str | None = None,
    ) -> None:
        self.store = store
        self.vector_index = vector_index
        self.model_version = model_version

    async def similar_items(
        self,
        media_id: str,
        limit: int = 5,
        cross_media: bool = True,
    ) -> list[SearchResult]:
        source = await self.store.find_by_id(media_id, include_embedding=True)
        if source is None:
            raise NotFound(f"Media item {media_id!r} not found.")

        type_filter = None if cross_media else source.type
        embedding = source.embedding
        if embedding is None or not embedding.is_usable(self.model_version):
            return await self._by_tag_overlap(source, limit, type_filter)

        if self.vector_index is not None:
            results = await self._by_vector_index(
                self.vector_index, source, embedding, limit, type_filter
            )
            if results:
                return results
        return await self._by_local_cosine(source, embedding, limit, type_filter)

    async def _by_vector_index(
        self,
        index: VectorIndex,
        source: MediaRecord,
        embedding: EmbeddingRecord,
        limit: int,
        type_filter: MediaType | None,
    ) -> list[SearchResult]:
        if not await index.is_available():
            return []
        try:
            return await self._query_index(index, source, embedding, limit, type_filter)
        except Exception as exc:
            logger.warning("Vector lookup failed for %s: %s", source.id, exc)
            return []

    async def _query_index(
        self,
        index: VectorIndex,
        source: MediaRecord,
        embedding: EmbeddingRecord,
        limit: int,
        type_filter: MediaType | None,
    ) -> list[SearchResult]:
        matches = await index.query(
            embedding.values,
            top_k=limit + 1,
            vector_filter=VectorFilter(
                media_type=type_filter, model_version=embedding.model_version
            ),
        )

        scores: dict[str, float] = {}
        for match in matches:
            if match.id == source.id or match.id in scores:
                continue
            # Never rank vectors produced by another model.
            if match.metadata.get("model_version") != embedding.model_version:
                continue
            scores[match.id] = match.score
        if not scores:
            return []

        records = await self.store.find_many(MediaFilter(ids=list(scores)))
        by_id = {record.id: record for record in records}
        results = [
            SearchResult.from_record(by_id[match_id], score)
            for match_id, score in scores.items()
            if match_id in by_id
            and (type_filter is None or by_id[match_id].type == type_filter)
        ]
        return results[:limit]

    async def _by_local_cosine(
        self,
        source: MediaRecord,
        embedding: EmbeddingRecord,
        limit: int,
        type_filter: MediaType | None,
    ) -> list[SearchResult]:
        candidates = await self.store.find_many(
            MediaFilter(
                media_type=type_filter,
                exclude_id=source.id,
                embedding_model=embedding.model_version,
                include_embedding=True,
            )
        )
        scored: list[tuple[float, MediaRecord]] = []
        for record in candidates:
            other = record.embedding
            if other is None or len(other.values) != len(embedding.values):
                continue
            scored.append((cosine_similarity(embedding.values, other.values), record))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [SearchResult.from_record(record, score) for score, record in scored[:limit]]

    async def _by_tag_overlap(
        self,
        source: MediaRecord,
        limit: int,
        type_filter: MediaType | None,
    ) -> list[SearchResult]:
        if not source.tags:
            return []
        candidates = await self.store.find_many(
            MediaFilter(
                tag_names=source.tag_names,
                media_type=type_filter,
                exclude_id=source.id,
                limit=limit,
            )
        )
        return [
            SearchResult.from_record(record, TAG_OVERLAP_SCORE)
            for record in candidates[:limit]
        ]
