"""
Indexing pipeline: media creation and embedding backfill.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..embeddings import EmbeddingProvider, build_embedding_text
from ..errors import InputError, ProviderUnavailable
from ..models import MediaCreate
from ..storage import CorpusStore, MediaRecord
from ..vectors import UPSERT_BATCH_SIZE, VectorIndex, VectorRecord, chunked


logger = logging.getLogger(__name__)


def embedding_text_for(record: MediaRecord) -> str:
    return build_embedding_text(record.title, record.description, list(record.tag_names))


def vector_metadata(record: MediaRecord, model_version: str) -> dict[str, Any]:
    """Metadata stored alongside a media vector in the index."""
    metadata: dict[str, Any] = {
        "media_id": record.id,
        "type": record.type,
        "title": record.title,
        "tags": list(record.tag_names),
        "model_version": model_version,
    }
    if record.release_year is not None:
        metadata["release_year"] = record.release_year
    return metadata


@dataclass(frozen=True)
class SyncResult:
    """Summary output for an embedding sync run."""

    pending: int
    embedded: int
    vectors_upserted: int
    batches: int
    model_version: str


class IndexingPipeline:
    """Persist media items and keep their embeddings and vectors current."""

    def __init__(
        self,
        store: CorpusStore,
        embedding_provider: EmbeddingProvider | None = None,
        vector_index: VectorIndex | None = None,
    ) -> None:
        self.store = store
        self.embedding_provider = embedding_provider
        self.vector_index = vector_index

    async def create_media(self, media: MediaCreate) -> MediaRecord:
        """Create an item, then embed and index it on a best-effort basis.

        The item is committed before any provider call. An embedding failure
        leaves it pending for the sync job; an index failure leaves its vector
        unindexed, and the next sync pushes it.
        """
        record = await self.store.create(media)
        await self._index_record(record)
        return record

    async def _index_record(self, record: MediaRecord) -> None:
        provider = self.embedding_provider
        if provider is None:
            return
        try:
            values = await provider.embed(embedding_text_for(record))
            await self.store.save_embedding(record.id, values, provider.model_version)
        except ProviderUnavailable as exc:
            logger.warning("Embedding skipped for %s: %s", record.id, exc)
            return

        if self.vector_index is None:
            return
        try:
            await self.vector_index.upsert(
                record.id, values, vector_metadata(record, provider.model_version)
            )
        except ProviderUnavailable as exc:
            logger.warning("Vector upsert skipped for %s: %s", record.id, exc)
            return
        await self.store.mark_indexed([record.id], provider.model_version)

    async def sync_embeddings(
        self,
        *,
        batch_size: int | None = None,
        limit: int | None = None,
    ) -> SyncResult:
        """Embed every item lacking a current embedding, then index every
        current embedding whose vector has not reached the index yet."""
        provider = self.embedding_provider
        if provider is None:
            raise ProviderUnavailable("No embedding provider configured.")

        size = batch_size or provider.max_batch_size
        if size < 1 or size > provider.max_batch_size:
            raise InputError(
                f"batch_size must be between 1 and {provider.max_batch_size}, got {size}."
            )

        pending = await self.store.list_missing_embeddings(
            model_version=provider.model_version, limit=limit
        )
        embedded = 0
        batches = 0
        for start in range(0, len(pending), size):
            batch = pending[start : start + size]
            values = await provider.embed_batch([embedding_text_for(r) for r in batch])
            batches += 1
            for record, vector in zip(batch, values):
                await self.store.save_embedding(record.id, vector, provider.model_version)
                embedded += 1
            logger.info("Embedded batch %d (%d items)", batches, len(batch))

        upserted = 0
        if self.vector_index is not None:
            upserted = await self._push_unindexed(self.vector_index, provider.model_version)

        return SyncResult(
            pending=len(pending),
            embedded=embedded,
            vectors_upserted=upserted,
            batches=batches,
            model_version=provider.model_version,
        )

    async def _push_unindexed(self, index: VectorIndex, model_version: str) -> int:
        unindexed = await self.store.list_unindexed(model_version=model_version)
        vectors = [
            VectorRecord(
                id=record.id,
                values=record.embedding.values,
                metadata=vector_metadata(record, model_version),
            )
            for record in unindexed
            if record.embedding is not None
        ]
        upserted = 0
        for chunk in chunked(vectors, UPSERT_BATCH_SIZE):
            await index.upsert_many(chunk)
            await self.store.mark_indexed([vector.id for vector in chunk], model_version)
            upserted += len(chunk)
        if upserted:
            logger.info("Indexed %d vectors", upserted)
        return upserted
