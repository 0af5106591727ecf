"""Tests for the indexing pipeline: create pathway and embedding sync."""

from __future__ import annotations

import pytest

from media_recall.embeddings import build_embedding_text
from media_recall.errors import InputError, ProviderUnavailable
from media_recall.indexing import IndexingPipeline, vector_metadata
from media_recall.models import MediaCreate
from media_recall.storage import DuckDBCorpusStore, MediaRecord
from media_recall.vectors import InMemoryVectorIndex

from .conftest import FakeEmbeddingProvider, add_media


class _FailingIndex(InMemoryVectorIndex):
    async def upsert(self, vector_id, values, metadata=None):
        raise ProviderUnavailable("pinecone down")


@pytest.mark.asyncio
async def test_create_media_embeds_and_indexes(store: DuckDBCorpusStore) -> None:
    provider = FakeEmbeddingProvider({"Groundhog Day": [1.0, 0.0, 0.0]})
    index = InMemoryVectorIndex()
    pipeline = IndexingPipeline(store, provider, index)

    record = await pipeline.create_media(
        MediaCreate(
            type="MOVIE",
            title="Groundhog Day",
            release_year=1993,
            tags=["time loop"],
        )
    )

    embedding = await store.get_embedding(record.id)
    assert embedding is not None
    assert embedding.values == pytest.approx([1.0, 0.0, 0.0])
    assert embedding.model_version == "fake:3"

    vector = index.get(record.id)
    assert vector is not None
    assert vector.metadata == {
        "media_id": record.id,
        "type": "MOVIE",
        "title": "Groundhog Day",
        "release_year": 1993,
        "tags": ["time loop"],
        "model_version": "fake:3",
    }


@pytest.mark.asyncio
async def test_create_media_survives_provider_failures(store: DuckDBCorpusStore) -> None:
    pipeline = IndexingPipeline(
        store, FakeEmbeddingProvider(fail=True), InMemoryVectorIndex()
    )
    record = await pipeline.create_media(MediaCreate(type="BOOK", title="Replay"))

    assert await store.find_by_id(record.id) is not None
    assert await store.get_embedding(record.id) is None

    index_down = IndexingPipeline(store, FakeEmbeddingProvider(), _FailingIndex())
    second = await index_down.create_media(MediaCreate(type="BOOK", title="Dune"))
    assert await store.get_embedding(second.id) is not None


@pytest.mark.asyncio
async def test_create_media_without_provider(store: DuckDBCorpusStore) -> None:
    pipeline = IndexingPipeline(store)
    record = await pipeline.create_media(MediaCreate(type="GAME", title="Outer Wilds"))
    assert record.title == "Outer Wilds"
    assert await store.get_embedding(record.id) is None


def test_vector_metadata_omits_unknown_year() -> None:
    record = MediaRecord(id="m1", type="GAME", title="Outer Wilds")
    assert "release_year" not in vector_metadata(record, "fake:3")


@pytest.mark.asyncio
async def test_sync_embeddings_batches_and_upserts(store: DuckDBCorpusStore) -> None:
    items = [await add_media(store, f"Item {i}", tags=["loop"]) for i in range(5)]
    already = await add_media(store, "Already Embedded")
    await store.save_embedding(already.id, [0.1, 0.2, 0.3], "fake:3")

    provider = FakeEmbeddingProvider(max_batch_size=2)
    index = InMemoryVectorIndex()
    result = await IndexingPipeline(store, provider, index).sync_embeddings()

    assert result.pending == 5
    assert result.embedded == 5
    assert result.batches == 3
    assert result.vectors_upserted == 6
    assert [len(batch) for batch in provider.batches] == [2, 2, 1]
    texts = [text for batch in provider.batches for text in batch]
    assert build_embedding_text("Item 0", None, ["loop"]) in texts
    assert len(index) == 6
    assert index.get(already.id) is not None
    for item in items:
        assert await store.get_embedding(item.id) is not None

    rerun = await IndexingPipeline(store, provider, index).sync_embeddings()
    assert rerun.pending == 0
    assert rerun.batches == 0
    assert rerun.vectors_upserted == 0


@pytest.mark.asyncio
async def test_sync_embeddings_reembeds_stale_model_versions(
    store: DuckDBCorpusStore,
) -> None:
    item = await add_media(store, "Groundhog Day")
    await store.save_embedding(item.id, [0.1, 0.2], "old:2")

    result = await IndexingPipeline(store, FakeEmbeddingProvider()).sync_embeddings()

    assert result.embedded == 1
    assert result.vectors_upserted == 0
    embedding = await store.get_embedding(item.id)
    assert embedding is not None and embedding.model_version == "fake:3"


@pytest.mark.asyncio
async def test_sync_embeddings_limit(store: DuckDBCorpusStore) -> None:
    for i in range(4):
        await add_media(store, f"Item {i}")

    pipeline = IndexingPipeline(store, FakeEmbeddingProvider())
    result = await pipeline.sync_embeddings(limit=3)

    assert result.embedded == 3


@pytest.mark.asyncio
async def test_sync_embeddings_errors_propagate(store: DuckDBCorpusStore) -> None:
    await add_media(store, "Item")

    with pytest.raises(ProviderUnavailable):
        await IndexingPipeline(store).sync_embeddings()

    with pytest.raises(InputError):
        await IndexingPipeline(
            store, FakeEmbeddingProvider(max_batch_size=2)
        ).sync_embeddings(batch_size=3)

    with pytest.raises(ProviderUnavailable):
        await IndexingPipeline(store, FakeEmbeddingProvider(fail=True)).sync_embeddings()


class _FlakyIndex(InMemoryVectorIndex):
    def __init__(self) -> None:
        super().__init__()
        self.down = True

    async def upsert_many(self, records):
        if self.down:
            raise ProviderUnavailable("pinecone 503")
        await super().upsert_many(records)


@pytest.mark.asyncio
async def test_sync_retries_vectors_after_index_outage(store: DuckDBCorpusStore) -> None:
    item = await add_media(store, "Groundhog Day")
    index = _FlakyIndex()
    pipeline = IndexingPipeline(store, FakeEmbeddingProvider(), index)

    with pytest.raises(ProviderUnavailable):
        await pipeline.sync_embeddings()
    assert await store.get_embedding(item.id) is not None
    assert len(index) == 0

    index.down = False
    result = await pipeline.sync_embeddings()

    assert result.pending == 0
    assert result.embedded == 0
    assert result.vectors_upserted == 1
    assert index.get(item.id) is not None
    assert await store.list_unindexed(model_version="fake:3") == []


@pytest.mark.asyncio
async def test_sync_pushes_vectors_missed_at_creation(store: DuckDBCorpusStore) -> None:
    provider = FakeEmbeddingProvider()
    record = await IndexingPipeline(store, provider, _FailingIndex()).create_media(
        MediaCreate(type="BOOK", title="Replay", tags=["time loop"])
    )

    index = InMemoryVectorIndex()
    result = await IndexingPipeline(store, provider, index).sync_embeddings()

    assert result.embedded == 0
    assert result.vectors_upserted == 1
    vector = index.get(record.id)
    assert vector is not None
    assert vector.metadata["tags"] == ["time loop"]


@pytest.mark.asyncio
async def test_reembedding_marks_vector_unindexed(store: DuckDBCorpusStore) -> None:
    provider = FakeEmbeddingProvider()
    record = await IndexingPipeline(
        store, provider, InMemoryVectorIndex()
    ).create_media(MediaCreate(type="GAME", title="Outer Wilds"))
    assert await store.list_unindexed(model_version="fake:3") == []

    await store.save_embedding(record.id, [0.3, 0.2, 0.1], "fake:3")

    [pending] = await store.list_unindexed(model_version="fake:3")
    assert pending.id == record.id
    assert pending.embedding is not None
