"""Tests for similar-items resolution and its degradation cascade."""

from __future__ import annotations

import pytest

from media_recall.errors import NotFound, ProviderUnavailable
from media_recall.search import SimilarItemsResolver
from media_recall.storage import DuckDBCorpusStore
from media_recall.vectors import InMemoryVectorIndex, VectorFilter, VectorMatch

from .conftest import add_media

MODEL = "fake:2"


class _DownIndex(InMemoryVectorIndex):
    async def is_available(self) -> bool:
        return False


class _BrokenIndex(InMemoryVectorIndex):
    async def query(self, vector, *, top_k=10, vector_filter=None):
        raise ProviderUnavailable("pinecone timeout")


class _CrashingIndex(InMemoryVectorIndex):
    async def query(self, vector, *, top_k=10, vector_filter=None):
        raise RuntimeError("unexpected index failure")


class _StaleIndex(InMemoryVectorIndex):
    """Returns ids that no longer exist in the corpus."""

    async def query(self, vector, *, top_k=10, vector_filter=None):
        return [VectorMatch(id="media_deleted", score=0.99)]


async def _embedded_corpus(store: DuckDBCorpusStore):
    source = await add_media(store, "Groundhog Day", tags=["time loop"])
    close = await add_media(store, "Palm Springs", tags=["time loop"])
    book = await add_media(store, "Replay", "BOOK", tags=["time loop"])
    far = await add_media(store, "Jaws", tags=["shark"])
    await store.save_embedding(source.id, [1.0, 0.0], MODEL)
    await store.save_embedding(close.id, [0.9, 0.1], MODEL)
    await store.save_embedding(book.id, [0.95, 0.05], MODEL)
    await store.save_embedding(far.id, [0.0, 1.0], MODEL)
    return source, close, book, far


async def _index_for(store: DuckDBCorpusStore, index: InMemoryVectorIndex, items) -> None:
    for item in items:
        embedding = await store.get_embedding(item.id)
        await index.upsert(
            item.id,
            embedding.values,
            {"type": item.type, "model_version": embedding.model_version},
        )


@pytest.mark.asyncio
async def test_missing_item_raises_not_found(store: DuckDBCorpusStore) -> None:
    resolver = SimilarItemsResolver(store)
    with pytest.raises(NotFound):
        await resolver.similar_items("media_missing")


@pytest.mark.asyncio
async def test_no_embedding_and_no_tags_returns_empty(store: DuckDBCorpusStore) -> None:
    source = await add_media(store, "Untagged")
    await add_media(store, "Other", tags=["anything"])
    resolver = SimilarItemsResolver(store, InMemoryVectorIndex(), model_version=MODEL)

    assert await resolver.similar_items(source.id) == []


@pytest.mark.asyncio
async def test_tag_overlap_fallback(store: DuckDBCorpusStore) -> None:
    source = await add_media(store, "Groundhog Day", tags=["time loop", "comedy"])
    loop = await add_media(store, "Palm Springs", tags=["time loop"])
    funny = await add_media(store, "Airplane!", tags=["comedy"])
    await add_media(store, "Jaws", tags=["shark"])
    book = await add_media(store, "Replay", "BOOK", tags=["time loop"])
    resolver = SimilarItemsResolver(store, model_version=MODEL)

    results = await resolver.similar_items(source.id, limit=5)

    assert {r.id for r in results} == {loop.id, funny.id, book.id}
    assert all(r.score == 0.5 for r in results)
    assert source.id not in {r.id for r in results}

    same_type = await resolver.similar_items(source.id, limit=5, cross_media=False)
    assert {r.id for r in same_type} == {loop.id, funny.id}

    assert len(await resolver.similar_items(source.id, limit=1)) == 1


@pytest.mark.asyncio
async def test_stale_model_version_uses_tag_overlap(store: DuckDBCorpusStore) -> None:
    source = await add_media(store, "Groundhog Day", tags=["time loop"])
    other = await add_media(store, "Palm Springs", tags=["time loop"])
    await store.save_embedding(source.id, [1.0, 0.0], "old-model:2")
    resolver = SimilarItemsResolver(store, InMemoryVectorIndex(), model_version=MODEL)

    results = await resolver.similar_items(source.id)

    assert [(r.id, r.score) for r in results] == [(other.id, 0.5)]


@pytest.mark.asyncio
async def test_vector_index_path_excludes_self(store: DuckDBCorpusStore) -> None:
    source, close, book, far = await _embedded_corpus(store)
    index = InMemoryVectorIndex()
    await _index_for(store, index, [source, close, book, far])
    resolver = SimilarItemsResolver(store, index, model_version=MODEL)

    results = await resolver.similar_items(source.id, limit=2)

    assert [r.id for r in results] == [book.id, close.id]
    assert results[0].score >= results[1].score

    movies = await resolver.similar_items(source.id, limit=5, cross_media=False)
    assert [r.id for r in movies] == [close.id, far.id]


@pytest.mark.asyncio
async def test_index_unavailable_uses_local_cosine(store: DuckDBCorpusStore) -> None:
    source, close, book, far = await _embedded_corpus(store)
    resolver = SimilarItemsResolver(store, _DownIndex(), model_version=MODEL)

    results = await resolver.similar_items(source.id, limit=5)

    assert [r.id for r in results] == [book.id, close.id, far.id]
    assert results[0].score == pytest.approx(0.95 / (0.95**2 + 0.05**2) ** 0.5)
    assert results[-1].score == pytest.approx(0.0)


@pytest.mark.asyncio
async def test_index_failure_uses_local_cosine(store: DuckDBCorpusStore) -> None:
    source, close, book, far = await _embedded_corpus(store)
    resolver = SimilarItemsResolver(store, _BrokenIndex(), model_version=MODEL)

    results = await resolver.similar_items(source.id, limit=1, cross_media=False)

    assert [r.id for r in results] == [close.id]


@pytest.mark.asyncio
async def test_unexpected_index_error_uses_local_cosine(store: DuckDBCorpusStore) -> None:
    source, close, book, far = await _embedded_corpus(store)
    resolver = SimilarItemsResolver(store, _CrashingIndex(), model_version=MODEL)

    results = await resolver.similar_items(source.id, limit=1, cross_media=False)

    assert [r.id for r in results] == [close.id]


@pytest.mark.asyncio
async def test_index_vectors_of_other_models_are_ignored(store: DuckDBCorpusStore) -> None:
    source = await add_media(store, "Groundhog Day")
    old = await add_media(store, "Palm Springs")
    await store.save_embedding(source.id, [1.0, 0.0], MODEL)
    index = InMemoryVectorIndex()
    await index.upsert(old.id, [1.0, 0.0], {"type": "MOVIE", "model_version": "old:2"})
    await index.upsert(old.id + "_unlabelled", [1.0, 0.0], {"type": "MOVIE"})
    resolver = SimilarItemsResolver(store, index, model_version=MODEL)

    assert await resolver.similar_items(source.id) == []


@pytest.mark.asyncio
async def test_unfiltered_index_matches_are_checked_for_model(
    store: DuckDBCorpusStore,
) -> None:
    source = await add_media(store, "Groundhog Day")
    old = await add_media(store, "Palm Springs")
    await store.save_embedding(source.id, [1.0, 0.0], MODEL)
    filters: list[VectorFilter] = []

    class _UnfilteredIndex(InMemoryVectorIndex):
        async def query(self, vector, *, top_k=10, vector_filter=None):
            filters.append(vector_filter)
            return [VectorMatch(id=old.id, score=1.0, metadata={"model_version": "old:2"})]

    resolver = SimilarItemsResolver(store, _UnfilteredIndex(), model_version=MODEL)

    assert await resolver.similar_items(source.id) == []
    assert filters == [VectorFilter(model_version=MODEL)]


def test_vector_filter_matches_model_version() -> None:
    vector_filter = VectorFilter(model_version=MODEL)

    assert not vector_filter.is_empty()
    assert vector_filter.matches({"model_version": MODEL})
    assert not vector_filter.matches({"model_version": "old:2"})
    assert not vector_filter.matches({})


@pytest.mark.asyncio
async def test_stale_index_ids_fall_through_to_local(store: DuckDBCorpusStore) -> None:
    source, close, book, far = await _embedded_corpus(store)
    resolver = SimilarItemsResolver(store, _StaleIndex(), model_version=MODEL)

    results = await resolver.similar_items(source.id, limit=2)

    assert [r.id for r in results] == [book.id, close.id]


@pytest.mark.asyncio
async def test_local_cosine_skips_other_model_versions(store: DuckDBCorpusStore) -> None:
    source = await add_media(store, "Groundhog Day")
    same = await add_media(store, "Palm Springs")
    other = await add_media(store, "Edge of Tomorrow")
    await store.save_embedding(source.id, [1.0, 0.0], MODEL)
    await store.save_embedding(same.id, [0.5, 0.5], MODEL)
    await store.save_embedding(other.id, [1.0, 0.0], "other:2")
    resolver = SimilarItemsResolver(store, model_version=MODEL)

    results = await resolver.similar_items(source.id)

    assert [r.id for r in results] == [same.id]
