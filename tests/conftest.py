"""Shared fakes and fixtures for media-recall tests."""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from media_recall.catalog import CatalogMatch
from media_recall.errors import ProviderUnavailable
from media_recall.models import MediaCreate
from media_recall.storage import DuckDBCorpusStore, MediaRecord


# ---------------------------------------------------------------------------
# Google GenAI client fakes
# ---------------------------------------------------------------------------


def text_vector(text: str, dim: int) -> list[float]:
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return [digest[i % len(digest)] / 255.0 + 0.01 for i in range(dim)]


@dataclass
class FakeEmbedding:
    values: list[float]


@dataclass
class FakeEmbedResult:
    embeddings: list[FakeEmbedding]


class FakeModels:
    """Stands in for ``client.aio.models``; records every call."""

    def __init__(
        self,
        *,
        text: str | None = None,
        error: Exception | None = None,
    ) -> None:
        self.text = text
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def embed_content(
        self, *, model: str, contents: list[str], config: dict
    ) -> FakeEmbedResult:
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        dim = config.get("output_dimensionality", 768)
        return FakeEmbedResult(
            embeddings=[FakeEmbedding(values=text_vector(t, dim)) for t in contents]
        )

    async def generate_content(self, *, model: str, contents: Any, config: dict):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(text=self.text)


class FakeGenAIClient:
    def __init__(self, models: FakeModels | None = None) -> None:
        self.models = models or FakeModels()
        self.aio = SimpleNamespace(models=self.models)


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


class FakeEmbeddingProvider:
    """Returns vectors keyed by title (first paragraph of the embedded text)."""

    def __init__(
        self,
        vectors: dict[str, list[float]] | None = None,
        *,
        dim: int = 3,
        model_version: str = "fake:3",
        max_batch_size: int = 128,
        fail: bool = False,
    ) -> None:
        self.vectors = vectors or {}
        self.dim = dim
        self.max_batch_size = max_batch_size
        self.fail = fail
        self.batches: list[list[str]] = []
        self._model_version = model_version

    @property
    def model_version(self) -> str:
        return self._model_version

    def _vector(self, text: str) -> list[float]:
        title = text.split("\n\n", 1)[0]
        return list(self.vectors.get(title) or text_vector(title, self.dim))

    async def embed(self, text: str) -> list[float]:
        if self.fail:
            raise ProviderUnavailable("embedding backend down")
        return self._vector(text)

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if self.fail:
            raise ProviderUnavailable("embedding backend down")
        self.batches.append(list(texts))
        return [self._vector(text) for text in texts]


class FakeExpander:
    def __init__(
        self, terms: list[str] | None = None, error: Exception | None = None
    ) -> None:
        self.terms = terms
        self.error = error
        self.calls: list[str] = []

    async def expand(self, query: str) -> list[str]:
        self.calls.append(query)
        if self.error is not None:
            raise self.error
        return list(self.terms) if self.terms is not None else [query]


class FakeCatalog:
    def __init__(
        self,
        matches: dict[str, CatalogMatch] | None = None,
        popular: list[list[CatalogMatch]] | None = None,
        enabled: bool = True,
    ) -> None:
        self.matches = matches or {}
        self.popular = popular or []
        self.enabled = enabled
        self.calls: list[str] = []
        self.pages: list[int] = []

    async def search_multi(self, title: str) -> CatalogMatch | None:
        self.calls.append(title)
        return self.matches.get(title)

    async def popular_movies(self, page: int = 1) -> list[CatalogMatch]:
        self.pages.append(page)
        if page > len(self.popular):
            return []
        return list(self.popular[page - 1])

    async def aclose(self) -> None:
        return None


GROUNDHOG_DAY = CatalogMatch(
    external_id="137",
    media_type="movie",
    title="Groundhog Day",
    overview="A weatherman finds himself living the same day over and over again.",
    release_year=1993,
    poster_url="https://image.tmdb.org/t/p/w500/gCgt1WARPZaXnq523ySQEUKinCs.jpg",
    language="en",
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def store(tmp_path: Path) -> Iterator[DuckDBCorpusStore]:
    corpus = DuckDBCorpusStore(str(tmp_path / "corpus.duckdb"))
    yield corpus
    corpus.close()


async def add_media(
    store: DuckDBCorpusStore,
    title: str,
    media_type: str = "MOVIE",
    *,
    description: str | None = None,
    tags: list[str] | None = None,
    release_year: int | None = None,
) -> MediaRecord:
    return await store.create(
        MediaCreate(
            type=media_type,
            title=title,
            description=description,
            release_year=release_year,
            tags=tags or [],
        )
    )
