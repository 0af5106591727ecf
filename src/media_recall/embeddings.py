"""
Embedding providers for vector-based similarity.

Wraps the Google GenAI embedding API, or a local sentence-transformers
model, behind the same async ``embed`` / ``embed_batch`` interface so
callers never depend on which one is configured.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from enum import Enum
from typing import Any, Callable, Protocol

from google.genai import Client as GenAIClient

from .config import embedding_backend
from .errors import InputError, ProviderUnavailable


logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "gemini-embedding-001"
_DEFAULT_DIM = 768
_DEFAULT_LOCAL_MODEL = "all-MiniLM-L6-v2"
MAX_BATCH_SIZE = 128


def build_embedding_text(
    title: str,
    description: str | None = None,
    tags: list[str] | None = None,
) -> str:
    """Compose the text embedded for a media item.

    Indexing and re-embedding must both go through this function; vectors
    are only comparable when their input text was shaped the same way.
    """
    parts = [title]
    if description:
        parts.append(description)
    if tags:
        parts.append(f"Tags: {', '.join(tags)}")
    return "\n\n".join(parts)


class EmbeddingProvider(Protocol):
    """Async text-to-vector provider."""

    max_batch_size: int

    @property
    def model_version(self) -> str:
        """Identifier of the model and dimensionality producing the vectors."""

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Embed up to ``max_batch_size`` texts, preserving order."""


def _check_batch(texts: list[str], max_batch_size: int) -> None:
    if not texts:
        raise InputError("embed_batch requires at least one text.")
    if len(texts) > max_batch_size:
        raise InputError(
            f"Maximum {max_batch_size} texts per batch, got {len(texts)}."
        )


class GenAIEmbeddingProvider:
    """Generate text embeddings via Google GenAI."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        dim: int | None = None,
        max_batch_size: int | None = None,
        client: Any | None = None,
    ) -> None:
        self.model = model or os.getenv("MEDIA_RECALL_EMBEDDING_MODEL", _DEFAULT_MODEL)
        self.dim = dim or int(os.getenv("MEDIA_RECALL_EMBEDDING_DIM", str(_DEFAULT_DIM)))
        self.max_batch_size = max_batch_size or MAX_BATCH_SIZE

        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
            if resolved_key is None:
                raise ProviderUnavailable(
                    "GOOGLE_API_KEY not found. "
                    "Provide api_key or set the environment variable."
                )
            self._client = GenAIClient(api_key=resolved_key)

    @property
    def model_version(self) -> str:
        return f"{self.model}:{self.dim}"

    async def embed(
        self, text: str, *, task_type: str = "RETRIEVAL_DOCUMENT"
    ) -> list[float]:
        vectors = await self._embed_content([text], task_type=task_type)
        return vectors[0]

    async def embed_batch(
        self,
        texts: list[str],
        *,
        task_type: str = "RETRIEVAL_DOCUMENT",
    ) -> list[list[float]]:
        """Embed a batch of texts.

        Returns a list of embedding vectors in the same order as *texts*.
        """
        _check_batch(texts, self.max_batch_size)
        return await self._embed_content(texts, task_type=task_type)

    async def _embed_content(
        self, texts: list[str], *, task_type: str
    ) -> list[list[float]]:
        try:
            result = await self._client.aio.models.embed_content(
                model=self.model,
                contents=texts,
                config={
                    "task_type": task_type,
                    "output_dimensionality": self.dim,
                },
            )
        except Exception as exc:
            raise ProviderUnavailable(f"Embedding request failed: {exc}") from exc

        vectors = [list(emb.values or []) for emb in result.embeddings or []]
        if len(vectors) != len(texts):
            raise ProviderUnavailable(
                f"Embedding response had {len(vectors)} vectors for {len(texts)} texts."
            )
        return vectors


class ModelState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


def _load_sentence_transformer(model_name: str) -> Any:
    from sentence_transformers import SentenceTransformer

    return SentenceTransformer(model_name)


class ModelHandle:
    """Load-once, thread-safe handle to a local embedding model."""

    def __init__(
        self,
        model_name: str,
        loader: Callable[[str], Any] | None = None,
    ) -> None:
        self.model_name = model_name
        self.state = ModelState.UNINITIALIZED
        self._loader = loader or _load_sentence_transformer
        self._lock = threading.Lock()
        self._model: Any = None
        self._error: Exception | None = None

    def get(self) -> Any:
        if self.state is ModelState.READY:
            return self._model
        with self._lock:
            if self.state is ModelState.READY:
                return self._model
            if self.state is ModelState.FAILED:
                raise ProviderUnavailable(
                    f"Local embedding model {self.model_name!r} failed to load."
                ) from self._error

            self.state = ModelState.LOADING
            logger.info("Loading local embedding model %s", self.model_name)
            try:
                model = self._loader(self.model_name)
            except Exception as exc:
                self.state = ModelState.FAILED
                self._error = exc
                raise ProviderUnavailable(
                    f"Local embedding model {self.model_name!r} failed to load: {exc}"
                ) from exc
            self._model = model
            self.state = ModelState.READY
            return model


class LocalEmbeddingProvider:
    """Generate normalized embeddings with a local sentence-transformers model."""

    def __init__(
        self,
        *,
        model_name: str | None = None,
        max_batch_size: int | None = None,
        loader: Callable[[str], Any] | None = None,
    ) -> None:
        self.model_name = model_name or os.getenv(
            "MEDIA_RECALL_LOCAL_MODEL", _DEFAULT_LOCAL_MODEL
        )
        self.max_batch_size = max_batch_size or MAX_BATCH_SIZE
        self.handle = ModelHandle(self.model_name, loader=loader)

    @property
    def model_version(self) -> str:
        return f"local:{self.model_name}"

    async def embed(self, text: str) -> list[float]:
        vectors = await asyncio.to_thread(self._encode, [text])
        return vectors[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        _check_batch(texts, self.max_batch_size)
        return await asyncio.to_thread(self._encode, texts)

    def _encode(self, texts: list[str]) -> list[list[float]]:
        model = self.handle.get()
        try:
            encoded = model.encode(
                texts, normalize_embeddings=True, show_progress_bar=False
            )
        except Exception as exc:
            raise ProviderUnavailable(f"Local embedding failed: {exc}") from exc
        return [[float(value) for value in vector] for vector in encoded]


def load_embedding_provider(backend: str | None = None) -> EmbeddingProvider | None:
    """Build the configured provider, or None when credentials are missing."""
    if embedding_backend(backend) == "local":
        return LocalEmbeddingProvider()
    try:
        return GenAIEmbeddingProvider()
    except ProviderUnavailable as exc:
        logger.warning("Embeddings disabled: %s", exc)
        return None
