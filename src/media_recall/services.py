"""
Process-level wiring of stores and provider clients.

Every collaborator is built once here and injected into the components that
use it; the HTTP server and the CLI share the same construction path.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .catalog import TMDbCatalog
from .config import resolve_db_path
from .embeddings import EmbeddingProvider, load_embedding_provider
from .expansion import QueryExpander
from .indexing import IndexingPipeline
from .search import SearchOrchestrator, SimilarItemsResolver
from .storage import DuckDBCorpusStore
from .vectors import PineconeVectorIndex, VectorIndex


@dataclass
class MediaRecallServices:
    store: DuckDBCorpusStore
    pipeline: IndexingPipeline
    orchestrator: SearchOrchestrator
    resolver: SimilarItemsResolver
    embedding_provider: EmbeddingProvider | None = None
    vector_index: VectorIndex | None = None
    catalog: TMDbCatalog | None = None

    async def aclose(self) -> None:
        if isinstance(self.vector_index, PineconeVectorIndex):
            await self.vector_index.aclose()
        if self.catalog is not None:
            await self.catalog.aclose()
        self.store.close()


def build_services(
    db_path: str | None = None,
    *,
    embedding_backend: str | None = None,
    store: DuckDBCorpusStore | None = None,
    embedding_provider: EmbeddingProvider | None = None,
    vector_index: VectorIndex | None = None,
    query_expander: QueryExpander | None = None,
    catalog: TMDbCatalog | None = None,
) -> MediaRecallServices:
    """Assemble the component graph, reading credentials from the environment."""
    if store is None:
        store = DuckDBCorpusStore(resolve_db_path(db_path))
    if embedding_provider is None:
        embedding_provider = load_embedding_provider(embedding_backend)
    if vector_index is None and os.getenv("PINECONE_API_KEY"):
        vector_index = PineconeVectorIndex()
    if query_expander is None:
        query_expander = QueryExpander()
    if catalog is None:
        catalog = TMDbCatalog()

    pipeline = IndexingPipeline(store, embedding_provider, vector_index)
    orchestrator = SearchOrchestrator(
        store,
        query_expander=query_expander,
        catalog=catalog,
        indexer=pipeline,
    )
    resolver = SimilarItemsResolver(
        store,
        vector_index=vector_index,
        model_version=(
            embedding_provider.model_version if embedding_provider is not None else None
        ),
    )
    return MediaRecallServices(
        store=store,
        pipeline=pipeline,
        orchestrator=orchestrator,
        resolver=resolver,
        embedding_provider=embedding_provider,
        vector_index=vector_index,
        catalog=catalog,
    )
