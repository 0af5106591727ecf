"""
Memory search entry point with keyword-only fallback.
"""

from __future__ import annotations

import logging

from ..catalog import TMDbCatalog
from ..errors import InternalError
from ..expansion import QueryExpander
from ..indexing import IndexingPipeline
from ..models import MediaType, SearchResult
from ..storage import CorpusStore
from .fusion import FALLBACK_SCORE
from .workflow import MemorySearchEvent, MemorySearchWorkflow, SearchEndEvent


logger = logging.getLogger(__name__)


class SearchOrchestrator:
    """Run the memory search workflow; degrade to plain keyword search."""

    def __init__(
        self,
        corpus_store: CorpusStore,
        query_expander: QueryExpander | None = None,
        catalog: TMDbCatalog | None = None,
        indexer: IndexingPipeline | None = None,
        *,
        timeout: float = 60.0,
    ) -> None:
        self.corpus_store = corpus_store
        self.workflow = MemorySearchWorkflow(
            corpus_store,
            query_expander=query_expander,
            catalog=catalog,
            indexer=indexer,
            timeout=timeout,
        )

    async def memory_search(
        self,
        query: str,
        media_type: MediaType | None = None,
        limit: int = 10,
    ) -> list[SearchResult]:
        try:
            handler = self.workflow.run(
                start_event=MemorySearchEvent(
                    query=query, media_type=media_type, limit=limit
                )
            )
            result = await handler
            if not isinstance(result, SearchEndEvent):
                raise InternalError(
                    f"Search workflow ended with {type(result).__name__}."
                )
        except Exception:
            logger.exception("Memory search failed, falling back to keyword search")
            return await self.keyword_fallback(query, media_type=media_type, limit=limit)
        return result.results

    async def keyword_fallback(
        self,
        query: str,
        media_type: MediaType | None = None,
        limit: int = 10,
    ) -> list[SearchResult]:
        page = await self.corpus_store.search(query, media_type=media_type, limit=limit)
        return [SearchResult.from_record(record, FALLBACK_SCORE) for record in page.items]
