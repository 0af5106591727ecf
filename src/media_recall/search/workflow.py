import asyncio
import logging

from pydantic import BaseModel
from workflows import Workflow, Context, step
from workflows.events import StartEvent, StopEvent, Event

from ..catalog import CatalogMatch, TMDbCatalog
from ..expansion import QueryExpander, import_candidates
from ..indexing import IndexingPipeline
from ..models import MediaType, SearchResult
from ..storage import CorpusStore
from .fusion import COLD_START_SCORE, fuse_term_results, unique_terms

logger = logging.getLogger(__name__)


class SearchState(BaseModel):
    query: str = ""
    media_type: MediaType | None = None
    limit: int = 10


class MemorySearchEvent(StartEvent):
    query: str
    media_type: MediaType | None = None
    limit: int = 10


class TermsEvent(Event):
    terms: list[str]


class ColdStartEvent(Event):
    terms: list[str]


class SearchEndEvent(StopEvent):
    results: list[SearchResult] = []
    cold_start: bool = False


class MemorySearchWorkflow(Workflow):
    """Expand a query, fuse per-term keyword hits and fall back to a catalog import."""

    def __init__(
        self,
        corpus_store: CorpusStore,
        query_expander: QueryExpander | None = None,
        catalog: TMDbCatalog | None = None,
        indexer: IndexingPipeline | None = None,
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.corpus_store = corpus_store
        self.query_expander = query_expander
        self.catalog = catalog
        self.indexer = indexer

    @step
    async def expand_query(
        self, ev: MemorySearchEvent, ctx: Context[SearchState]
    ) -> TermsEvent:
        async with ctx.store.edit_state() as state:
            state.query = ev.query
            state.media_type = ev.media_type
            state.limit = ev.limit

        expansions = [ev.query]
        if self.query_expander is not None:
            try:
                expansions = await self.query_expander.expand(ev.query)
            except Exception as exc:
                logger.warning("Query expansion raised, using raw query: %s", exc)
        res = TermsEvent(terms=unique_terms(ev.query, expansions))
        ctx.write_event_to_stream(res)
        return res

    @step
    async def fuse_terms(
        self, ev: TermsEvent, ctx: Context[SearchState]
    ) -> SearchEndEvent | ColdStartEvent:
        state = await ctx.store.get_state()
        searchable = [term for term in ev.terms if term.strip()]
        pages = await asyncio.gather(
            *(
                self.corpus_store.search(
                    term, media_type=state.media_type, limit=state.limit
                )
                for term in searchable
            )
        )
        results = fuse_term_results(
            state.query, searchable, [page.items for page in pages], state.limit
        )
        if results:
            return SearchEndEvent(results=results)
        res = ColdStartEvent(terms=ev.terms)
        ctx.write_event_to_stream(res)
        return res

    @step
    async def cold_start(
        self, ev: ColdStartEvent, ctx: Context[SearchState]
    ) -> SearchEndEvent:
        if self.catalog is None or self.indexer is None:
            return SearchEndEvent(results=[], cold_start=True)

        state = await ctx.store.get_state()
        match = await self._find_catalog_match(self.catalog, state.query, ev.terms)
        if match is None:
            return SearchEndEvent(results=[], cold_start=True)

        record = await self.corpus_store.find_by_title(match.title, match.item_type)
        if record is None:
            record = await self.indexer.create_media(match.to_media_create())
            logger.info(
                "Imported %r (%s) from catalog as %s",
                match.title,
                match.item_type,
                record.id,
            )
        result = SearchResult.from_record(record, COLD_START_SCORE)
        return SearchEndEvent(results=[result], cold_start=True)

    async def _find_catalog_match(
        self, catalog: TMDbCatalog, query: str, terms: list[str]
    ) -> CatalogMatch | None:
        candidates = import_candidates([term for term in terms if term != query])
        for term in [*candidates, query]:
            match = await catalog.search_multi(term)
            if match is not None:
                return match
        return None
