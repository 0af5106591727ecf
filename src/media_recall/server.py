"""
FastAPI server for media-recall.

Exposes memory search, keyword search, similar-items lookup and media
creation over JSON.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from .errors import NotFound
from .models import (
    MediaCreate,
    MediaItem,
    MediaSearchPage,
    MediaType,
    MemorySearchRequest,
    SearchResult,
)
from .services import MediaRecallServices, build_services


def create_app(services: MediaRecallServices) -> FastAPI:
    """Build the application around an already-wired set of services."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.aclose()

    app = FastAPI(
        title="media-recall",
        description="Find half-remembered movies, shows, books and games",
        lifespan=lifespan,
    )
    app.state.services = services

    @app.get("/health")
    async def health():
        """Liveness check."""
        return {"status": "ok"}

    @app.post("/api/search/memory", response_model=list[SearchResult])
    async def memory_search(request: MemorySearchRequest):
        """Rank candidates for a free-text description."""
        return await services.orchestrator.memory_search(
            request.query, media_type=request.type, limit=request.limit
        )

    @app.get("/api/media/search", response_model=MediaSearchPage)
    async def search_media(
        q: str = Query(min_length=1),
        type: MediaType | None = None,
        limit: int = Query(default=20, ge=1, le=50),
        offset: int = Query(default=0, ge=0),
    ):
        """Page through keyword matches on title and description."""
        page = await services.store.search(q, media_type=type, limit=limit, offset=offset)
        return MediaSearchPage(
            items=[MediaItem.from_record(record) for record in page.items],
            total=page.total,
        )

    @app.get("/api/media/{media_id}", response_model=MediaItem)
    async def get_media(media_id: str):
        record = await services.store.find_by_id(media_id, include_embedding=True)
        if record is None:
            return JSONResponse(
                {"error": f"Media item {media_id!r} not found."}, status_code=404
            )
        return MediaItem.from_record(record)

    @app.get("/api/media/{media_id}/similar", response_model=list[SearchResult])
    async def similar_items(
        media_id: str,
        limit: int = Query(default=5, ge=1, le=20),
        cross_media: bool = True,
    ):
        """List items similar to an existing one."""
        try:
            return await services.resolver.similar_items(
                media_id, limit=limit, cross_media=cross_media
            )
        except NotFound as exc:
            return JSONResponse({"error": str(exc)}, status_code=404)

    @app.post("/api/media", response_model=MediaItem, status_code=201)
    async def create_media(request: MediaCreate):
        """Create an item; embedding and vector indexing are best effort."""
        created = await services.pipeline.create_media(request)
        record = await services.store.find_by_id(created.id, include_embedding=True)
        return MediaItem.from_record(record or created)

    return app


def run_server(host: str = "127.0.0.1", port: int = 8000, db_path: str | None = None):
    """Run the FastAPI server with uvicorn."""
    import uvicorn

    app = create_app(build_services(db_path))
    uvicorn.run(app, host=host, port=port)
