import asyncio
import logging
from enum import Enum
from typing import Annotated

from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from typer import Argument, Exit, Option, Typer

from .errors import InputError, NotFound, ProviderUnavailable
from .indexing import DEFAULT_SEED_PAGES, seed_popular_movies
from .models import (
    MediaCreate,
    MemorySearchRequest,
    SearchResult,
    SimilarItemsRequest,
)
from .services import build_services

app = Typer(help="Find half-remembered movies, shows, books and games.")
console = Console()


class MediaTypeOption(str, Enum):
    MOVIE = "MOVIE"
    SHOW = "SHOW"
    BOOK = "BOOK"
    GAME = "GAME"


@app.callback()
def main(
    verbose: Annotated[
        bool, Option("--verbose", "-v", help="Show info-level log output.")
    ] = False,
) -> None:
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _results_table(title: str, results: list[SearchResult]) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column("Score", justify="right", style="bold green")
    table.add_column("Title", style="bold", no_wrap=True)
    table.add_column("Type")
    table.add_column("Year", justify="right")
    table.add_column("Tags")
    table.add_column("Id", style="dim", overflow="fold")
    for result in results:
        table.add_row(
            f"{result.score:.3f}",
            result.title,
            result.type,
            str(result.release_year) if result.release_year is not None else "",
            ", ".join(tag.name for tag in result.tags),
            result.id,
        )
    return table


def _fail(message: str, code: int = 1) -> Exit:
    console.print(f"[bold red]{message}[/]")
    return Exit(code=code)


async def run_search(request: MemorySearchRequest, db_path: str | None) -> list[SearchResult]:
    services = build_services(db_path)
    try:
        return await services.orchestrator.memory_search(
            request.query, media_type=request.type, limit=request.limit
        )
    finally:
        await services.aclose()


async def run_similar(request: SimilarItemsRequest, db_path: str | None) -> list[SearchResult]:
    services = build_services(db_path)
    try:
        return await services.resolver.similar_items(
            request.id, limit=request.limit, cross_media=request.cross_media
        )
    finally:
        await services.aclose()


@app.command()
def search(
    query: Annotated[str, Argument(help="Description of what you remember.")],
    media_type: Annotated[
        MediaTypeOption | None, Option("--type", "-t", help="Restrict to one media type.")
    ] = None,
    limit: Annotated[int, Option("--limit", "-n", help="Maximum results.")] = 10,
    db_path: Annotated[
        str | None, Option("--db-path", help="DuckDB file (default from environment).")
    ] = None,
) -> None:
    """Search the corpus from a half-remembered description."""
    try:
        request = MemorySearchRequest(
            query=query,
            type=media_type.value if media_type else None,
            limit=limit,
        )
    except ValidationError as exc:
        raise _fail(f"Invalid search request: {exc.errors()[0]['msg']}", code=2) from exc

    with console.status("Searching..."):
        results = asyncio.run(run_search(request, db_path))
    if not results:
        console.print("[yellow]No matches found.[/]")
        return
    console.print(_results_table(f"Matches for: {request.query}", results))


@app.command()
def similar(
    media_id: Annotated[str, Argument(help="Id of the source media item.")],
    limit: Annotated[int, Option("--limit", "-n", help="Maximum results.")] = 5,
    cross_media: Annotated[
        bool,
        Option("--cross-media/--same-media", help="Include other media types."),
    ] = True,
    db_path: Annotated[
        str | None, Option("--db-path", help="DuckDB file (default from environment).")
    ] = None,
) -> None:
    """List items similar to an existing one."""
    try:
        request = SimilarItemsRequest(id=media_id, limit=limit, cross_media=cross_media)
    except ValidationError as exc:
        raise _fail(f"Invalid request: {exc.errors()[0]['msg']}", code=2) from exc

    try:
        results = asyncio.run(run_similar(request, db_path))
    except NotFound as exc:
        raise _fail(str(exc)) from exc
    if not results:
        console.print("[yellow]No similar items found.[/]")
        return
    console.print(_results_table(f"Similar to {request.id}", results))


@app.command()
def add(
    title: Annotated[str, Option("--title", help="Item title.")],
    media_type: Annotated[MediaTypeOption, Option("--type", "-t", help="Media type.")],
    description: Annotated[
        str | None, Option("--description", "-d", help="Item description.")
    ] = None,
    year: Annotated[int | None, Option("--year", help="Release year.")] = None,
    tags: Annotated[
        list[str] | None, Option("--tag", help="Tag name; repeat for several.")
    ] = None,
    db_path: Annotated[
        str | None, Option("--db-path", help="DuckDB file (default from environment).")
    ] = None,
) -> None:
    """Create a media item, embedding and indexing it when providers are configured."""
    try:
        media = MediaCreate(
            type=media_type.value,
            title=title,
            description=description,
            release_year=year,
            tags=tags or [],
        )
    except ValidationError as exc:
        raise _fail(f"Invalid media item: {exc.errors()[0]['msg']}", code=2) from exc

    async def _create():
        services = build_services(db_path)
        try:
            return await services.pipeline.create_media(media)
        finally:
            await services.aclose()

    record = asyncio.run(_create())
    console.print(
        Panel(
            f"[bold]{record.title}[/] ({record.type})\nId: {record.id}",
            title="Created",
            title_align="left",
            border_style="bold green",
        )
    )


@app.command("sync-embeddings")
def sync_embeddings(
    batch_size: Annotated[
        int | None, Option("--batch-size", help="Texts per embedding request.")
    ] = None,
    limit: Annotated[
        int | None, Option("--limit", help="Maximum items to embed this run.")
    ] = None,
    backend: Annotated[
        str | None, Option("--backend", help="Embedding backend: genai or local.")
    ] = None,
    db_path: Annotated[
        str | None, Option("--db-path", help="DuckDB file (default from environment).")
    ] = None,
) -> None:
    """Embed items that have no current embedding and index their vectors."""

    async def _sync():
        services = build_services(db_path, embedding_backend=backend)
        try:
            return await services.pipeline.sync_embeddings(
                batch_size=batch_size, limit=limit
            )
        finally:
            await services.aclose()

    try:
        with console.status("Embedding..."):
            result = asyncio.run(_sync())
    except (InputError, ProviderUnavailable, ValueError) as exc:
        raise _fail(f"Embedding sync failed: {exc}") from exc

    console.print(
        Panel(
            f"Pending: {result.pending}\n"
            f"Embedded: {result.embedded} in {result.batches} batch(es)\n"
            f"Vectors upserted: {result.vectors_upserted}\n"
            f"Model: {result.model_version}",
            title="Embedding sync",
            title_align="left",
            border_style="bold green",
        )
    )


@app.command("seed-tmdb")
def seed_tmdb(
    pages: Annotated[
        int, Option("--pages", help="Popular-movie pages to import (20 per page).", min=1)
    ] = DEFAULT_SEED_PAGES,
    db_path: Annotated[
        str | None, Option("--db-path", help="DuckDB file (default from environment).")
    ] = None,
) -> None:
    """Seed the corpus with popular movies from TMDb."""

    async def _seed():
        services = build_services(db_path)
        try:
            if services.catalog is None or not services.catalog.enabled:
                raise ProviderUnavailable(
                    "TMDB_ACCESS_TOKEN or TMDB_API_KEY not configured."
                )
            return await seed_popular_movies(
                services.catalog, services.pipeline, pages=pages
            )
        finally:
            await services.aclose()

    try:
        with console.status("Seeding from TMDb..."):
            result = asyncio.run(_seed())
    except ProviderUnavailable as exc:
        raise _fail(f"Seeding failed: {exc}") from exc

    console.print(
        Panel(
            f"Pages: {result.pages}\n"
            f"Added: {result.added}\n"
            f"Already present: {result.skipped}",
            title="TMDb seed",
            title_align="left",
            border_style="bold green",
        )
    )


@app.command()
def serve(
    host: Annotated[str, Option("--host", help="Bind address.")] = "127.0.0.1",
    port: Annotated[int, Option("--port", "-p", help="Port.")] = 8000,
    db_path: Annotated[
        str | None, Option("--db-path", help="DuckDB file (default from environment).")
    ] = None,
) -> None:
    """Run the HTTP API."""
    from .server import run_server

    run_server(host=host, port=port, db_path=db_path)
