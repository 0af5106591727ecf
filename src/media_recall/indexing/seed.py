"""
Corpus seeding from the external catalog's popular movie lists.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import ValidationError

from ..catalog import TMDbCatalog
from .pipeline import IndexingPipeline


logger = logging.getLogger(__name__)

DEFAULT_SEED_PAGES = 5


@dataclass(frozen=True)
class SeedResult:
    """Summary output for a seeding run."""

    pages: int
    added: int
    skipped: int


async def seed_popular_movies(
    catalog: TMDbCatalog,
    pipeline: IndexingPipeline,
    *,
    pages: int = DEFAULT_SEED_PAGES,
) -> SeedResult:
    """Import popular movies, skipping titles already stored as movies.

    Each new title goes through ``create_media`` so it is embedded and
    indexed when providers are configured. Imported items carry no tags.
    """
    added = 0
    skipped = 0
    for page in range(1, pages + 1):
        matches = await catalog.popular_movies(page)
        logger.info("Catalog page %d: %d movies", page, len(matches))
        for match in matches:
            if await pipeline.store.find_by_title(match.title, match.item_type):
                skipped += 1
                continue
            try:
                media = match.to_media_create()
            except ValidationError as exc:
                logger.warning("Skipping catalog entry %r: %s", match.title, exc)
                skipped += 1
                continue
            await pipeline.create_media(media)
            added += 1
    return SeedResult(pages=pages, added=added, skipped=skipped)
