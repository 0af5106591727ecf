"""
TMDb client used for cold-start imports and corpus seeding.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any

import httpx

from .models import MediaCreate, MediaType


logger = logging.getLogger(__name__)

_BASE_URL = "https://api.themoviedb.org/3"
IMAGE_BASE_URL = "https://image.tmdb.org/t/p/w500"

_CATALOG_TYPES: dict[str, MediaType] = {"movie": "MOVIE", "tv": "SHOW"}


def _parse_year(value: Any) -> int | None:
    if not isinstance(value, str) or len(value) < 4:
        return None
    try:
        return int(value[:4])
    except ValueError:
        return None


@dataclass(frozen=True)
class CatalogMatch:
    """Best movie or TV hit from the external catalog."""

    external_id: str
    media_type: str
    title: str
    overview: str | None = None
    release_year: int | None = None
    poster_url: str | None = None
    language: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "CatalogMatch | None":
        media_type = payload.get("media_type")
        if media_type not in _CATALOG_TYPES:
            return None
        title = payload.get("title") or payload.get("name")
        if not title:
            return None
        poster_path = payload.get("poster_path")
        return cls(
            external_id=str(payload.get("id", "")),
            media_type=media_type,
            title=title,
            overview=payload.get("overview") or None,
            release_year=_parse_year(
                payload.get("release_date") or payload.get("first_air_date")
            ),
            poster_url=f"{IMAGE_BASE_URL}{poster_path}" if poster_path else None,
            language=payload.get("original_language") or None,
        )

    @property
    def item_type(self) -> MediaType:
        return _CATALOG_TYPES[self.media_type]

    def to_media_create(self) -> MediaCreate:
        return MediaCreate(
            type=self.item_type,
            title=self.title,
            description=self.overview,
            release_year=self.release_year,
            language=self.language,
            poster_url=self.poster_url,
            external_id=self.external_id or None,
            tags=[],
        )


class TMDbCatalog:
    """Thin async wrapper over TMDb search and popular lists; never raises."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        access_token: str | None = None,
        base_url: str = _BASE_URL,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key or os.getenv("TMDB_API_KEY") or None
        self.access_token = access_token or os.getenv("TMDB_ACCESS_TOKEN") or None
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key or self.access_token)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def search_multi(self, title: str) -> CatalogMatch | None:
        if not self.enabled or not title.strip():
            return None
        data = await self._get(
            "/search/multi", {"query": title, "include_adult": "false"}
        )
        for payload in _results(data):
            match = CatalogMatch.from_payload(payload)
            if match is not None:
                return match
        return None

    async def popular_movies(self, page: int = 1) -> list[CatalogMatch]:
        """Return one page of ``/movie/popular``; empty on any failure."""
        if not self.enabled:
            return []
        data = await self._get("/movie/popular", {"language": "en-US", "page": str(page)})
        matches = []
        for payload in _results(data):
            match = CatalogMatch.from_payload({**payload, "media_type": "movie"})
            if match is not None:
                matches.append(match)
        return matches

    async def _get(self, path: str, params: dict[str, str]) -> Any:
        headers = {"Accept": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        else:
            params = {**params, "api_key": self.api_key or ""}

        try:
            response = await self._client.get(
                f"{self.base_url}{path}", params=params, headers=headers
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Catalog request %s failed: %s", path, exc)
            return None


def _results(data: Any) -> list[dict[str, Any]]:
    results = data.get("results") if isinstance(data, dict) else None
    return [payload for payload in results or [] if isinstance(payload, dict)]
