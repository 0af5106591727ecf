"""
Pinecone vector index accessed over its HTTPS REST API.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence
from typing import Any

import httpx

from ..errors import ProviderUnavailable
from .base import UPSERT_BATCH_SIZE, VectorFilter, VectorMatch, VectorRecord, chunked


logger = logging.getLogger(__name__)

_CONTROL_PLANE_URL = "https://api.pinecone.io"
_API_VERSION = "2024-07"
_DEFAULT_INDEX = "media-recall"


def _clean_metadata(metadata: dict[str, Any]) -> dict[str, Any]:
    # Pinecone rejects null metadata values.
    return {key: value for key, value in metadata.items() if value is not None}


def _to_pinecone_filter(vector_filter: VectorFilter | None) -> dict[str, Any] | None:
    if vector_filter is None or vector_filter.is_empty():
        return None
    expression: dict[str, Any] = {}
    if vector_filter.media_type is not None:
        expression["type"] = {"$eq": vector_filter.media_type}
    if vector_filter.model_version is not None:
        expression["model_version"] = {"$eq": vector_filter.model_version}
    year_range: dict[str, int] = {}
    if vector_filter.min_year is not None:
        year_range["$gte"] = vector_filter.min_year
    if vector_filter.max_year is not None:
        year_range["$lte"] = vector_filter.max_year
    if year_range:
        expression["release_year"] = year_range
    return expression


class PineconeVectorIndex:
    """Remote vector index; degrades to unavailable without credentials."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        index_name: str | None = None,
        host: str | None = None,
        namespace: str | None = None,
        batch_size: int = UPSERT_BATCH_SIZE,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
        control_plane_url: str = _CONTROL_PLANE_URL,
    ) -> None:
        self.api_key = api_key or os.getenv("PINECONE_API_KEY") or None
        self.index_name = index_name or os.getenv("PINECONE_INDEX", _DEFAULT_INDEX)
        self.namespace = namespace
        self.batch_size = batch_size
        self._host = host or os.getenv("PINECONE_HOST") or None
        self._control_plane_url = control_plane_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def is_available(self) -> bool:
        if not self.api_key:
            return False
        try:
            await self._post("/describe_index_stats", {})
        except ProviderUnavailable as exc:
            logger.warning("Pinecone index %s unavailable: %s", self.index_name, exc)
            return False
        return True

    async def upsert(
        self, vector_id: str, values: list[float], metadata: dict[str, Any] | None = None
    ) -> None:
        await self.upsert_many(
            [VectorRecord(id=vector_id, values=list(values), metadata=dict(metadata or {}))]
        )

    async def upsert_many(self, records: Sequence[VectorRecord]) -> None:
        for chunk in chunked(records, self.batch_size):
            payload = self._with_namespace(
                {
                    "vectors": [
                        {
                            "id": record.id,
                            "values": list(record.values),
                            "metadata": _clean_metadata(record.metadata),
                        }
                        for record in chunk
                    ]
                }
            )
            await self._post("/vectors/upsert", payload)

    async def query(
        self,
        vector: list[float],
        *,
        top_k: int = 10,
        vector_filter: VectorFilter | None = None,
    ) -> list[VectorMatch]:
        payload = self._with_namespace(
            {"vector": list(vector), "topK": top_k, "includeMetadata": True}
        )
        expression = _to_pinecone_filter(vector_filter)
        if expression:
            payload["filter"] = expression

        data = await self._post("/query", payload)
        matches = [
            VectorMatch(
                id=str(match["id"]),
                score=float(match.get("score") or 0.0),
                metadata=dict(match.get("metadata") or {}),
            )
            for match in data.get("matches") or []
            if isinstance(match, dict) and "id" in match
        ]
        matches.sort(key=lambda match: -match.score)
        return matches

    async def delete(self, vector_id: str) -> None:
        await self.delete_many([vector_id])

    async def delete_many(self, vector_ids: Sequence[str]) -> None:
        if not vector_ids:
            return
        await self._post("/vectors/delete", self._with_namespace({"ids": list(vector_ids)}))

    def _with_namespace(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self.namespace:
            payload["namespace"] = self.namespace
        return payload

    def _headers(self) -> dict[str, str]:
        return {
            "Api-Key": self.api_key or "",
            "Content-Type": "application/json",
            "X-Pinecone-API-Version": _API_VERSION,
        }

    async def _data_plane_url(self) -> str:
        if not self.api_key:
            raise ProviderUnavailable("PINECONE_API_KEY not configured.")
        if self._host is None:
            info = await self._request(
                "GET", f"{self._control_plane_url}/indexes/{self.index_name}"
            )
            host = info.get("host")
            if not isinstance(host, str) or not host:
                raise ProviderUnavailable(
                    f"Pinecone index {self.index_name!r} has no host."
                )
            self._host = host
        host = self._host.rstrip("/")
        return host if host.startswith("http") else f"https://{host}"

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        base_url = await self._data_plane_url()
        return await self._request("POST", f"{base_url}{path}", payload)

    async def _request(
        self, method: str, url: str, payload: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method, url, headers=self._headers(), json=payload
            )
            response.raise_for_status()
            data = response.json() if response.content else {}
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderUnavailable(f"Pinecone request failed: {exc}") from exc
        return data if isinstance(data, dict) else {}
