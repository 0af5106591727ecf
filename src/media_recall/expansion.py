"""
LLM-backed query expansion and cold-start candidate selection.

The expander asks a Gemini model for related keywords and plausible titles
for a half-remembered description. It never raises: any failure collapses
to ``[query]`` so search can proceed on the raw text alone.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Any

from google.genai import Client as GenAIClient


logger = logging.getLogger(__name__)

_DEFAULT_MODEL = "gemini-2.0-flash"

EXPANSION_PROMPT = """
You help people find movies, TV shows, books and video games they only
half remember. Given the user's description, reply with a JSON array of
5 to 10 short search strings: likely titles first, then distinctive
keywords, genres and themes. Reply with the JSON array only.
"""

GENERIC_TERMS = frozenset(
    {
        "science fiction",
        "action",
        "romance",
        "comedy",
        "drama",
        "thriller",
        "horror",
        "adventure",
    }
)

_LIST_KEYS = ("keywords", "tags", "terms")


def parse_expansion(text: str | None) -> list[str]:
    """Extract string terms from an LLM reply; ``[]`` when unusable."""
    if not text:
        return []
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError:
        return []
    if isinstance(data, dict):
        data = next(
            (data[key] for key in _LIST_KEYS if isinstance(data.get(key), list)),
            None,
        )
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, str)]


def is_title_like(term: str) -> bool:
    return bool(term) and term[0].isupper() and " " in term.strip()


def import_candidates(terms: list[str]) -> list[str]:
    """Order expansion terms for external catalog lookup.

    Title-like terms come first (stable), then everything else. Terms
    shorter than three characters and generic genre words are dropped.
    """
    usable = [
        term
        for term in terms
        if len(term.strip()) >= 3 and term.strip().lower() not in GENERIC_TERMS
    ]
    return sorted(usable, key=lambda term: 0 if is_title_like(term) else 1)


class QueryExpander:
    """Map a free-text query to auxiliary search terms via Google GenAI."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float = 10.0,
        client: Any | None = None,
    ) -> None:
        self.model = model or os.getenv("MEDIA_RECALL_EXPANSION_MODEL", _DEFAULT_MODEL)
        self.timeout = timeout
        if client is not None:
            self._client = client
        else:
            resolved_key = api_key or os.getenv("GOOGLE_API_KEY")
            self._client = GenAIClient(api_key=resolved_key) if resolved_key else None

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def expand(self, query: str) -> list[str]:
        if not self.enabled:
            return [query]
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self.model,
                    contents=query,
                    config={
                        "system_instruction": EXPANSION_PROMPT,
                        "response_mime_type": "application/json",
                        "temperature": 0.1,
                    },
                ),
                timeout=self.timeout,
            )
        except Exception as exc:
            logger.warning("Query expansion failed: %s", exc)
            return [query]

        terms = parse_expansion(getattr(response, "text", None))
        if not terms:
            logger.warning("Query expansion returned no usable terms")
            return [query]
        return terms
