"""
Configuration helpers for local corpus storage and service credentials.
"""

from __future__ import annotations

import os
from pathlib import Path


DEFAULT_DB_PATH = "~/.media_recall/corpus.duckdb"
ENV_DB_PATH = "MEDIA_RECALL_DB_PATH"
ENV_EMBEDDING_BACKEND = "MEDIA_RECALL_EMBEDDING_BACKEND"


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) MEDIA_RECALL_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def embedding_backend(override: str | None = None) -> str:
    """Return the configured embedding backend name (``genai`` or ``local``)."""
    backend = (override or os.getenv(ENV_EMBEDDING_BACKEND) or "genai").strip().lower()
    if backend not in {"genai", "local"}:
        raise ValueError(
            f"Unknown embedding backend {backend!r}. Expected 'genai' or 'local'."
        )
    return backend
