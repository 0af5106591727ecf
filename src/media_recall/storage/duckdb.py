"""
DuckDB corpus store for media items, tags and embeddings.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

import duckdb

from ..errors import InternalError
from ..models import MediaCreate, MediaType, TagCategory
from .base import EmbeddingRecord, MediaFilter, MediaRecord, SearchPage, TagRecord


_MEDIA_COLUMNS = (
    "m.id, m.type, m.title, m.description, m.release_year, m.language, "
    "m.poster_url, m.external_id, m.created_at"
)


def normalize_tag_name(name: str) -> str:
    return name.strip().lower()


class DuckDBCorpusStore:
    """DuckDB-backed persistence for media items, tags and embeddings.

    Every public method is a coroutine that runs its query on a worker
    thread with a dedicated cursor, so concurrent requests never share a
    DuckDB cursor.
    """

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        self.db_path = str(Path(db_path).expanduser().resolve())
        self.read_only = read_only
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = duckdb.connect(self.db_path, read_only=read_only)
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    def initialize(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS media_items (
                id VARCHAR PRIMARY KEY,
                type VARCHAR NOT NULL,
                title VARCHAR NOT NULL,
                description VARCHAR,
                release_year INTEGER,
                language VARCHAR,
                poster_url VARCHAR,
                external_id VARCHAR,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tags (
                name VARCHAR PRIMARY KEY,
                category VARCHAR NOT NULL
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS media_tags (
                media_id VARCHAR NOT NULL,
                tag_name VARCHAR NOT NULL,
                PRIMARY KEY (media_id, tag_name)
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS embeddings (
                media_id VARCHAR PRIMARY KEY,
                vector DOUBLE[] NOT NULL,
                model_version VARCHAR NOT NULL,
                indexed_model_version VARCHAR,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        self._conn.execute(
            "ALTER TABLE embeddings ADD COLUMN IF NOT EXISTS indexed_model_version VARCHAR"
        )

    @staticmethod
    def make_media_id() -> str:
        return f"media_{uuid.uuid4().hex}"

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def find_by_id(
        self, media_id: str, *, include_embedding: bool = False
    ) -> MediaRecord | None:
        return await asyncio.to_thread(
            self._find_by_id, media_id, include_embedding=include_embedding
        )

    async def find_many(self, media_filter: MediaFilter) -> list[MediaRecord]:
        return await asyncio.to_thread(self._find_many, media_filter)

    async def find_by_title(self, title: str, media_type: MediaType) -> MediaRecord | None:
        return await asyncio.to_thread(self._find_by_title, title, media_type)

    async def create(self, media: MediaCreate) -> MediaRecord:
        return await asyncio.to_thread(self._create, media)

    async def search(
        self,
        term: str,
        *,
        media_type: MediaType | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> SearchPage:
        return await asyncio.to_thread(
            self._search, term, media_type=media_type, limit=limit, offset=offset
        )

    async def upsert_tag(self, name: str, category: TagCategory = "GENRE") -> TagRecord:
        return await asyncio.to_thread(self._upsert_tag, name, category)

    async def get_embedding(self, media_id: str) -> EmbeddingRecord | None:
        return await asyncio.to_thread(self._get_embedding, media_id)

    async def save_embedding(
        self, media_id: str, values: list[float], model_version: str
    ) -> None:
        await asyncio.to_thread(self._save_embedding, media_id, values, model_version)

    async def list_missing_embeddings(
        self, *, model_version: str | None = None, limit: int | None = None
    ) -> list[MediaRecord]:
        return await asyncio.to_thread(
            self._list_missing_embeddings, model_version=model_version, limit=limit
        )

    async def list_unindexed(
        self, *, model_version: str, limit: int | None = None
    ) -> list[MediaRecord]:
        return await asyncio.to_thread(
            self._list_unindexed, model_version=model_version, limit=limit
        )

    async def mark_indexed(self, media_ids: list[str], model_version: str) -> None:
        await asyncio.to_thread(self._mark_indexed, media_ids, model_version)

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    @contextmanager
    def _cursor(self) -> Iterator[duckdb.DuckDBPyConnection]:
        cursor = self._conn.cursor()
        try:
            yield cursor
        finally:
            cursor.close()

    def _find_by_id(
        self, media_id: str, *, include_embedding: bool = False
    ) -> MediaRecord | None:
        with self._cursor() as cur:
            row = cur.execute(
                f"SELECT {_MEDIA_COLUMNS} FROM media_items m WHERE m.id = ? LIMIT 1",
                [media_id],
            ).fetchone()
            if row is None:
                return None
            return self._hydrate(cur, [row], include_embedding=include_embedding)[0]

    def _find_many(self, media_filter: MediaFilter) -> list[MediaRecord]:
        if media_filter.ids is not None and not media_filter.ids:
            return []
        if media_filter.tag_names is not None and not media_filter.tag_names:
            return []

        sql = f"SELECT {_MEDIA_COLUMNS} FROM media_items m WHERE TRUE"
        params: list[Any] = []

        if media_filter.ids is not None:
            placeholders = ", ".join(["?"] * len(media_filter.ids))
            sql += f"\n  AND m.id IN ({placeholders})"
            params.extend(media_filter.ids)
        if media_filter.media_type is not None:
            sql += "\n  AND m.type = ?"
            params.append(media_filter.media_type)
        if media_filter.exclude_id is not None:
            sql += "\n  AND m.id <> ?"
            params.append(media_filter.exclude_id)
        if media_filter.tag_names is not None:
            names = sorted({normalize_tag_name(name) for name in media_filter.tag_names})
            placeholders = ", ".join(["?"] * len(names))
            sql += (
                "\n  AND m.id IN (SELECT media_id FROM media_tags "
                f"WHERE tag_name IN ({placeholders}))"
            )
            params.extend(names)
        if media_filter.embedding_model is not None:
            sql += (
                "\n  AND m.id IN (SELECT media_id FROM embeddings "
                "WHERE model_version = ? AND len(vector) > 0)"
            )
            params.append(media_filter.embedding_model)

        sql += "\nORDER BY m.created_at ASC, m.id ASC"
        if media_filter.limit is not None:
            sql += "\nLIMIT ?"
            params.append(max(media_filter.limit, 0))

        with self._cursor() as cur:
            rows = cur.execute(sql, params).fetchall()
            return self._hydrate(
                cur, rows, include_embedding=media_filter.include_embedding
            )

    def _find_by_title(self, title: str, media_type: MediaType) -> MediaRecord | None:
        with self._cursor() as cur:
            row = cur.execute(
                f"""
                SELECT {_MEDIA_COLUMNS}
                FROM media_items m
                WHERE m.title = ? AND m.type = ?
                ORDER BY m.created_at ASC
                LIMIT 1
                """,
                [title, media_type],
            ).fetchone()
            if row is None:
                return None
            return self._hydrate(cur, [row])[0]

    def _create(self, media: MediaCreate) -> MediaRecord:
        media_id = self.make_media_id()
        tag_names: list[str] = []
        for raw_name in media.tags:
            name = normalize_tag_name(raw_name)
            if name and name not in tag_names:
                tag_names.append(name)

        with self._cursor() as cur:
            cur.begin()
            try:
                cur.execute(
                    """
                    INSERT INTO media_items (
                        id, type, title, description, release_year, language,
                        poster_url, external_id
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    [
                        media_id,
                        media.type,
                        media.title,
                        media.description,
                        media.release_year,
                        media.language,
                        media.poster_url,
                        media.external_id,
                    ],
                )
                for name in tag_names:
                    self._insert_tag(cur, name, "GENRE")
                    cur.execute(
                        """
                        INSERT INTO media_tags (media_id, tag_name)
                        VALUES (?, ?)
                        ON CONFLICT DO NOTHING
                        """,
                        [media_id, name],
                    )
                cur.commit()
            except duckdb.Error:
                cur.rollback()
                raise

        created = self._find_by_id(media_id)
        if created is None:
            raise InternalError(f"Failed to create media item: {media.title}")
        return created

    def _search(
        self,
        term: str,
        *,
        media_type: MediaType | None,
        limit: int,
        offset: int,
    ) -> SearchPage:
        needle = term.strip().lower()
        if not needle:
            return SearchPage()

        where = """
            WHERE (
                contains(lower(m.title), ?)
                OR contains(lower(coalesce(m.description, '')), ?)
            )
        """
        params: list[Any] = [needle, needle]
        if media_type is not None:
            where += "\n  AND m.type = ?"
            params.append(media_type)

        with self._cursor() as cur:
            count_row = cur.execute(
                f"SELECT COUNT(*) FROM media_items m {where}", params
            ).fetchone()
            rows = cur.execute(
                f"""
                SELECT {_MEDIA_COLUMNS}
                FROM media_items m
                {where}
                ORDER BY m.title ASC, m.id ASC
                LIMIT ? OFFSET ?
                """,
                [*params, max(limit, 0), max(offset, 0)],
            ).fetchall()
            items = self._hydrate(cur, rows)
        total = int(count_row[0]) if count_row else 0
        return SearchPage(items=items, total=total)

    def _upsert_tag(self, name: str, category: TagCategory) -> TagRecord:
        normalized = normalize_tag_name(name)
        if not normalized:
            raise ValueError("Tag name must not be empty.")
        with self._cursor() as cur:
            self._insert_tag(cur, normalized, category)
            row = cur.execute(
                "SELECT name, category FROM tags WHERE name = ?",
                [normalized],
            ).fetchone()
        if row is None:
            raise InternalError(f"Failed to upsert tag: {normalized}")
        return TagRecord(name=str(row[0]), category=str(row[1]))  # type: ignore[arg-type]

    @staticmethod
    def _insert_tag(
        cur: duckdb.DuckDBPyConnection, name: str, category: TagCategory
    ) -> None:
        """Insert a normalized tag; an existing tag keeps its category."""
        cur.execute(
            """
            INSERT INTO tags (name, category)
            VALUES (?, ?)
            ON CONFLICT(name) DO NOTHING
            """,
            [name, category],
        )

    def _get_embedding(self, media_id: str) -> EmbeddingRecord | None:
        with self._cursor() as cur:
            row = cur.execute(
                "SELECT media_id, vector, model_version FROM embeddings WHERE media_id = ?",
                [media_id],
            ).fetchone()
        if row is None:
            return None
        return EmbeddingRecord(
            media_id=str(row[0]),
            values=[float(v) for v in row[1] or []],
            model_version=str(row[2]),
        )

    def _save_embedding(
        self, media_id: str, values: list[float], model_version: str
    ) -> None:
        with self._cursor() as cur:
            cur.begin()
            try:
                # Delete-then-insert keeps list-column updates out of ON CONFLICT.
                cur.execute("DELETE FROM embeddings WHERE media_id = ?", [media_id])
                cur.execute(
                    """
                    INSERT INTO embeddings (media_id, vector, model_version)
                    VALUES (?, ?, ?)
                    """,
                    [media_id, [float(v) for v in values], model_version],
                )
                cur.commit()
            except duckdb.Error:
                cur.rollback()
                raise

    def _list_missing_embeddings(
        self, *, model_version: str | None, limit: int | None
    ) -> list[MediaRecord]:
        sql = f"""
            SELECT {_MEDIA_COLUMNS}
            FROM media_items m
            LEFT JOIN embeddings e ON e.media_id = m.id
            WHERE e.media_id IS NULL
        """
        params: list[Any] = []
        if model_version is not None:
            sql += " OR e.model_version <> ?"
            params.append(model_version)
        sql += "\nORDER BY m.created_at ASC, m.id ASC"
        if limit is not None:
            sql += "\nLIMIT ?"
            params.append(max(limit, 0))
        with self._cursor() as cur:
            rows = cur.execute(sql, params).fetchall()
            return self._hydrate(cur, rows)

    def _list_unindexed(
        self, *, model_version: str, limit: int | None
    ) -> list[MediaRecord]:
        sql = f"""
            SELECT {_MEDIA_COLUMNS}
            FROM media_items m
            JOIN embeddings e ON e.media_id = m.id
            WHERE e.model_version = ?
              AND len(e.vector) > 0
              AND e.indexed_model_version IS DISTINCT FROM e.model_version
            ORDER BY m.created_at ASC, m.id ASC
        """
        params: list[Any] = [model_version]
        if limit is not None:
            sql += "\nLIMIT ?"
            params.append(max(limit, 0))
        with self._cursor() as cur:
            rows = cur.execute(sql, params).fetchall()
            return self._hydrate(cur, rows, include_embedding=True)

    def _mark_indexed(self, media_ids: list[str], model_version: str) -> None:
        if not media_ids:
            return
        placeholders = ", ".join(["?"] * len(media_ids))
        with self._cursor() as cur:
            # Only rows still holding the vector that was pushed are marked.
            cur.execute(
                f"""
                UPDATE embeddings
                SET indexed_model_version = model_version
                WHERE model_version = ? AND media_id IN ({placeholders})
                """,
                [model_version, *media_ids],
            )

    def _hydrate(
        self,
        cur: duckdb.DuckDBPyConnection,
        rows: list[tuple[Any, ...]],
        *,
        include_embedding: bool = False,
    ) -> list[MediaRecord]:
        if not rows:
            return []
        ids = [str(row[0]) for row in rows]
        placeholders = ", ".join(["?"] * len(ids))

        tags_by_media: dict[str, list[TagRecord]] = {media_id: [] for media_id in ids}
        tag_rows = cur.execute(
            f"""
            SELECT mt.media_id, t.name, t.category
            FROM media_tags mt
            JOIN tags t ON t.name = mt.tag_name
            WHERE mt.media_id IN ({placeholders})
            ORDER BY t.name ASC
            """,
            ids,
        ).fetchall()
        for media_id, name, category in tag_rows:
            tags_by_media[str(media_id)].append(
                TagRecord(name=str(name), category=str(category))  # type: ignore[arg-type]
            )

        embeddings: dict[str, EmbeddingRecord] = {}
        if include_embedding:
            embedding_rows = cur.execute(
                f"""
                SELECT media_id, vector, model_version
                FROM embeddings
                WHERE media_id IN ({placeholders})
                """,
                ids,
            ).fetchall()
            for media_id, vector, model_version in embedding_rows:
                embeddings[str(media_id)] = EmbeddingRecord(
                    media_id=str(media_id),
                    values=[float(v) for v in vector or []],
                    model_version=str(model_version),
                )

        return [
            self._row_to_media(
                row,
                tags=tags_by_media[str(row[0])],
                embedding=embeddings.get(str(row[0])),
            )
            for row in rows
        ]

    @staticmethod
    def _row_to_media(
        row: tuple[Any, ...],
        *,
        tags: list[TagRecord],
        embedding: EmbeddingRecord | None,
    ) -> MediaRecord:
        created_at = row[8]
        return MediaRecord(
            id=str(row[0]),
            type=str(row[1]),  # type: ignore[arg-type]
            title=str(row[2]),
            description=None if row[3] is None else str(row[3]),
            release_year=None if row[4] is None else int(row[4]),
            language=None if row[5] is None else str(row[5]),
            poster_url=None if row[6] is None else str(row[6]),
            external_id=None if row[7] is None else str(row[7]),
            created_at=created_at.isoformat()
            if isinstance(created_at, datetime)
            else str(created_at or ""),
            tags=tuple(tags),
            embedding=embedding,
        )
