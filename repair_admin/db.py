"""
Async Postgres document backend: one `documents` table, JSONB body per (collection, id).
Field deletion uses the jsonb `-` operator so removed keys are absent, not null.
"""
import json
from typing import Any

import asyncpg

from repair_admin.config import settings
from repair_admin.documents import DocumentNotFoundError, RepositoryError, split_update

_pool: asyncpg.Pool | None = None


async def get_pool() -> asyncpg.Pool:
    global _pool
    if _pool is None:
        _pool = await asyncpg.create_pool(
            settings.database_url,
            min_size=1,
            max_size=5,
            command_timeout=60,
        )
    return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def init_schema(pool: asyncpg.Pool) -> None:
    async with pool.acquire() as conn:
        await conn.execute("""
            CREATE TABLE IF NOT EXISTS documents (
                collection VARCHAR(100) NOT NULL,
                id VARCHAR(255) NOT NULL,
                doc JSONB NOT NULL DEFAULT '{}'::jsonb,
                created_at TIMESTAMP DEFAULT NOW(),
                updated_at TIMESTAMP DEFAULT NOW(),
                PRIMARY KEY (collection, id)
            );
        """)


class PostgresDocumentStore:
    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT doc FROM documents WHERE collection = $1 AND id = $2;",
                    collection,
                    doc_id,
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise RepositoryError(str(e)) from e
        if row is None:
            return None
        return json.loads(row["doc"])

    async def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT id, doc FROM documents WHERE collection = $1 ORDER BY id;",
                    collection,
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise RepositoryError(str(e)) from e
        return [(r["id"], json.loads(r["doc"])) for r in rows]

    async def find_by(self, collection: str, field: str, value: Any) -> tuple[str, dict[str, Any]] | None:
        try:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT id, doc FROM documents WHERE collection = $1 AND doc -> $2 = $3::jsonb LIMIT 1;",
                    collection,
                    field,
                    json.dumps(value),
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise RepositoryError(str(e)) from e
        if row is None:
            return None
        return row["id"], json.loads(row["doc"])

    async def create(self, collection: str, doc_id: str, doc: dict[str, Any]) -> None:
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO documents (collection, id, doc, updated_at)
                    VALUES ($1, $2, $3::jsonb, NOW())
                    ON CONFLICT (collection, id) DO UPDATE SET doc = EXCLUDED.doc, updated_at = NOW();
                    """,
                    collection,
                    doc_id,
                    json.dumps(doc, default=str),
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise RepositoryError(str(e)) from e

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        to_set, to_delete = split_update(fields)
        try:
            async with self._pool.acquire() as conn:
                result = await conn.execute(
                    """
                    UPDATE documents SET doc = (doc || $3::jsonb) - $4::text[], updated_at = NOW()
                    WHERE collection = $1 AND id = $2;
                    """,
                    collection,
                    doc_id,
                    json.dumps(to_set, default=str),
                    to_delete,
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise RepositoryError(str(e)) from e
        # asyncpg returns the command tag, e.g. "UPDATE 1"
        if result.split()[-1] == "0":
            raise DocumentNotFoundError(collection, doc_id)
