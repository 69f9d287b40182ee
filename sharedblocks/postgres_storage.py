"""
PostgresStorage adapter for shared blocks.

Implements the SharedBlockStorage protocol using Postgres as the backend.
Blocks live in the shared_blocks table (see alembic/versions); the table's
BIGSERIAL id is the permanent id handed back to the registry.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import asyncpg

from sharedblocks.config import settings
from sharedblocks.errors import PersistenceFailure
from sharedblocks.storage import SharedBlockStorage
from sharedblocks.types import SharedBlock, is_temporary_id

logger = logging.getLogger(__name__)


async def create_pool(dsn: str | None = None) -> asyncpg.Pool:
    """Create a connection pool from DATABASE_URL (or an explicit dsn)."""
    return await asyncpg.create_pool(
        dsn=dsn or settings.DATABASE_URL,
        min_size=settings.DB_POOL_MIN_SIZE,
        max_size=settings.DB_POOL_MAX_SIZE,
        command_timeout=60,
    )


def _row_to_block(row: asyncpg.Record) -> SharedBlock:
    content = row["content"]
    if isinstance(content, str):
        content = json.loads(content)
    return SharedBlock.from_dict(
        {
            "id": row["id"],
            "title": row["title"],
            "content": content,
            "updated_at": row["updated_at"].strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
    )


class PostgresStorage(SharedBlockStorage):
    """Postgres-based storage for shared blocks."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def persist_create_or_update(self, block: SharedBlock) -> str:
        """Insert a temporary block (returns the new id) or update a permanent one."""
        record: dict[str, Any] = block.to_dict()
        content = json.dumps(record["content"])
        try:
            async with self.pool.acquire() as conn:
                if is_temporary_id(block.id):
                    row = await conn.fetchrow(
                        """
                        INSERT INTO shared_blocks (title, content, created_at, updated_at)
                        VALUES ($1, $2::jsonb, now(), now())
                        RETURNING id
                        """,
                        block.title,
                        content,
                    )
                else:
                    row = await conn.fetchrow(
                        """
                        UPDATE shared_blocks
                        SET title = $2, content = $3::jsonb, updated_at = now()
                        WHERE id = $1
                        RETURNING id
                        """,
                        int(block.id),
                        block.title,
                        content,
                    )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"Failed to save shared block {block.id}: {e}") from e

        if row is None:
            raise PersistenceFailure(f"Shared block {block.id} no longer exists in storage")
        return str(row["id"])

    async def persist_delete(self, permanent_id: str) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    "DELETE FROM shared_blocks WHERE id = $1",
                    int(permanent_id),
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"Failed to delete shared block {permanent_id}: {e}") from e

    async def fetch(self, permanent_id: str) -> SharedBlock | None:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    "SELECT id, title, content, updated_at FROM shared_blocks WHERE id = $1",
                    int(permanent_id),
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"Failed to fetch shared block {permanent_id}: {e}") from e
        return _row_to_block(row) if row else None

    async def fetch_all(self) -> list[SharedBlock]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT id, title, content, updated_at FROM shared_blocks ORDER BY updated_at DESC"
                )
        except (asyncpg.PostgresError, OSError) as e:
            raise PersistenceFailure(f"Failed to fetch shared blocks: {e}") from e
        logger.debug("Fetched %d shared block(s)", len(rows))
        return [_row_to_block(row) for row in rows]

    async def close(self) -> None:
        """Close the connection pool."""
        await self.pool.close()
