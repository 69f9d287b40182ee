"""
Shared Blocks configuration -- all environment variables in one place.

Read from environment at import time. Components accept explicit overrides
and fall back to these values.
"""

from __future__ import annotations

import os

DELETE_POLICIES: set[str] = {"detach", "cascade", "block"}


class Settings:
    """Package settings from environment variables."""

    # Database (PostgresStorage, alembic)
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "")
    DB_POOL_MIN_SIZE: int = int(os.environ.get("SHARED_BLOCKS_DB_POOL_MIN_SIZE", "1"))
    DB_POOL_MAX_SIZE: int = int(os.environ.get("SHARED_BLOCKS_DB_POOL_MAX_SIZE", "10"))

    # What happens to references when a shared block is deleted:
    #   detach  -- leave them, they resolve to Unresolved
    #   cascade -- remove them from every open document
    #   block   -- refuse to delete while any open document references it
    DELETE_POLICY: str = os.environ.get("SHARED_BLOCKS_DELETE_POLICY", "detach").lower()

    # Extra attempts after a failed persistence round trip
    SAVE_RETRIES: int = int(os.environ.get("SHARED_BLOCKS_SAVE_RETRIES", "1"))


# Singleton instance
settings = Settings()

if settings.DELETE_POLICY not in DELETE_POLICIES:
    raise RuntimeError(
        f"SHARED_BLOCKS_DELETE_POLICY must be one of {sorted(DELETE_POLICIES)}, got {settings.DELETE_POLICY!r}"
    )
if settings.SAVE_RETRIES < 0:
    raise RuntimeError("SHARED_BLOCKS_SAVE_RETRIES must be >= 0")
