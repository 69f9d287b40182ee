"""add shared_blocks table

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op


revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # One row per shared block; the serial id is the block's permanent id
    # Content is the block's node list as JSON (kind, attributes, children)
    op.execute("""
        CREATE TABLE shared_blocks (
            id BIGSERIAL PRIMARY KEY,
            title TEXT NOT NULL DEFAULT '',
            content JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at TIMESTAMPTZ DEFAULT now(),
            updated_at TIMESTAMPTZ DEFAULT now()
        );
    """)

    # Inserter loads most recently modified first
    op.execute("""
        CREATE INDEX idx_shared_blocks_updated ON shared_blocks(updated_at DESC);
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS shared_blocks CASCADE;")
