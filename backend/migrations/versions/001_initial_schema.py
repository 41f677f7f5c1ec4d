"""Initial schema: search result cache.

Revision ID: 001
Revises: (none)
Create Date: 2026-10-19
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- search_cache ---
    op.create_table(
        "search_cache",
        sa.Column("query", sa.Text(), primary_key=True),
        sa.Column("results", JSONB, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index("idx_search_cache_created_at", "search_cache", ["created_at"])


def downgrade() -> None:
    op.drop_index("idx_search_cache_created_at", table_name="search_cache")
    op.drop_table("search_cache")
