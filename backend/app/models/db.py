"""SQLAlchemy ORM models.

The database holds exactly one thing: the search result cache. Products and
reviews are not stored individually; a cached row carries the serialized list.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Index, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class SearchCacheRow(Base):
    __tablename__ = "search_cache"
    __table_args__ = (Index("idx_search_cache_created_at", "created_at"),)

    # Lower-cased, trimmed user query
    query: Mapped[str] = mapped_column(Text, primary_key=True)
    results: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
