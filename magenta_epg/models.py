"""
SQLAlchemy ORM Models for the feed service

This module defines the table backing the upstream response cache.
"""
from datetime import datetime
from sqlalchemy import String, LargeBinary, DateTime, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class CacheEntry(Base):
    """Raw upstream payload stored under a cache key"""
    __tablename__ = "response_cache"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    payload: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    # Stored as naive UTC, SQLite keeps no offset
    stored_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        Index("idx_response_cache_stored_at", "stored_at"),
    )

    def __repr__(self) -> str:
        return f"<CacheEntry(key={self.key}, stored_at={self.stored_at}, size={len(self.payload)})>"
