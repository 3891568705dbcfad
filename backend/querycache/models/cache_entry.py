"""Search cache model."""

from sqlalchemy import Column, DateTime, Integer, String, JSON

from .base import Base, CreatedAtMixin


class CacheEntryRecord(Base, CreatedAtMixin):
    """Cached provider result keyed by its canonical cache key."""

    __tablename__ = "search_cache"

    key = Column(String(2048), primary_key=True)
    payload = Column(JSON, nullable=False)
    hit_count = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime, nullable=False, index=True)
    last_hit_at = Column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation."""
        return f"<CacheEntryRecord(key='{self.key}', hit_count={self.hit_count})>"
