"""Search history model."""

from sqlalchemy import Boolean, Column, Integer, String, JSON, Index

from .base import Base, CreatedAtMixin


class SearchHistory(Base, CreatedAtMixin):
    """Search history model for tracking user searches."""

    __tablename__ = "search_history"
    __table_args__ = (
        Index("ix_search_history_user_created", "user_id", "created_at"),
    )

    id = Column(String(36), primary_key=True)
    # Weak reference; users live in the auth service
    user_id = Column(String(64), nullable=False, index=True)
    query = Column(String(1000), nullable=False)
    filters = Column(JSON, nullable=True)
    results_count = Column(Integer, default=0, nullable=False)
    cache_hit = Column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        """String representation."""
        return f"<SearchHistory(id={self.id}, query='{self.query}', user_id={self.user_id})>"
