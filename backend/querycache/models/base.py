"""Base SQLAlchemy model."""

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base

from ..core.clock import utcnow

Base = declarative_base()


class CreatedAtMixin:
    """Mixin for an immutable, indexed created_at timestamp (naive UTC)."""

    created_at = Column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True
    )
