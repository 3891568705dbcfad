"""Database initialization utilities."""

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .session import engine
from ..models.base import Base


def init_db() -> None:
    """Initialize database by creating all tables."""
    # Registers the mapped tables on Base.metadata
    from .. import models  # noqa: F401

    Base.metadata.create_all(bind=engine)


def check_db_connection(db: Session) -> bool:
    """Check if database connection is healthy."""
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        return False
