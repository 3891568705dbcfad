"""Database models package."""
from .base import Base
from .cache_entry import CacheEntryRecord
from .search_history import SearchHistory

__all__ = ["Base", "CacheEntryRecord", "SearchHistory"]
