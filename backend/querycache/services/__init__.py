"""Service layer initialization."""
from .base import BaseService
from .cache_store import CacheStore, InMemoryCacheStore, SqlCacheStore, build_cache_store
from .history_ledger import HistoryLedger, InMemoryHistoryLedger, SqlHistoryLedger, build_history_ledger
from .key_normalizer import normalize
from .providers import FallbackSearchProvider, HttpSearchProvider, SearchProvider, build_provider
from .search_service import SearchService
from .stats_service import StatsService

__all__ = [
    'BaseService',
    'CacheStore',
    'InMemoryCacheStore',
    'SqlCacheStore',
    'build_cache_store',
    'HistoryLedger',
    'InMemoryHistoryLedger',
    'SqlHistoryLedger',
    'build_history_ledger',
    'normalize',
    'SearchProvider',
    'HttpSearchProvider',
    'FallbackSearchProvider',
    'build_provider',
    'SearchService',
    'StatsService',
]
