"""Usage statistics derived from the cache store and history ledger.

Nothing here is persisted: every figure is recomputed from current store
state at call time. The two stores are read independently, so a snapshot
taken under concurrent writes is eventually consistent, not transactional.
"""

from collections import Counter
from datetime import timedelta
from typing import Optional

from .base import BaseService
from .cache_store import CacheStore
from .history_ledger import HistoryLedger
from .key_normalizer import query_from_key
from ..core.clock import utcnow
from ..schemas.search import QueryCount, SystemStats, UserStats

TOP_USER_QUERIES = 5
TOP_POPULAR_QUERIES = 10


class StatsService(BaseService):
    """Read-only aggregation over the cache store and history ledger."""

    def __init__(self, cache_store: CacheStore, history_ledger: HistoryLedger, clock=None):
        super().__init__()
        self.cache_store = cache_store
        self.history_ledger = history_ledger
        self.clock = clock or utcnow

    def user_stats(self, user_id: str) -> UserStats:
        items = self.history_ledger.items_for_user(user_id)
        total = len(items)
        if not total:
            return UserStats(
                total_searches=0,
                unique_queries=0,
                avg_result_count=0.0,
                cache_hit_ratio=0.0,
            )

        now = self.clock()
        start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        week_ago = now - timedelta(days=7)

        queries = Counter(item.query.strip().casefold() for item in items)
        content_types = Counter(
            (item.filters.content_type if item.filters and item.filters.content_type else "web")
            for item in items
        )
        hits = sum(1 for item in items if item.cache_hit)

        return UserStats(
            total_searches=total,
            unique_queries=len(queries),
            avg_result_count=round(sum(i.result_count for i in items) / total, 2),
            cache_hit_ratio=round(hits / total, 4),
            searches_today=sum(1 for i in items if i.created_at >= start_of_today),
            searches_this_week=sum(1 for i in items if i.created_at >= week_ago),
            top_queries=[
                QueryCount(query=q, count=c) for q, c in queries.most_common(TOP_USER_QUERIES)
            ],
            searches_by_content_type=dict(content_types.most_common()),
        )

    def system_stats(self, top: Optional[int] = None) -> SystemStats:
        entries = self.cache_store.snapshot()
        total_history = self.history_ledger.count_all()

        total_entries = len(entries)
        total_hits = sum(e.hit_count for e in entries)
        # Each stored entry stands for the miss that created it
        requests = total_entries + total_hits
        popular = sorted(entries, key=lambda e: e.hit_count, reverse=True)[:top or TOP_POPULAR_QUERIES]

        return SystemStats(
            total_cache_entries=total_entries,
            total_hits=total_hits,
            aggregate_hit_ratio=round(total_hits / requests, 4) if requests else 0.0,
            total_history_items=total_history,
            avg_search_time=(
                round(sum(e.payload.search_time for e in entries) / total_entries, 2)
                if total_entries else 0.0
            ),
            popular_queries=[
                QueryCount(query=query_from_key(e.key), count=e.hit_count) for e in popular
            ],
        )
