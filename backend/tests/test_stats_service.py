"""Tests for statistics aggregation."""

from datetime import timedelta

import pytest

from tests.conftest import make_payload


class TestUserStats:
    """Test cases for per-user statistics."""

    def test_empty_user(self, stats_service):
        stats = stats_service.user_stats("nobody")

        assert stats.total_searches == 0
        assert stats.avg_result_count == 0.0
        assert stats.cache_hit_ratio == 0.0

    def test_counts_and_ratios(self, stats_service, ledger):
        ledger.append("u1", "Golang channels", {"content_type": "web"}, 15, cache_hit=False)
        ledger.append("u1", "golang channels ", {"content_type": "web"}, 15, cache_hit=True)
        ledger.append("u1", "rust", {"content_type": "news"}, 0, cache_hit=False)
        ledger.append("u1", "zig", None, 10, cache_hit=True)
        ledger.append("u2", "other", None, 99, cache_hit=True)

        stats = stats_service.user_stats("u1")

        assert stats.total_searches == 4
        assert stats.unique_queries == 3
        assert stats.avg_result_count == 10.0
        assert stats.cache_hit_ratio == 0.5
        assert stats.top_queries[0].query == "golang channels"
        assert stats.top_queries[0].count == 2
        assert stats.searches_by_content_type == {"web": 3, "news": 1}

    def test_time_windows(self, stats_service, ledger, ticking_clock, clock):
        ticking_clock.now = clock.now - timedelta(days=10)
        ledger.append("u1", "old", None, 1)
        ticking_clock.now = clock.now - timedelta(days=3)
        ledger.append("u1", "this week", None, 1)
        ticking_clock.now = clock.now - timedelta(minutes=5)
        ledger.append("u1", "today", None, 1)

        stats = stats_service.user_stats("u1")

        assert stats.total_searches == 3
        assert stats.searches_this_week == 2
        assert stats.searches_today == 1


class TestSystemStats:
    """Test cases for system-wide statistics."""

    def test_empty_system(self, stats_service):
        stats = stats_service.system_stats()

        assert stats.total_cache_entries == 0
        assert stats.total_hits == 0
        assert stats.aggregate_hit_ratio == 0.0
        assert stats.total_history_items == 0

    def test_aggregates(self, stats_service, cache_store, ledger):
        cache_store.put("search|v1|6:golang|0:|1|10", make_payload(2, search_time=100.0), ttl=60)
        cache_store.put("search|v1|4:rust|0:|1|10", make_payload(2, search_time=50.0), ttl=60)
        for _ in range(3):
            cache_store.get("search|v1|6:golang|0:|1|10")
        ledger.append("u1", "golang", None, 2)
        ledger.append("u2", "rust", None, 2)

        stats = stats_service.system_stats()

        assert stats.total_cache_entries == 2
        assert stats.total_hits == 3
        assert stats.aggregate_hit_ratio == pytest.approx(0.6)
        assert stats.total_history_items == 2
        assert stats.avg_search_time == 75.0
        assert [(q.query, q.count) for q in stats.popular_queries] == [("golang", 3), ("rust", 0)]

    def test_stats_do_not_mutate_stores(self, stats_service, cache_store, ledger):
        cache_store.put("k", make_payload(1), ttl=60)
        ledger.append("u1", "q", None, 1)

        stats_service.system_stats()
        stats_service.user_stats("u1")

        assert cache_store.snapshot()[0].hit_count == 0
        assert ledger.count_all() == 1
