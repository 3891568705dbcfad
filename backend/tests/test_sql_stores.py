"""Tests for the SQLAlchemy-backed cache store and history ledger."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from querycache.core.exceptions import NotFound, StoreUnavailable
from querycache.models.search_history import SearchHistory
from querycache.schemas.search import HistoryQuery
from querycache.services.cache_store import SqlCacheStore
from querycache.services.history_ledger import SqlHistoryLedger
from tests.conftest import make_payload


@pytest.fixture
def sql_cache(session_factory, clock):
    return SqlCacheStore(session_factory, clock=clock)


@pytest.fixture
def sql_ledger(session_factory, ticking_clock):
    return SqlHistoryLedger(session_factory, clock=ticking_clock)


def _broken_factory():
    factory = MagicMock()
    factory.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
    return factory


class TestSqlCacheStore:
    """Test cases for the SQL cache store."""

    def test_put_get_counts_hits(self, sql_cache):
        payload = make_payload(4)
        sql_cache.put("k", payload, ttl=60)

        first = sql_cache.get("k")
        second = sql_cache.get("k")

        assert first.hit_count == 1
        assert second.hit_count == 2
        assert second.payload == payload

    def test_hits_record_last_hit_time(self, sql_cache, clock):
        sql_cache.put("k", make_payload(1), ttl=600)
        assert sql_cache.snapshot()[0].last_hit_at is None

        clock.advance(seconds=90)
        entry = sql_cache.get("k")

        assert entry.last_hit_at == clock.now
        assert sql_cache.snapshot()[0].last_hit_at == clock.now

        sql_cache.put("k", make_payload(2), ttl=600)
        assert sql_cache.snapshot()[0].last_hit_at is None

    def test_miss_and_expiry(self, sql_cache, clock):
        assert sql_cache.get("missing") is None

        sql_cache.put("k", make_payload(1), ttl=30)
        clock.advance(seconds=30)
        assert sql_cache.get("k") is None
        assert sql_cache.sweep_expired() == 1
        assert sql_cache.snapshot() == []

    def test_zero_ttl(self, sql_cache):
        sql_cache.put("k", make_payload(1), ttl=0)
        assert sql_cache.get("k") is None
        assert sql_cache.sweep_expired() == 1

    def test_overwrite_resets_hit_count(self, sql_cache):
        sql_cache.put("k", make_payload(1), ttl=60)
        sql_cache.get("k")
        sql_cache.put("k", make_payload(2), ttl=60)

        [entry] = sql_cache.snapshot()
        assert entry.hit_count == 0
        assert entry.payload.total_count == 2

    def test_delete_and_clear(self, sql_cache):
        sql_cache.put("a", make_payload(1), ttl=60)
        sql_cache.put("b", make_payload(1), ttl=60)

        assert sql_cache.delete("a") is True
        assert sql_cache.delete("a") is False
        assert sql_cache.clear() == 1

    def test_unreachable_database(self, clock):
        store = SqlCacheStore(_broken_factory(), clock=clock)

        with pytest.raises(StoreUnavailable) as exc:
            store.get("k")
        assert exc.value.kind == "store_unavailable"
        with pytest.raises(StoreUnavailable):
            store.put("k", make_payload(1), ttl=60)


class TestSqlHistoryLedger:
    """Test cases for the SQL history ledger."""

    def test_append_and_list(self, sql_ledger, session_factory):
        sql_ledger.append("alice", "golang channels", {"content_type": "web"}, 15, cache_hit=True)
        sql_ledger.append("alice", "Python typing", None, 3)

        page = sql_ledger.list("alice")
        assert [i.query for i in page.items] == ["Python typing", "golang channels"]
        assert page.items[1].filters.content_type == "web"
        assert page.items[1].cache_hit is True

        with session_factory() as session:
            assert session.query(SearchHistory).count() == 2

    def test_filters_and_paging(self, sql_ledger, ticking_clock):
        start = ticking_clock.now
        for i in range(6):
            ticking_clock.now = start + timedelta(hours=i)
            sql_ledger.append("alice", f"Query {i % 2} term", None, i)

        page = sql_ledger.list("alice", HistoryQuery(search_term="QUERY 1"), page=1, limit=2)
        assert page.total_count == 3
        assert page.total_pages == 2
        assert page.has_next_page is True
        assert [i.result_count for i in page.items] == [5, 3]

        ranged = sql_ledger.list(
            "alice",
            HistoryQuery(from_date=start + timedelta(hours=2), to_date=start + timedelta(hours=4)),
        )
        assert [i.result_count for i in ranged.items] == [4, 3, 2]

        inverted = sql_ledger.list(
            "alice",
            HistoryQuery(from_date=start + timedelta(hours=4), to_date=start),
        )
        assert inverted.total_count == 0

    def test_search_term_wildcards_are_literal(self, sql_ledger):
        sql_ledger.append("alice", "100% coverage", None, 1)
        sql_ledger.append("alice", "100 percent", None, 1)

        page = sql_ledger.list("alice", HistoryQuery(search_term="0%"))
        assert [i.query for i in page.items] == ["100% coverage"]

    def test_ownership_and_clear(self, sql_ledger):
        bob_item = sql_ledger.append("bob", "q", None, 1)
        sql_ledger.append("alice", "q", None, 1)

        with pytest.raises(NotFound):
            sql_ledger.delete_one("alice", bob_item.id)
        assert sql_ledger.list("bob").total_count == 1

        sql_ledger.delete_one("bob", bob_item.id)
        assert sql_ledger.clear_all("alice") == 1
        assert sql_ledger.clear_all("alice") == 0
        assert sql_ledger.count_all() == 0

    def test_unreachable_database(self, ticking_clock):
        ledger = SqlHistoryLedger(_broken_factory(), clock=ticking_clock)
        with pytest.raises(StoreUnavailable):
            ledger.append("alice", "q", None, 1)
