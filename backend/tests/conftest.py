"""Shared test fixtures."""

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from querycache.core.exceptions import UpstreamError
from querycache.models.base import Base
from querycache.schemas.search import SearchPayload, SearchResult
from querycache.services.cache_store import InMemoryCacheStore
from querycache.services.history_ledger import InMemoryHistoryLedger
from querycache.services.search_service import SearchService
from querycache.services.stats_service import StatsService


class FakeClock:
    """Manually advanced clock; each read can optionally tick forward."""

    def __init__(self, start=None, tick=None):
        self.now = start or datetime(2024, 5, 1, 12, 0, 0)
        self.tick = tick

    def __call__(self) -> datetime:
        current = self.now
        if self.tick:
            self.now = self.now + self.tick
        return current

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_payload(count: int, total_count=None, search_time: float = 42.0) -> SearchPayload:
    return SearchPayload(
        results=[
            SearchResult(
                id=f"r{i}",
                title=f"Result {i}",
                url=f"https://example.com/{i}",
                snippet=f"Snippet {i}",
                domain="example.com",
            )
            for i in range(count)
        ],
        total_count=count if total_count is None else total_count,
        search_time=search_time,
    )


class FakeProvider:
    """Provider double recording every call."""

    def __init__(self, payload=None, error=None, delay: float = 0.0):
        self.payload = payload or make_payload(15)
        self.error = error
        self.delay = delay
        self.calls = []

    async def fetch(self, query, filters, page, limit):
        self.calls.append((query, filters, page, limit))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.payload


class BrokenLedger(InMemoryHistoryLedger):
    def append(self, *args, **kwargs):
        raise RuntimeError("ledger down")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ticking_clock():
    return FakeClock(tick=timedelta(seconds=1))


@pytest.fixture
def cache_store(clock):
    return InMemoryCacheStore(clock=clock, stripes=8)


@pytest.fixture
def ledger(ticking_clock):
    return InMemoryHistoryLedger(clock=ticking_clock)


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def search_service(cache_store, ledger, provider):
    return SearchService(cache_store, ledger, provider, default_ttl=3600, provider_timeout=1.0)


@pytest.fixture
def stats_service(cache_store, ledger, clock):
    return StatsService(cache_store, ledger, clock=clock)


@pytest.fixture
def session_factory():
    """Create an isolated in-memory database shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture
def upstream_error():
    return UpstreamError("provider exploded", code="provider_error")
