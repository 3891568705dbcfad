"""Result cache stores.

Concurrency contract shared by every implementation:

* ``get`` reads an entry and increments its hit counter as one unit, so a
  concurrent sweep never sees a counter bumped on an entry it already removed.
* ``put`` replaces an entry outright; the last writer wins.
* ``sweep_expired`` runs independently of request paths and never blocks
  unrelated keys.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .base import BaseService
from ..core.clock import utcnow
from ..core.exceptions import InvalidArgument, StoreUnavailable
from ..models.cache_entry import CacheEntryRecord
from ..schemas.search import CacheEntry, SearchPayload

Clock = Callable[[], datetime]


def _ttl_delta(ttl: float) -> timedelta:
    if ttl < 0:
        raise InvalidArgument(f"ttl must be >= 0 seconds, got {ttl}")
    return timedelta(seconds=ttl)


class CacheStore(BaseService, ABC):
    """Key -> cached result set, with TTL and hit counting."""

    def __init__(self, clock: Optional[Clock] = None):
        super().__init__()
        self.clock = clock or utcnow

    @abstractmethod
    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for ``key`` after counting the hit, else None."""

    @abstractmethod
    def put(self, key: str, payload: SearchPayload, ttl: float) -> CacheEntry:
        """Insert or overwrite ``key``; the hit counter restarts at zero."""

    @abstractmethod
    def sweep_expired(self) -> int:
        """Remove every entry with ``expires_at <= now``."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Purge a single entry."""

    @abstractmethod
    def clear(self) -> int:
        """Purge every entry."""

    @abstractmethod
    def snapshot(self) -> List[CacheEntry]:
        """Copy of all stored entries, expired ones included."""


class InMemoryCacheStore(CacheStore):
    """Process-local store guarded by striped locks.

    A key always maps to the same stripe, so get/put on one key are
    serialized while unrelated keys proceed in parallel.
    """

    def __init__(self, clock: Optional[Clock] = None, stripes: Optional[int] = None):
        super().__init__(clock)
        stripes = stripes or self.config.cache_lock_stripes
        self._entries: Dict[str, CacheEntry] = {}
        self._locks = [threading.Lock() for _ in range(max(1, stripes))]

    def _lock_for(self, key: str) -> threading.Lock:
        return self._locks[hash(key) % len(self._locks)]

    def get(self, key: str) -> Optional[CacheEntry]:
        now = self.clock()
        with self._lock_for(key):
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(now):
                return None
            entry = entry.model_copy(update={"hit_count": entry.hit_count + 1, "last_hit_at": now})
            self._entries[key] = entry
            return entry

    def put(self, key: str, payload: SearchPayload, ttl: float) -> CacheEntry:
        delta = _ttl_delta(ttl)
        now = self.clock()
        entry = CacheEntry(
            key=key,
            payload=payload,
            hit_count=0,
            created_at=now,
            expires_at=now + delta,
        )
        with self._lock_for(key):
            self._entries[key] = entry
        return entry

    def sweep_expired(self) -> int:
        now = self.clock()
        candidates = [k for k, e in list(self._entries.items()) if e.is_expired(now)]
        removed = 0
        for key in candidates:
            with self._lock_for(key):
                # Re-check: a put may have refreshed the key since the scan
                entry = self._entries.get(key)
                if entry is not None and entry.is_expired(now):
                    del self._entries[key]
                    removed += 1
        if removed:
            self.logger.info(f"Swept {removed} expired cache entries")
        return removed

    def delete(self, key: str) -> bool:
        with self._lock_for(key):
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        removed = 0
        for key in list(self._entries.keys()):
            if self.delete(key):
                removed += 1
        return removed

    def snapshot(self) -> List[CacheEntry]:
        return [e.model_copy() for e in list(self._entries.values())]


class SqlCacheStore(CacheStore):
    """SQLAlchemy-backed store; row-level atomicity comes from the database."""

    def __init__(self, session_factory: sessionmaker, clock: Optional[Clock] = None):
        super().__init__(clock)
        self.session_factory = session_factory

    def _session(self) -> Session:
        return self.session_factory()

    @staticmethod
    def _to_entry(record: CacheEntryRecord) -> CacheEntry:
        return CacheEntry(
            key=record.key,
            payload=SearchPayload.model_validate(record.payload),
            hit_count=record.hit_count,
            created_at=record.created_at,
            expires_at=record.expires_at,
            last_hit_at=record.last_hit_at,
        )

    def get(self, key: str) -> Optional[CacheEntry]:
        now = self.clock()
        try:
            with self._session() as session, session.begin():
                # Increment first: the row is locked for the rest of the transaction
                result = session.execute(
                    update(CacheEntryRecord)
                    .where(CacheEntryRecord.key == key, CacheEntryRecord.expires_at > now)
                    .values(hit_count=CacheEntryRecord.hit_count + 1, last_hit_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    return None
                record = session.get(CacheEntryRecord, key)
                return self._to_entry(record) if record is not None else None
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Cache lookup failed: {e}") from e

    def put(self, key: str, payload: SearchPayload, ttl: float) -> CacheEntry:
        delta = _ttl_delta(ttl)
        now = self.clock()
        values = {
            "payload": payload.model_dump(mode="json"),
            "hit_count": 0,
            "created_at": now,
            "expires_at": now + delta,
            "last_hit_at": None,
        }
        try:
            try:
                self._upsert(key, values)
            except IntegrityError:
                # Concurrent insert of the same key won; overwrite it
                self._upsert(key, values)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Cache write failed: {e}") from e
        return CacheEntry(key=key, payload=payload, hit_count=0,
                          created_at=now, expires_at=now + delta)

    def _upsert(self, key: str, values: dict) -> None:
        with self._session() as session, session.begin():
            record = session.get(CacheEntryRecord, key)
            if record is None:
                session.add(CacheEntryRecord(key=key, **values))
            else:
                for field, value in values.items():
                    setattr(record, field, value)

    def sweep_expired(self) -> int:
        now = self.clock()
        try:
            with self._session() as session, session.begin():
                result = session.execute(
                    delete(CacheEntryRecord)
                    .where(CacheEntryRecord.expires_at <= now)
                    .execution_options(synchronize_session=False)
                )
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Cache sweep failed: {e}") from e
        if removed:
            self.logger.info(f"Swept {removed} expired cache entries")
        return removed

    def delete(self, key: str) -> bool:
        try:
            with self._session() as session, session.begin():
                result = session.execute(
                    delete(CacheEntryRecord)
                    .where(CacheEntryRecord.key == key)
                    .execution_options(synchronize_session=False)
                )
                return bool(result.rowcount)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Cache purge failed: {e}") from e

    def clear(self) -> int:
        try:
            with self._session() as session, session.begin():
                result = session.execute(
                    delete(CacheEntryRecord).execution_options(synchronize_session=False)
                )
                return result.rowcount or 0
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Cache purge failed: {e}") from e

    def snapshot(self) -> List[CacheEntry]:
        try:
            with self._session() as session:
                records = session.scalars(select(CacheEntryRecord)).all()
                return [self._to_entry(r) for r in records]
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Cache scan failed: {e}") from e


def build_cache_store(backend: Optional[str] = None) -> CacheStore:
    """Create the store configured by ``cache_backend``."""
    from ..core.config import settings

    backend = backend or settings.cache_backend
    if backend == "memory":
        return InMemoryCacheStore()
    if backend == "sql":
        from ..db.session import SessionLocal
        return SqlCacheStore(SessionLocal)
    raise ValueError(f"Unknown cache backend: {backend}")
