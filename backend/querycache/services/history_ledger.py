"""Append-only per-user search history."""

import math
import threading
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .base import BaseService
from .key_normalizer import FilterInput, coerce_filters
from ..core.clock import as_naive_utc, utcnow
from ..core.exceptions import InvalidArgument, NotFound, StoreUnavailable
from ..models.search_history import SearchHistory
from ..schemas.search import HistoryItem, HistoryPage, HistoryQuery, SearchFilters


def _page(items: List[HistoryItem], total: int, page: int, limit: int) -> HistoryPage:
    total_pages = math.ceil(total / limit)
    return HistoryPage(
        items=items,
        total_count=total,
        current_page=page,
        total_pages=total_pages,
        has_next_page=page < total_pages,
    )


def _check_paging(page: int, limit: int) -> None:
    if page < 1 or limit < 1:
        raise InvalidArgument(f"page and limit must be >= 1, got page={page} limit={limit}")


def _bounds(query: HistoryQuery):
    return as_naive_utc(query.from_date), as_naive_utc(query.to_date)


class HistoryLedger(BaseService, ABC):
    """Per-user record of executed searches; items are never mutated."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        super().__init__()
        self.clock = clock or utcnow

    def _new_item(
        self,
        user_id: str,
        query: str,
        filters: FilterInput,
        result_count: int,
        cache_hit: bool,
    ) -> HistoryItem:
        if not user_id:
            raise InvalidArgument("user_id is required")
        if result_count < 0:
            raise InvalidArgument(f"result_count must be >= 0, got {result_count}")
        return HistoryItem(
            id=str(uuid.uuid4()),
            user_id=str(user_id),
            query=query,
            filters=coerce_filters(filters),
            result_count=result_count,
            cache_hit=cache_hit,
            created_at=self.clock(),
        )

    @abstractmethod
    def append(
        self,
        user_id: str,
        query: str,
        filters: FilterInput,
        result_count: int,
        cache_hit: bool = False,
    ) -> HistoryItem:
        """Record a search for ``user_id``."""

    @abstractmethod
    def list(
        self,
        user_id: str,
        query: Optional[HistoryQuery] = None,
        page: int = 1,
        limit: int = 10,
    ) -> HistoryPage:
        """Newest-first page of the user's items matching ``query``.

        ``search_term`` is a case-insensitive substring match and the date
        range is inclusive. ``to_date < from_date`` matches nothing.
        """

    @abstractmethod
    def delete_one(self, user_id: str, item_id: str) -> None:
        """Delete an item owned by ``user_id``; NotFound otherwise."""

    @abstractmethod
    def clear_all(self, user_id: str) -> int:
        """Delete every item of ``user_id``."""

    @abstractmethod
    def items_for_user(self, user_id: str) -> List[HistoryItem]:
        """All items of ``user_id``, newest first."""

    @abstractmethod
    def count_all(self) -> int:
        """Number of items across all users."""


class InMemoryHistoryLedger(HistoryLedger):
    """Per-user lists, each guarded by its own lock.

    A user's lock exists only while the user has items, so the lock map
    never outgrows the history itself.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        super().__init__(clock)
        self._items: Dict[str, List[HistoryItem]] = defaultdict(list)
        self._user_locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def _locked(self, user_id: str) -> Iterator[None]:
        while True:
            with self._guard:
                lock = self._user_locks.setdefault(user_id, threading.Lock())
            lock.acquire()
            with self._guard:
                if self._user_locks.get(user_id) is lock:
                    break
            # Retired while we waited; take the current one
            lock.release()
        try:
            yield
        finally:
            if not self._items.get(user_id):
                self._items.pop(user_id, None)
                with self._guard:
                    self._user_locks.pop(user_id, None)
            lock.release()

    def append(self, user_id, query, filters, result_count, cache_hit=False):
        item = self._new_item(user_id, query, filters, result_count, cache_hit)
        with self._locked(item.user_id):
            self._items[item.user_id].append(item)
        return item

    def items_for_user(self, user_id: str) -> List[HistoryItem]:
        with self._locked(user_id):
            items = list(reversed(self._items.get(user_id, [])))
        # Stable sort keeps insertion order among equal timestamps
        return sorted(items, key=lambda i: i.created_at, reverse=True)

    def list(self, user_id, query=None, page=1, limit=10):
        _check_paging(page, limit)
        query = query or HistoryQuery()
        from_date, to_date = _bounds(query)
        if from_date and to_date and to_date < from_date:
            return _page([], 0, page, limit)

        term = query.search_term.casefold() if query.search_term else None
        matched = [
            item for item in self.items_for_user(user_id)
            if (term is None or term in item.query.casefold())
            and (from_date is None or item.created_at >= from_date)
            and (to_date is None or item.created_at <= to_date)
        ]
        start = (page - 1) * limit
        return _page(matched[start:start + limit], len(matched), page, limit)

    def delete_one(self, user_id: str, item_id: str) -> None:
        with self._locked(user_id):
            items = self._items.get(user_id, [])
            for index, item in enumerate(items):
                if item.id == item_id:
                    del items[index]
                    self.logger.info(f"History item {item_id} deleted for user {user_id}")
                    return
        raise NotFound("Search history item not found", code="history_not_found")

    def clear_all(self, user_id: str) -> int:
        with self._locked(user_id):
            removed = len(self._items.pop(user_id, []))
        self.logger.info(f"History cleared for user {user_id} ({removed} items)")
        return removed

    def count_all(self) -> int:
        return sum(len(items) for items in list(self._items.values()))


class SqlHistoryLedger(HistoryLedger):
    """SQLAlchemy-backed ledger; every statement is scoped by user_id."""

    def __init__(self, session_factory: sessionmaker, clock: Optional[Callable[[], datetime]] = None):
        super().__init__(clock)
        self.session_factory = session_factory

    @staticmethod
    def _to_item(record: SearchHistory) -> HistoryItem:
        return HistoryItem(
            id=record.id,
            user_id=record.user_id,
            query=record.query,
            filters=SearchFilters.model_validate(record.filters) if record.filters else None,
            result_count=record.results_count,
            cache_hit=record.cache_hit,
            created_at=record.created_at,
        )

    def append(self, user_id, query, filters, result_count, cache_hit=False):
        item = self._new_item(user_id, query, filters, result_count, cache_hit)
        record = SearchHistory(
            id=item.id,
            user_id=item.user_id,
            query=item.query,
            filters=item.filters.model_dump(mode="json", exclude_none=True) if item.filters else None,
            results_count=item.result_count,
            cache_hit=item.cache_hit,
            created_at=item.created_at,
        )
        try:
            with self.session_factory() as session, session.begin():
                session.add(record)
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"History append failed: {e}") from e
        self.logger.debug(f"Search history saved for user {item.user_id} ({item.id})")
        return item

    def _ordered(self, user_id: str):
        return (
            select(SearchHistory)
            .where(SearchHistory.user_id == user_id)
            .order_by(SearchHistory.created_at.desc())
        )

    def items_for_user(self, user_id: str) -> List[HistoryItem]:
        try:
            with self.session_factory() as session:
                return [self._to_item(r) for r in session.scalars(self._ordered(user_id)).all()]
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"History read failed: {e}") from e

    def list(self, user_id, query=None, page=1, limit=10):
        _check_paging(page, limit)
        query = query or HistoryQuery()
        from_date, to_date = _bounds(query)
        if from_date and to_date and to_date < from_date:
            return _page([], 0, page, limit)

        conditions = [SearchHistory.user_id == user_id]
        if query.search_term:
            conditions.append(
                func.lower(SearchHistory.query).contains(query.search_term.lower(), autoescape=True)
            )
        if from_date:
            conditions.append(SearchHistory.created_at >= from_date)
        if to_date:
            conditions.append(SearchHistory.created_at <= to_date)

        try:
            with self.session_factory() as session:
                total = session.scalar(
                    select(func.count()).select_from(SearchHistory).where(*conditions)
                ) or 0
                records = session.scalars(
                    select(SearchHistory)
                    .where(*conditions)
                    .order_by(SearchHistory.created_at.desc())
                    .offset((page - 1) * limit)
                    .limit(limit)
                ).all()
                items = [self._to_item(r) for r in records]
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"History read failed: {e}") from e
        return _page(items, total, page, limit)

    def delete_one(self, user_id: str, item_id: str) -> None:
        try:
            with self.session_factory() as session, session.begin():
                result = session.execute(
                    delete(SearchHistory)
                    .where(SearchHistory.id == item_id, SearchHistory.user_id == user_id)
                    .execution_options(synchronize_session=False)
                )
                deleted = result.rowcount
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"History delete failed: {e}") from e
        if not deleted:
            raise NotFound("Search history item not found", code="history_not_found")
        self.logger.info(f"History item {item_id} deleted for user {user_id}")

    def clear_all(self, user_id: str) -> int:
        try:
            with self.session_factory() as session, session.begin():
                result = session.execute(
                    delete(SearchHistory)
                    .where(SearchHistory.user_id == user_id)
                    .execution_options(synchronize_session=False)
                )
                removed = result.rowcount or 0
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"History clear failed: {e}") from e
        self.logger.info(f"History cleared for user {user_id} ({removed} items)")
        return removed

    def count_all(self) -> int:
        try:
            with self.session_factory() as session:
                return session.scalar(select(func.count()).select_from(SearchHistory)) or 0
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"History count failed: {e}") from e


def build_history_ledger(backend: Optional[str] = None) -> HistoryLedger:
    """Create the ledger configured by ``cache_backend``."""
    from ..core.config import settings

    backend = backend or settings.cache_backend
    if backend == "memory":
        return InMemoryHistoryLedger()
    if backend == "sql":
        from ..db.session import SessionLocal
        return SqlHistoryLedger(SessionLocal)
    raise ValueError(f"Unknown history backend: {backend}")
