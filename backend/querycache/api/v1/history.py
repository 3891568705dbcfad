"""Search history API endpoints."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.concurrency import run_in_threadpool

from ...core.clock import as_naive_utc
from ...core.exceptions import InvalidArgument
from ...schemas.search import (
    HistoryItem,
    HistoryPage,
    HistoryQuery,
    SaveHistoryRequest,
    UserStats,
)
from ...services.history_ledger import HistoryLedger
from ...services.stats_service import StatsService
from ..dependencies import get_current_user_id, get_history_ledger, get_stats_service

router = APIRouter(prefix="/history", tags=["history"])


@router.get("", response_model=HistoryPage)
async def get_search_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search_term: Optional[str] = Query(None, max_length=500),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    user_id: str = Depends(get_current_user_id),
    ledger: HistoryLedger = Depends(get_history_ledger),
):
    """List the caller's searches, newest first."""
    if from_date and to_date and as_naive_utc(to_date) < as_naive_utc(from_date):
        raise InvalidArgument("to_date must not be before from_date", code="invalid_date_range")

    query = HistoryQuery(search_term=search_term, from_date=from_date, to_date=to_date)
    return await run_in_threadpool(ledger.list, user_id, query, page, limit)


@router.post("", response_model=HistoryItem, status_code=status.HTTP_201_CREATED)
async def save_search_history(
    body: SaveHistoryRequest,
    user_id: str = Depends(get_current_user_id),
    ledger: HistoryLedger = Depends(get_history_ledger),
):
    """Explicitly record a search."""
    return await run_in_threadpool(
        ledger.append, user_id, body.query, body.filters, body.result_count
    )


@router.get("/stats", response_model=UserStats)
async def get_search_history_stats(
    user_id: str = Depends(get_current_user_id),
    stats: StatsService = Depends(get_stats_service),
):
    """Usage figures for the caller."""
    return await run_in_threadpool(stats.user_stats, user_id)


@router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_search_history_item(
    item_id: str,
    user_id: str = Depends(get_current_user_id),
    ledger: HistoryLedger = Depends(get_history_ledger),
):
    """Delete one of the caller's items; other users' items are reported as missing."""
    await run_in_threadpool(ledger.delete_one, user_id, item_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def clear_search_history(
    user_id: str = Depends(get_current_user_id),
    ledger: HistoryLedger = Depends(get_history_ledger),
):
    """Delete all of the caller's items."""
    await run_in_threadpool(ledger.clear_all, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
