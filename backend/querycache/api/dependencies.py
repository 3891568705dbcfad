"""Shared FastAPI dependencies."""

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from ..core.config import settings
from ..services.cache_store import CacheStore
from ..services.history_ledger import HistoryLedger
from ..services.search_service import SearchService
from ..services.stats_service import StatsService


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Authenticated user id, set by the upstream auth gateway."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return x_user_id


def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    """Gate admin routes when an admin key is configured."""
    if settings.admin_api_key and x_admin_key != settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )


def get_search_service(request: Request) -> SearchService:
    return request.app.state.search_service


def get_stats_service(request: Request) -> StatsService:
    return request.app.state.stats_service


def get_history_ledger(service: SearchService = Depends(get_search_service)) -> HistoryLedger:
    return service.history_ledger


def get_cache_store(service: SearchService = Depends(get_search_service)) -> CacheStore:
    return service.cache_store
