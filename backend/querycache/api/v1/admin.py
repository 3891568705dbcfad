"""Administrative cache endpoints."""

from typing import Dict

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from ...schemas.search import SystemStats
from ...services.cache_store import CacheStore
from ...services.stats_service import StatsService
from ..dependencies import get_cache_store, get_stats_service, require_admin

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/stats", response_model=SystemStats)
async def get_system_stats(stats: StatsService = Depends(get_stats_service)):
    """System-wide cache and history figures (point-in-time snapshot)."""
    return await run_in_threadpool(stats.system_stats)


@router.post("/cache/sweep")
async def sweep_expired_cache(cache_store: CacheStore = Depends(get_cache_store)) -> Dict[str, int]:
    """Remove expired cache entries now."""
    removed = await run_in_threadpool(cache_store.sweep_expired)
    logger.info(f"Manual cache sweep removed {removed} entries")
    return {"removed": removed}


@router.delete("/cache")
async def purge_cache(cache_store: CacheStore = Depends(get_cache_store)) -> Dict[str, int]:
    """Drop every cache entry."""
    removed = await run_in_threadpool(cache_store.clear)
    logger.warning(f"Cache purged ({removed} entries)")
    return {"removed": removed}
