"""Search API endpoints."""

from typing import List

from fastapi import APIRouter, Depends, Query, status
from loguru import logger

from ...schemas.search import SearchRequest, SearchResponse
from ...services.search_service import SearchService
from ..dependencies import get_current_user_id, get_search_service

router = APIRouter(prefix="/search", tags=["search"])


@router.post("", response_model=SearchResponse, status_code=status.HTTP_200_OK)
async def search_web(
    body: SearchRequest,
    user_id: str = Depends(get_current_user_id),
    service: SearchService = Depends(get_search_service),
):
    """
    Run a web search, served from cache when a live entry exists.

    Raises:
        InvalidArgument: Blank query or malformed filters (400)
        UpstreamError: Provider failed or timed out (502)
    """
    logger.info(f"Web search initiated by user {user_id}: '{body.query}'")
    return await service.search(
        user_id,
        body.query,
        filters=body.filters,
        page=body.page,
        limit=body.limit,
    )


@router.get("/suggestions", response_model=List[str])
async def get_search_suggestions(
    q: str = Query(..., min_length=1, max_length=100),
    service: SearchService = Depends(get_search_service),
):
    """Query completions for the search box."""
    return service.suggestions(q)
