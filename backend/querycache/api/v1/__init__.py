"""API v1 routes."""

from fastapi import APIRouter

from .search import router as search_router
from .history import router as history_router
from .admin import router as admin_router

router = APIRouter(prefix="/v1")

router.include_router(search_router)
router.include_router(history_router)
router.include_router(admin_router)
