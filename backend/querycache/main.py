"""FastAPI application with lifespan events."""

import asyncio
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette_context.middleware import RawContextMiddleware

from .core.config import settings
from .core.logging import setup_logging, request_id_middleware
from .core.exceptions import StoreUnavailable, register_exception_handlers
from .db.base import init_db, check_db_connection
from .db.session import get_db
from .services.cache_store import CacheStore, build_cache_store
from .services.history_ledger import build_history_ledger
from .services.providers import build_provider
from .services.search_service import SearchService
from .services.stats_service import StatsService
from loguru import logger

from .api.v1 import router as v1_router


def build_services(app: FastAPI) -> None:
    """Wire stores, provider and services onto ``app.state``."""
    cache_store = build_cache_store()
    history_ledger = build_history_ledger()
    provider = build_provider(
        settings.search_provider_urls,
        api_key=settings.search_provider_api_key,
        timeout=settings.provider_timeout_seconds,
    )
    app.state.search_service = SearchService(cache_store, history_ledger, provider)
    app.state.stats_service = StatsService(cache_store, history_ledger)


async def sweep_periodically(cache_store: CacheStore, interval: float) -> None:
    """Sweep a process-local cache store every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(cache_store.sweep_expired)
        except StoreUnavailable as e:
            logger.warning(f"In-process cache sweep failed: {e.message}")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    # Startup
    setup_logging()
    logger.info("Starting QueryCache API...")

    if settings.cache_backend == "sql":
        try:
            init_db()
            logger.info("Database initialized successfully")

            db = next(get_db())
            if check_db_connection(db):
                logger.info("Database connection healthy")
            else:
                logger.warning("Database connection check failed")
            db.close()

        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    build_services(app)
    logger.info(f"QueryCache API started ({settings.cache_backend} stores)")

    # The Celery beat sweep only reaches the SQL store
    sweeper = None
    if settings.cache_backend == "memory":
        sweeper = asyncio.create_task(sweep_periodically(
            app.state.search_service.cache_store,
            float(settings.cache_sweep_interval_seconds),
        ))

    yield

    # Shutdown
    logger.info("Shutting down QueryCache API...")
    if sweeper is not None:
        sweeper.cancel()
        with suppress(asyncio.CancelledError):
            await sweeper
    await app.state.search_service.drain()
    logger.info("QueryCache API shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    debug=settings.debug,
    lifespan=lifespan
)

# Add middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Request ID middleware; the context middleware must wrap it
app.middleware("http")(request_id_middleware)
app.add_middleware(RawContextMiddleware)

# Register exception handlers
register_exception_handlers(app)

# Include API routers
app.include_router(v1_router, prefix="/api")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "QueryCache API is running",
        "version": settings.api_version,
        "docs": "/docs"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    if settings.cache_backend != "sql":
        return {"status": "healthy", "database": "not used", "version": settings.api_version}

    db_status = "healthy"
    db = next(get_db())
    try:
        if not check_db_connection(db):
            db_status = "unhealthy"
    finally:
        db.close()

    return {
        "status": "healthy" if db_status == "healthy" else "unhealthy",
        "database": db_status,
        "version": settings.api_version
    }
