from celery import shared_task
from loguru import logger

from .core.config import settings
from .core.exceptions import StoreUnavailable
from .services.cache_store import build_cache_store


@shared_task(bind=True, name='sweep_expired_cache', max_retries=3)
def sweep_expired_cache(self) -> int:
    """
    Remove expired entries from the shared SQL cache store.

    The in-memory store lives inside the API process and is swept there,
    so a worker has nothing to do when ``cache_backend`` is ``memory``.

    Returns:
        Number of entries removed

    Raises:
        StoreUnavailable: If the store stays unreachable (after retries)
    """
    if settings.cache_backend != "sql":
        logger.warning(
            f"Skipping cache sweep: cache_backend is '{settings.cache_backend}', "
            "entries are swept by the API process"
        )
        return 0

    try:
        removed = build_cache_store("sql").sweep_expired()
    except StoreUnavailable as e:
        logger.error(f"Cache sweep failed: {e.message}")
        raise self.retry(exc=e, countdown=60)

    logger.info(f"Scheduled cache sweep removed {removed} entries")
    return removed
