"""Search orchestration: cache lookup, provider fallback, history recording."""

import asyncio
from typing import Optional, Set

from .base import BaseService
from .cache_store import CacheStore
from .history_ledger import HistoryLedger
from .key_normalizer import FilterInput, coerce_filters, normalize
from .providers import SearchProvider
from ..core.exceptions import StoreUnavailable, UpstreamError
from ..schemas.search import SearchFilters, SearchPayload, SearchResponse

SUGGESTION_TEMPLATES = (
    "{q} tutorial",
    "{q} guide",
    "{q} examples",
    "best {q}",
    "how to {q}",
    "{q} vs",
    "free {q}",
)
MAX_SUGGESTIONS = 5


class SearchService(BaseService):
    """Façade over the key normalizer, cache store, provider and ledger.

    Per request: key computed -> cache hit, or cache miss -> provider call ->
    cache store -> history append dispatched -> response returned. Nothing is
    retried here; retries belong to the provider.
    """

    def __init__(
        self,
        cache_store: CacheStore,
        history_ledger: HistoryLedger,
        provider: SearchProvider,
        default_ttl: Optional[float] = None,
        provider_timeout: Optional[float] = None,
    ):
        super().__init__()
        self.cache_store = cache_store
        self.history_ledger = history_ledger
        self.provider = provider
        self.default_ttl = (
            default_ttl if default_ttl is not None else self.config.cache_default_ttl_seconds
        )
        self.provider_timeout = (
            provider_timeout if provider_timeout is not None else self.config.provider_timeout_seconds
        )
        self._pending: Set[asyncio.Task] = set()

    async def search(
        self,
        user_id: str,
        query: str,
        filters: FilterInput = None,
        page: int = 1,
        limit: int = 10,
        timeout: Optional[float] = None,
    ) -> SearchResponse:
        """Run a search for ``user_id``.

        Args:
            user_id: Authenticated caller
            query: Free-text query; must not be blank
            filters: Optional filter set (model or mapping)
            page: 1-based page number
            limit: Page size
            timeout: Provider call bound in seconds, defaults to configuration

        Returns:
            SearchResponse with pagination derived from the total count

        Raises:
            InvalidArgument: Empty query, malformed filters, bad paging
            UpstreamError: Provider failed or timed out on a cache miss
        """
        filters = coerce_filters(filters)
        key = normalize(query, filters, page, limit)

        entry = await self._cache_get(key)
        if entry is not None:
            self.logger.info(f"Cache hit for '{query}' (hits={entry.hit_count})")
            response = SearchResponse.from_payload(entry.payload, page, limit, from_cache=True)
        else:
            payload = await self._fetch(user_id, query, filters, page, limit, timeout)
            await self._cache_put(key, payload)
            response = SearchResponse.from_payload(payload, page, limit, from_cache=False)

        self._dispatch_history(user_id, query, filters, response.total_count, response.from_cache)
        return response

    async def _cache_get(self, key: str):
        try:
            return await asyncio.to_thread(self.cache_store.get, key)
        except StoreUnavailable as e:
            # Degrade to a miss; the provider still answers
            self.logger.warning(f"Cache store unavailable on lookup, bypassing cache: {e.message}")
            return None

    async def _cache_put(self, key: str, payload: SearchPayload) -> None:
        try:
            await asyncio.to_thread(self.cache_store.put, key, payload, self.default_ttl)
            self.logger.debug(f"Search result cached under {key}")
        except StoreUnavailable as e:
            self.logger.warning(f"Cache store unavailable on write, result not cached: {e.message}")

    async def _fetch(
        self,
        user_id: str,
        query: str,
        filters: Optional[SearchFilters],
        page: int,
        limit: int,
        timeout: Optional[float],
    ) -> SearchPayload:
        bound = timeout if timeout is not None else self.provider_timeout
        try:
            payload = await asyncio.wait_for(
                self.provider.fetch(query, filters, page, limit), timeout=bound
            )
        except asyncio.TimeoutError as e:
            self.logger.warning(f"Provider timed out after {bound}s for user {user_id}: '{query}'")
            raise UpstreamError(f"Search provider timed out after {bound}s", code="provider_timeout") from e
        except UpstreamError as e:
            self.logger.warning(f"Provider failed for user {user_id}: '{query}' ({e.code})")
            raise
        except Exception as e:
            self.logger.opt(exception=e).error(f"Provider raised unexpectedly for '{query}'")
            raise UpstreamError(f"Search provider failed: {e}", code="provider_error") from e
        self.logger.info(f"Provider returned {payload.total_count} results for '{query}'")
        return payload

    def _dispatch_history(
        self,
        user_id: str,
        query: str,
        filters: Optional[SearchFilters],
        result_count: int,
        cache_hit: bool,
    ) -> None:
        task = asyncio.create_task(
            self._append_history(user_id, query, filters, result_count, cache_hit)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _append_history(self, user_id, query, filters, result_count, cache_hit) -> None:
        # Best effort: failures reach the logs, never the caller
        try:
            await asyncio.to_thread(
                self.history_ledger.append, user_id, query, filters, result_count, cache_hit
            )
        except Exception as e:
            self.logger.opt(exception=e).warning(
                f"Failed to save search history for user {user_id}: {e}"
            )

    async def drain(self) -> None:
        """Wait for in-flight history appends."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def suggestions(self, query: str) -> list[str]:
        """Template-based completions for ``query``."""
        q = (query or "").strip()
        if not q:
            return []
        candidates = [t.format(q=q) for t in SUGGESTION_TEMPLATES]
        return [c for c in candidates if c.casefold() != q.casefold()][:MAX_SUGGESTIONS]
