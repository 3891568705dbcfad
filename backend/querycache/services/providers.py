"""External search provider adapters."""

import asyncio
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests
from loguru import logger
from pydantic import ValidationError

from ..core.exceptions import UpstreamError
from ..schemas.search import SearchFilters, SearchPayload


class SearchProvider(Protocol):
    """Anything that can fetch one page of results for a query."""

    async def fetch(
        self,
        query: str,
        filters: Optional[SearchFilters],
        page: int,
        limit: int,
    ) -> SearchPayload:
        ...


class HttpSearchProvider:
    """Generic JSON-over-HTTP provider.

    Sends ``GET <url>?q=..&page=..&limit=..`` plus flattened filters and
    expects ``{"results": [...], "total_count": int, "search_time": float}``.
    Retry policy, if any, belongs to the endpoint behind ``url``.
    """

    def __init__(self, url: str, api_key: str = "", timeout: float = 30.0, name: Optional[str] = None):
        self.url = url
        self.api_key = api_key
        self.timeout = timeout
        self.name = name or url

    def _params(self, query: str, filters: Optional[SearchFilters], page: int, limit: int) -> Dict[str, Any]:
        params: Dict[str, Any] = {"q": query, "page": page, "limit": limit}
        if filters:
            if filters.content_type:
                params["content_type"] = filters.content_type
            if filters.sort_by:
                params["sort_by"] = filters.sort_by
            if filters.domain:
                params["domain"] = filters.domain
            if filters.date_range:
                if filters.date_range.start:
                    params["from"] = filters.date_range.start.isoformat()
                if filters.date_range.end:
                    params["to"] = filters.date_range.end.isoformat()
        return params

    def _request(self, params: Dict[str, Any]) -> SearchPayload:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        started = time.monotonic()
        try:
            response = requests.get(self.url, params=params, headers=headers, timeout=self.timeout)
        except requests.Timeout as e:
            raise UpstreamError(f"{self.name} timed out", code="provider_timeout") from e
        except requests.RequestException as e:
            raise UpstreamError(f"{self.name} request failed: {e}", code="provider_unreachable") from e

        if response.status_code == 429:
            raise UpstreamError(f"{self.name} rate limit exceeded", code="rate_limit_exceeded")
        if response.status_code != 200:
            raise UpstreamError(
                f"{self.name} returned {response.status_code}", code="provider_error"
            )

        try:
            data = response.json()
            data.setdefault("search_time", round((time.monotonic() - started) * 1000, 2))
            return SearchPayload.model_validate(data)
        except (ValueError, AttributeError, ValidationError) as e:
            raise UpstreamError(f"{self.name} returned a malformed body: {e}", code="provider_bad_response") from e

    async def fetch(self, query, filters, page, limit) -> SearchPayload:
        params = self._params(query, filters, page, limit)
        return await asyncio.to_thread(self._request, params)


class FallbackSearchProvider:
    """Tries each provider in order until one answers."""

    def __init__(self, providers: Sequence[SearchProvider]):
        if not providers:
            raise ValueError("FallbackSearchProvider needs at least one provider")
        self.providers: List[SearchProvider] = list(providers)

    async def fetch(self, query, filters, page, limit) -> SearchPayload:
        errors = []
        for provider in self.providers:
            name = getattr(provider, "name", provider.__class__.__name__)
            try:
                payload = await provider.fetch(query, filters, page, limit)
            except UpstreamError as e:
                logger.warning(f"Search provider {name} failed, trying next: {e.message}")
                errors.append(e)
                continue
            logger.info(f"Search completed using {name} ({len(payload.results)} results)")
            return payload

        logger.error(f"All search providers failed for query '{query}'")
        raise UpstreamError(
            "Search service temporarily unavailable", code="all_providers_failed"
        ) from errors[-1]


def build_provider(urls: Sequence[str], api_key: str = "", timeout: float = 30.0) -> SearchProvider:
    """Create the configured provider chain."""
    providers = [HttpSearchProvider(url, api_key=api_key, timeout=timeout) for url in urls]
    if not providers:
        raise ValueError("No search provider configured (set SEARCH_PROVIDER_URLS)")
    if len(providers) == 1:
        return providers[0]
    return FallbackSearchProvider(providers)
