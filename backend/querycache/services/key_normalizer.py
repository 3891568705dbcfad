"""Canonical cache keys for (query, filters, page, limit)."""

import json
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from ..core.exceptions import InvalidArgument
from ..schemas.search import FILTERS_VERSION, SearchFilters

NAMESPACE = "search"
DELIMITER = "|"

FilterInput = Union[SearchFilters, Mapping[str, Any], None]


def coerce_filters(filters: FilterInput) -> Optional[SearchFilters]:
    """Validate a raw mapping into ``SearchFilters``."""
    if filters is None or isinstance(filters, SearchFilters):
        return filters
    try:
        return SearchFilters.model_validate(dict(filters))
    except (ValidationError, TypeError, ValueError) as e:
        raise InvalidArgument(f"Malformed filter set: {e}")


def canonical_filters(filters: Optional[SearchFilters]) -> str:
    """Serialize filters with a fixed field order; unset fields are dropped."""
    if filters is None:
        return ""
    data = filters.model_dump(mode="json", exclude_none=True)
    data = {k: v for k, v in data.items() if v != {}}
    # A filter set with nothing but its version is the same as no filters
    if set(data) <= {"version"}:
        return ""
    return json.dumps(data, sort_keys=True, separators=(",", ":"))


def normalize_query(query: str) -> str:
    if query is None:
        raise InvalidArgument("Search query is required", code="missing_query")
    normalized = query.strip().casefold()
    if not normalized:
        raise InvalidArgument("Search query must not be empty", code="empty_query")
    return normalized


def _component(text: str) -> str:
    # Length prefix keeps the key unambiguous when free text contains the delimiter
    return f"{len(text)}:{text}"


def normalize(query: str, filters: FilterInput, page: int, limit: int) -> str:
    """Build the canonical cache key.

    Two filter sets with the same field values produce the same key
    regardless of construction order.

    Raises:
        InvalidArgument: empty query, malformed filters, page or limit < 1
    """
    normalized_query = normalize_query(query)
    if page < 1:
        raise InvalidArgument(f"page must be >= 1, got {page}")
    if limit < 1:
        raise InvalidArgument(f"limit must be >= 1, got {limit}")

    filter_blob = canonical_filters(coerce_filters(filters))
    return DELIMITER.join([
        NAMESPACE,
        f"v{FILTERS_VERSION}",
        _component(normalized_query),
        _component(filter_blob),
        str(page),
        str(limit),
    ])


def query_from_key(key: str) -> str:
    """Recover the normalized query from a canonical key."""
    try:
        _, _, rest = key.split(DELIMITER, 2)
        length, _, tail = rest.partition(":")
        return tail[:int(length)]
    except ValueError:
        return key
