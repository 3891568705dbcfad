"""Search, cache and history schemas."""

import math
from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..core.clock import as_naive_utc

ContentType = Literal["all", "web", "images", "videos", "news"]
SortOrder = Literal["relevance", "date", "popularity"]

FILTERS_VERSION = 1


class DateRange(BaseModel):
    """Inclusive date range filter."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    @field_validator("start", "end")
    @classmethod
    def to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # Equal instants in different zones must serialize identically
        return as_naive_utc(value)

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.start and self.end and self.end < self.start:
            raise ValueError("date_range.end must not be before date_range.start")
        return self

    class Config:
        extra = "forbid"
        frozen = True


class SearchFilters(BaseModel):
    """Closed, versioned filter set attached to a search."""

    version: int = Field(default=FILTERS_VERSION, ge=1)
    content_type: Optional[ContentType] = None
    sort_by: Optional[SortOrder] = None
    domain: Optional[str] = Field(None, max_length=255)
    date_range: Optional[DateRange] = None

    class Config:
        extra = "forbid"
        frozen = True


class ResultMetadata(BaseModel):
    author: Optional[str] = None
    word_count: Optional[int] = None
    image_url: Optional[str] = None
    video_length: Optional[str] = None


class SearchResult(BaseModel):
    """A single provider-supplied result."""

    id: str
    title: str
    url: str
    snippet: str = ""
    domain: str = ""
    published_at: Optional[str] = None
    content_type: ContentType = "web"
    metadata: Optional[ResultMetadata] = None


class SearchPayload(BaseModel):
    """Result set as returned by a provider and stored in the cache."""

    results: List[SearchResult] = Field(default_factory=list)
    total_count: int = Field(..., ge=0)
    search_time: float = Field(0.0, ge=0, description="Provider latency in ms")


class SearchResponse(BaseModel):
    """Page of results handed back to the caller."""

    results: List[SearchResult]
    total_count: int
    current_page: int
    total_pages: int
    has_next_page: bool
    search_time: float
    from_cache: bool = False

    @classmethod
    def from_payload(
        cls, payload: SearchPayload, page: int, limit: int, from_cache: bool
    ) -> "SearchResponse":
        # Pagination is always derived, never stored
        return cls(
            results=payload.results,
            total_count=payload.total_count,
            current_page=page,
            total_pages=math.ceil(payload.total_count / limit),
            has_next_page=page * limit < payload.total_count,
            search_time=payload.search_time,
            from_cache=from_cache,
        )


class CacheEntry(BaseModel):
    key: str
    payload: SearchPayload
    hit_count: int = Field(0, ge=0)
    created_at: datetime
    expires_at: datetime
    last_hit_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class HistoryItem(BaseModel):
    id: str
    user_id: str
    query: str
    filters: Optional[SearchFilters] = None
    result_count: int = Field(0, ge=0)
    cache_hit: bool = False
    created_at: datetime

    class Config:
        from_attributes = True


class HistoryQuery(BaseModel):
    """Filter applied when listing a user's history."""

    search_term: Optional[str] = Field(None, max_length=500)
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None


class HistoryPage(BaseModel):
    items: List[HistoryItem]
    total_count: int
    current_page: int
    total_pages: int
    has_next_page: bool


class QueryCount(BaseModel):
    query: str
    count: int


class UserStats(BaseModel):
    total_searches: int
    unique_queries: int
    avg_result_count: float
    cache_hit_ratio: float
    searches_today: int = 0
    searches_this_week: int = 0
    top_queries: List[QueryCount] = Field(default_factory=list)
    searches_by_content_type: Dict[str, int] = Field(default_factory=dict)


class SystemStats(BaseModel):
    total_cache_entries: int
    total_hits: int
    aggregate_hit_ratio: float
    total_history_items: int
    avg_search_time: float = 0.0
    popular_queries: List[QueryCount] = Field(default_factory=list)


# Request bodies

class SearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)
    filters: Optional[SearchFilters] = None
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)


class SaveHistoryRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)
    result_count: int = Field(..., ge=0)
    filters: Optional[SearchFilters] = None
