"""Pydantic models for search input/output, cache entries and telemetry.

JSON field names are camelCase on the wire; Python attributes stay snake_case.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DecisionStatus = Literal["pending", "waiting_for_client", "decided", "overdue", "archived"]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ═══════════════ REQUEST ═══════════════

class DateRange(CamelModel):
    """Inclusive range applied to a decision's required-by date."""

    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode="after")
    def _check_order(self) -> DateRange:
        if self.end < self.start:
            raise ValueError("dateRange.end must not be before dateRange.start")
        return self


class SearchFilters(CamelModel):
    model_config = ConfigDict(frozen=True)

    status: DecisionStatus | None = None
    project_id: str | None = None
    assignee_id: str | None = None
    date_range: DateRange | None = None

    def as_dict(self) -> dict[str, Any]:
        """Submitted filters only, camelCase, in declaration order."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SearchRequest(CamelModel):
    model_config = ConfigDict(frozen=True)

    query: str = ""
    filters: SearchFilters | None = None
    limit: int = Field(default=10, ge=1)
    offset: int = Field(default=0, ge=0)

    @property
    def normalized_query(self) -> str:
        return self.query.strip().lower()

    @property
    def effective_filters(self) -> SearchFilters:
        return self.filters or SearchFilters()


# ═══════════════ RESULTS ═══════════════

class DecisionRecord(CamelModel):
    """A decision row as returned by the query executor."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    title: str
    description: str | None = None
    area: str | None = None
    status: str = "pending"
    project_id: str | None = None
    assignee_id: str | None = None
    required_by: date | None = None
    archived: bool = False
    created_at: datetime | None = None


class SearchPayload(CamelModel):
    """The cacheable part of a search result."""

    decisions: list[DecisionRecord] = Field(default_factory=list)
    total: int = 0


class SearchResult(SearchPayload):
    """Payload plus per-call metadata; the metadata is never cached."""

    cache_hit: bool = False
    response_time_ms: int = 0


# ═══════════════ CACHE ═══════════════

class CacheEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cache_key: str
    result_data: dict[str, Any]
    search_query_id: uuid.UUID | None = None
    expires_at: datetime
    created_at: datetime
    hit_count: int = 0

    @property
    def payload(self) -> SearchPayload:
        return SearchPayload.model_validate(self.result_data)


class CacheStats(CamelModel):
    total_entries: int = 0
    active_entries: int = 0
    expired_entries: int = 0
    total_hits: int = 0
    average_hit_count: float = 0


# ═══════════════ TELEMETRY ═══════════════

class SearchQueryLogEntry(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: str | None = None
    query_text: str
    filters: dict[str, Any] = Field(default_factory=dict)
    result_count: int
    response_time_ms: int
    cache_hit: bool
    created_at: datetime


class TopSearch(CamelModel):
    query: str
    count: int
    avg_response_time: float


class PerformanceMetrics(CamelModel):
    average_response_time: int = 0
    cache_hit_rate: float = 0
    total_queries: int = 0
    queries_last_24h: int = Field(default=0, alias="queriesLast24h")
    slow_queries: int = 0
    top_searches: list[TopSearch] = Field(default_factory=list)


class DailyPerformance(CamelModel):
    day: str = Field(alias="date")
    count: int
    avg_response_time: float
    cache_hit_rate: float
