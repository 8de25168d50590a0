"""SQLAlchemy ORM models."""

from decision_search.models.base import Base
from decision_search.models.cached_results import CachedResult
from decision_search.models.decisions import Decision
from decision_search.models.search_queries import SearchQuery

__all__ = ["Base", "CachedResult", "Decision", "SearchQuery"]
