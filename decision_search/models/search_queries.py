"""SearchQuery model — logs every search call for analytics."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from decision_search.models.base import Base, JSONType
from decision_search.utils.time import utcnow


class SearchQuery(Base):
    """Append-only log of search requests, latency and cache outcome."""

    __tablename__ = "search_queries"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    query_text: Mapped[str] = mapped_column(Text, nullable=False)
    filters: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    result_count: Mapped[int] = mapped_column(Integer, nullable=False, insert_default=0)
    response_time_ms: Mapped[int] = mapped_column(Integer, nullable=False)
    cache_hit: Mapped[bool] = mapped_column(Boolean, nullable=False, insert_default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )
