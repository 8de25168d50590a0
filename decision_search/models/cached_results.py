"""CachedResult model — persistent cache layer for search results."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from decision_search.models.base import Base, JSONType
from decision_search.utils.time import utcnow


class CachedResult(Base):
    """Database-backed cache for search results with TTL and hit counter."""

    __tablename__ = "cached_results"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    cache_key: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, index=True,
    )
    search_query_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    result_data: Mapped[dict] = mapped_column(JSONType, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    hit_count: Mapped[int] = mapped_column(Integer, nullable=False, insert_default=0)
