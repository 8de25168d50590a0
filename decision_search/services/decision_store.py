"""Decision query executor — runs an uncached search against the record store.

Matches non-archived decisions whose title, description or area contains the
text (case-insensitive), with exact-match filters and an inclusive
``required_by`` date range. Ordered by ``required_by`` ascending; the total
is counted before pagination.
"""

import logging
from typing import Protocol

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from decision_search.models.decisions import Decision
from decision_search.search.schemas import DecisionRecord, SearchFilters

logger = logging.getLogger(__name__)


class DecisionQueryExecutor(Protocol):
    async def execute(
        self,
        text: str,
        filters: SearchFilters,
        limit: int,
        offset: int,
    ) -> tuple[list[DecisionRecord], int]: ...


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_conditions(text: str, filters: SearchFilters) -> list:
    conditions = [Decision.archived.is_(False)]

    if text:
        pattern = _like_pattern(text)
        conditions.append(or_(
            Decision.title.ilike(pattern, escape="\\"),
            Decision.description.ilike(pattern, escape="\\"),
            Decision.area.ilike(pattern, escape="\\"),
        ))

    if filters.status:
        conditions.append(Decision.status == filters.status)
    if filters.project_id:
        conditions.append(Decision.project_id == filters.project_id)
    if filters.assignee_id:
        conditions.append(Decision.assignee_id == filters.assignee_id)
    if filters.date_range:
        conditions.append(Decision.required_by >= filters.date_range.start)
        conditions.append(Decision.required_by <= filters.date_range.end)

    return conditions


class SqlDecisionQueryExecutor:
    """Executor over the ``decisions`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def execute(
        self,
        text: str,
        filters: SearchFilters,
        limit: int,
        offset: int,
    ) -> tuple[list[DecisionRecord], int]:
        conditions = build_conditions(text.strip(), filters)
        page = (
            select(Decision)
            .where(*conditions)
            .order_by(Decision.required_by.asc(), Decision.id)
            .offset(offset)
            .limit(limit)
        )
        count = select(func.count()).select_from(Decision).where(*conditions)

        async with self._session_factory() as session:
            rows = (await session.execute(page)).scalars().all()
            total = (await session.execute(count)).scalar_one()

        logger.debug("Decision query | text=%r | rows=%d | total=%d", text, len(rows), total)
        return [DecisionRecord.model_validate(row) for row in rows], total
