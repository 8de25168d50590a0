"""Shared test fixtures and configuration."""

import os
import uuid
from datetime import date, datetime, timedelta, timezone

import pytest

# In-memory SQLite and memory cache during tests (no PostgreSQL / Redis)
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("CACHE_BACKEND", "memory")

from decision_search.database import build_engine, build_session_factory, create_tables  # noqa: E402
from decision_search.models.decisions import Decision  # noqa: E402
from decision_search.search.schemas import DecisionRecord, SearchPayload  # noqa: E402


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def session_factory():
    """Fresh in-memory SQLite database with all tables created."""
    engine = build_engine("sqlite+aiosqlite://")
    await create_tables(engine)
    yield build_session_factory(engine)
    await engine.dispose()


SAMPLE_DECISIONS = [
    dict(title="Kitchen cabinets", description="Shaker style, painted", area="Kitchen",
         status="pending", project_id="proj-1", assignee_id="user-1", required_by=date(2026, 2, 1)),
    dict(title="Kitchen tiles", description="Backsplash tiles", area="Kitchen",
         status="pending", project_id="proj-1", assignee_id="user-2", required_by=date(2026, 2, 10)),
    dict(title="Island lighting", description="Pendants over the kitchen island", area="Lighting",
         status="decided", project_id="proj-1", assignee_id="user-1", required_by=date(2026, 1, 20)),
    dict(title="Pantry shelving", description="Open shelves", area="Kitchen",
         status="waiting_for_client", project_id="proj-2", assignee_id="user-2", required_by=date(2026, 3, 1)),
    dict(title="Dining chairs", description="Six upholstered chairs", area="Dining",
         status="pending", project_id="proj-2", assignee_id="user-1", required_by=date(2026, 2, 5)),
    dict(title="Kitchen sink", description="Undermount sink", area="Kitchen",
         status="decided", project_id="proj-1", assignee_id="user-1", required_by=date(2026, 1, 25),
         archived=True),
]


@pytest.fixture
async def seeded_session_factory(session_factory):
    """Database with a small set of decisions."""
    async with session_factory() as session:
        session.add_all([Decision(**row) for row in SAMPLE_DECISIONS])
        await session.commit()
    return session_factory


@pytest.fixture
def sample_payload():
    return SearchPayload(
        decisions=[
            DecisionRecord(
                id=uuid.UUID("6f1c2b5e-3a41-4c8e-9d1e-0c2a7b9e4f10"),
                title="Kitchen cabinets",
                description="Shaker style, painted",
                area="Kitchen",
                status="pending",
                project_id="proj-1",
                required_by=date(2026, 2, 1),
            ),
        ],
        total=1,
    )


class StaticExecutor:
    """Query executor returning fixed records; counts calls."""

    def __init__(self, records: list[DecisionRecord] | None = None, total: int | None = None):
        self.records = records or []
        self.total = len(self.records) if total is None else total
        self.calls: list[tuple] = []

    async def execute(self, text, filters, limit, offset):
        self.calls.append((text, filters, limit, offset))
        return list(self.records), self.total


class FailingExecutor:
    async def execute(self, text, filters, limit, offset):
        raise RuntimeError("record store unavailable")


@pytest.fixture
def make_executor():
    return StaticExecutor


@pytest.fixture
def failing_executor():
    return FailingExecutor()
