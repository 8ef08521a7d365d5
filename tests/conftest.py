"""Shared pytest fixtures for all test suites."""

import os
from collections.abc import AsyncGenerator
from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from backend.app.db.inmemory import InMemoryEntryStore, InMemoryTripRepository
from backend.app.db.models import Base
from backend.app.models.common import TravelMode, Waypoint
from backend.app.models.entries import Entry, NewEntry, NewOption, Trip
from backend.app.models.routes import RouteResult
from backend.app.scheduling.travel_modes import TravelModeResolver
from backend.app.tools.executor import ProviderExecutor


class FakeRouteQuery:
    """RouteQuery double with canned answers per mode.

    A mode maps to a RouteResult, None (no route) or an exception to raise.
    Unlisted modes have no route. Every call is recorded.
    """

    def __init__(self, routes: dict[TravelMode, RouteResult | Exception | None] | None = None):
        self.routes = routes or {}
        self.calls: list[tuple[Waypoint, Waypoint, TravelMode, datetime | None]] = []

    async def compute_route(
        self,
        origin: Waypoint,
        destination: Waypoint,
        mode: TravelMode,
        departure_time: datetime | None = None,
    ) -> RouteResult | None:
        self.calls.append((origin, destination, mode, departure_time))
        answer = self.routes.get(mode)
        if isinstance(answer, Exception):
            raise answer
        return answer


async def _no_sleep(seconds: float) -> None:
    pass


@pytest.fixture
def executor() -> ProviderExecutor:
    """Executor without retry delays; fresh cache and breakers per test."""
    return ProviderExecutor(sleep_fn=_no_sleep)


@pytest.fixture
def route_query() -> FakeRouteQuery:
    """Route provider double; set ``route_query.routes`` per test."""
    return FakeRouteQuery()


@pytest.fixture
def resolver(route_query: FakeRouteQuery, executor: ProviderExecutor) -> TravelModeResolver:
    return TravelModeResolver(route_query, executor=executor)


@pytest.fixture
def trip() -> Trip:
    return Trip(id="trip-1", name="London", home_timezone="Europe/London")


@pytest.fixture
def trips(trip: Trip) -> InMemoryTripRepository:
    return InMemoryTripRepository([trip])


@pytest.fixture
def store() -> InMemoryEntryStore:
    return InMemoryEntryStore()


@pytest.fixture
def add_entry(store: InMemoryEntryStore, trip: Trip):  # type: ignore[no-untyped-def]
    """Create an entry with one option in the in-memory store."""

    async def _add(
        start: datetime,
        end: datetime,
        name: str = "Entry",
        *,
        entry_id: str | None = None,
        option_id: str | None = None,
        is_locked: bool = False,
        **option_fields: object,
    ) -> Entry:
        linked = {
            k: option_fields.pop(k)
            for k in ("linked_flight_id", "linked_type", "from_entry_id", "to_entry_id")
            if k in option_fields
        }
        entry = await store.create_entry(
            NewEntry(
                id=entry_id,
                trip_id=trip.id,
                start_time=start,
                end_time=end,
                is_locked=is_locked,
                **linked,
            )
        )
        await store.create_option(
            NewOption(id=option_id, entry_id=entry.id, name=name, **option_fields)
        )
        return entry

    return _add


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the timeline tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def sqlite_session(sqlite_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(sqlite_engine) as session:
        yield session


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(database_url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def postgres_session(postgres_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create async session for PostgreSQL integration tests."""
    async with AsyncSession(postgres_engine) as session:
        yield session
        await session.rollback()
