"""
Shared test fixtures.

Uses an in-memory SQLite database for fast testing.
JSONB columns are compiled as JSON for SQLite compatibility.
For integration tests against PostgreSQL, use docker compose.
"""

from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

from backlog_import.core.database import Base, get_db
from backlog_import.main import app
from backlog_import.models.core import Dependency, WorkItem  # noqa: F401
from backlog_import.models.infrastructure import Project, Sprint, Team


# ─── SQLite compatibility: JSONB → JSON, UUID → CHAR(36) ──────

@compiles(JSONB, "sqlite")
def compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


@compiles(UUID, "sqlite")
def compile_uuid_sqlite(type_, compiler, **kw):
    return "CHAR(36)"


# Use SQLite async for tests (aiosqlite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# One shared connection so every session sees the same in-memory database
engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
test_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# The sqlite driver's implicit transactions break SAVEPOINT; emit BEGIN ourselves.
@event.listens_for(engine.sync_engine, "connect")
def _sqlite_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine.sync_engine, "begin")
def _sqlite_begin(conn):
    conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a test database session."""
    async with test_session() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Provide a test HTTP client with database override."""

    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Helper factories ─────────────────────────────────────────

@pytest_asyncio.fixture
async def make_team(db_session: AsyncSession):
    """Factory fixture for creating teams."""
    async def _make(name: str = "Platform") -> Team:
        team = Team(name=name)
        db_session.add(team)
        await db_session.flush()
        await db_session.refresh(team)
        return team
    return _make


@pytest_asyncio.fixture
async def make_project(db_session: AsyncSession):
    """Factory fixture for creating projects."""
    async def _make(team: Team, name: str = "Backlog") -> Project:
        project = Project(team_id=team.id, name=name)
        db_session.add(project)
        await db_session.flush()
        await db_session.refresh(project)
        return project
    return _make


@pytest_asyncio.fixture
async def make_sprint(db_session: AsyncSession):
    """Factory fixture for creating sprints."""
    async def _make(team: Team, name: str = "Sprint 1") -> Sprint:
        sprint = Sprint(team_id=team.id, name=name)
        db_session.add(sprint)
        await db_session.flush()
        await db_session.refresh(sprint)
        return sprint
    return _make
