"""
Pytest configuration and fixtures for the team membership service.
"""

from collections.abc import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.db import Base
from app.deps import get_team_service
from app.main import app
from app.models.membership import MembershipRole
from app.services.team_service import TeamService
from app.services.team_store import StoreError, StoreTable, TeamStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Low limit so quota tests stay short
MAX_TEAMS = 3

OWNER = "user-owner"
ADMIN = "user-admin"
MEMBER = "user-member"
OUTSIDER = "user-outsider"


class FlakyTable:
    """Store table wrapper that fails selected calls.

    Each registered failure fires once, on the first call to ``method`` whose
    arguments satisfy ``when``; every other call goes to the wrapped table.
    """

    METHODS = ("select", "first", "insert", "update", "delete", "count")

    def __init__(self, table: StoreTable):
        self._table = table
        self._failures: list[tuple[str, Callable[..., bool], Exception]] = []
        self.calls: list[tuple[str, tuple]] = []

    def fail_on(self, method: str, when: Callable[..., bool] | None = None, error: Exception | None = None):
        self._failures.append((
            method,
            when or (lambda *args, **kwargs: True),
            error or StoreError(f"injected {method} failure on {self._table.name}"),
        ))

    def __getattr__(self, name: str):
        attr = getattr(self._table, name)
        if name not in self.METHODS:
            return attr

        async def call(*args, **kwargs):
            self.calls.append((name, args))
            for index, (method, when, error) in enumerate(self._failures):
                if method == name and when(*args, **kwargs):
                    del self._failures[index]
                    raise error
            return await attr(*args, **kwargs)

        return call


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> TeamStore:
    """Team store whose tables can be told to fail."""
    store = TeamStore(session_factory)
    store.teams = FlakyTable(store.teams)
    store.members = FlakyTable(store.members)
    return store


@pytest.fixture
def service(store: TeamStore) -> TeamService:
    return TeamService(store, max_teams_per_user=MAX_TEAMS)


@pytest.fixture
def add_member(service: TeamService):
    """Invite a user and accept on their behalf."""

    async def _add(team_id: str, user_id: str, role: MembershipRole = MembershipRole.MEMBER, actor: str = OWNER):
        await service.invite_member(team_id, actor, user_id=user_id, role=role)
        return await service.accept_invite(team_id, user_id)

    return _add


@pytest_asyncio.fixture
async def team(service: TeamService, add_member):
    """Shared team with an owner, an admin and a member."""
    team = await service.create_team("Prompt Engineering", OWNER, description="Shared prompts")
    await add_member(team.id, ADMIN, role=MembershipRole.ADMIN)
    await add_member(team.id, MEMBER)
    return team


@pytest_asyncio.fixture
async def client(service: TeamService) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app with the test service injected."""
    app.dependency_overrides[get_team_service] = lambda: service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


def as_user(user_id: str, email: str | None = None) -> dict[str, str]:
    """Identity headers for a request made by user_id."""
    headers = {"X-User-ID": user_id}
    if email:
        headers["X-User-Email"] = email
    return headers
