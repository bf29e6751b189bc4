"""
Castflow Studio - Test Fixtures
===============================

Shared pytest fixtures for all tests.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from passlib.hash import bcrypt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from castflow.api.deps import create_access_token, get_hub, get_registry
from castflow.api.main import app
from castflow.core.collaboration import AutoSaveRegistry, RosterService
from castflow.core.database import Base, get_db
from castflow.core.models import (
    Episode,
    EpisodeCollaborator,
    TeamMember,
    TeamMemberStatus,
    User,
    UserRole,
    Workspace,
)
from castflow.core.realtime import RealtimeHub


# ==========================================================================
# Test Database Setup
# ==========================================================================

# Use in-memory SQLite for tests (fast)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

TEST_PASSWORD = "TestPass123!"
# One hash for every fixture user; bcrypt is slow on purpose
_PASSWORD_HASH = bcrypt.hash(TEST_PASSWORD)


# ==========================================================================
# Database Fixtures
# ==========================================================================

@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Provide a clean database session for each test.

    Creates all tables before test, drops after.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestingSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def hub() -> RealtimeHub:
    """Fresh hub per test so subscriptions never leak between tests."""
    return RealtimeHub()


@pytest_asyncio.fixture
async def registry(hub: RealtimeHub) -> AsyncGenerator[AutoSaveRegistry, None]:
    """Auto-save registry on the test database with a delay no test waits out."""
    registry = AutoSaveRegistry(session_factory=TestingSessionLocal, delay=60, hub=hub)
    yield registry
    for user_id, episode_id in list(registry._coordinators):
        await registry.discard(user_id, episode_id)


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    hub: RealtimeHub,
    registry: AutoSaveRegistry,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Provide test HTTP client with database, hub and registry overrides.
    """
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_hub] = lambda: hub
    app.dependency_overrides[get_registry] = lambda: registry

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ==========================================================================
# User Fixtures
# ==========================================================================

UserFactory = Callable[..., Awaitable[User]]


@pytest.fixture
def make_user(db_session: AsyncSession) -> UserFactory:
    """Factory for users. Password is TEST_PASSWORD."""

    async def _make_user(name: str = "Test User", email: str = None, is_active: bool = True) -> User:
        user = User(
            id=uuid4(),
            email=email or unique_email(),
            password_hash=_PASSWORD_HASH,
            name=name,
            avatar_url=f"https://avatars.example.com/{name.replace(' ', '-').lower()}.png",
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest_asyncio.fixture
async def test_user(make_user: UserFactory) -> User:
    return await make_user("Test User", email="test@example.com")


@pytest_asyncio.fixture
async def host(make_user: UserFactory) -> User:
    return await make_user("Hana Host")


@pytest_asyncio.fixture
async def editor(make_user: UserFactory) -> User:
    return await make_user("Eddie Editor")


@pytest_asyncio.fixture
async def marketer(make_user: UserFactory) -> User:
    return await make_user("Mia Marketer")


@pytest_asyncio.fixture
async def va(make_user: UserFactory) -> User:
    return await make_user("Val Assistant")


@pytest_asyncio.fixture
async def outsider(make_user: UserFactory) -> User:
    return await make_user("Olly Outsider")


# ==========================================================================
# Workspace Fixtures
# ==========================================================================

@pytest_asyncio.fixture
async def workspace(
    db_session: AsyncSession,
    hub: RealtimeHub,
    host: User,
    editor: User,
    marketer: User,
    va: User,
) -> Workspace:
    """Workspace owned by `host` with one active member per other role."""
    workspace = await RosterService(db_session, hub).create_workspace("Morning Show", host.id)
    for user, role in ((editor, UserRole.EDITOR), (marketer, UserRole.MARKETER), (va, UserRole.VA)):
        db_session.add(TeamMember(
            id=uuid4(),
            workspace_id=workspace.id,
            user_id=user.id,
            role=role,
            invited_by=host.id,
            status=TeamMemberStatus.ACTIVE,
        ))
    await db_session.commit()
    return workspace


@pytest_asyncio.fixture
async def member(db_session: AsyncSession, make_user: UserFactory, workspace: Workspace, host: User) -> User:
    """Active workspace marketer who is not on any episode."""
    user = await make_user("Mo Member")
    db_session.add(TeamMember(
        id=uuid4(),
        workspace_id=workspace.id,
        user_id=user.id,
        role=UserRole.MARKETER,
        invited_by=host.id,
        status=TeamMemberStatus.ACTIVE,
    ))
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def episode(
    db_session: AsyncSession,
    hub: RealtimeHub,
    workspace: Workspace,
    host: User,
    editor: User,
    marketer: User,
    va: User,
) -> Episode:
    """Draft episode with all four workspace users as collaborators."""
    episode = await RosterService(db_session, hub).create_episode(
        workspace.id,
        "Episode 1: Pilot",
        host.id,
        content={
            "transcript": "Welcome to the show. Today we talk about podcasting tools.",
            "summary": "A pilot episode about tools.",
            "chapters": [],
            "keywords": ["pilot"],
        },
    )
    for user, role in ((editor, UserRole.EDITOR), (marketer, UserRole.MARKETER), (va, UserRole.VA)):
        db_session.add(EpisodeCollaborator(
            id=uuid4(),
            episode_id=episode.id,
            user_id=user.id,
            role=role,
        ))
    await db_session.commit()
    return episode


# ==========================================================================
# Auth Fixtures
# ==========================================================================

def headers_for(user: User) -> dict[str, str]:
    """Authorization headers for any user."""
    token = create_access_token(user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers() -> Callable[[User], dict[str, str]]:
    """headers(user) -> Authorization header dict."""
    return headers_for


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    """Get authorization headers for test user."""
    return headers_for(test_user)


# ==========================================================================
# Helper Functions
# ==========================================================================

def unique_email() -> str:
    """Generate a unique email for tests."""
    return f"test_{uuid4().hex[:8]}@example.com"
