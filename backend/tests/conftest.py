"""
Test fixtures - in-memory SQLite database + authenticated HTTP client
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

import doit.models  # noqa: F401
from doit.core.config import settings
from doit.core.database import Base, get_db
from doit.core.security import create_access_token
from doit.main import app
from doit.models.user import User

TEST_EMAIL = "test@example.com"


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Keep tests independent of a local .env"""
    monkeypatch.setattr(settings, "timezone", "Europe/Berlin")
    monkeypatch.setattr(settings, "allowed_emails", "")
    monkeypatch.setattr(settings, "openai_api_key", "")
    monkeypatch.setattr(settings, "slack_signing_secret", "")
    monkeypatch.setattr(settings, "slack_allowed_channels", "")
    monkeypatch.setattr(settings, "slack_allowed_users", "")
    monkeypatch.setattr(settings, "slack_user_email", TEST_EMAIL)
    monkeypatch.setattr(settings, "cron_secret", "cron-secret")
    monkeypatch.setattr(settings, "cron_user_email", TEST_EMAIL)
    monkeypatch.setattr(settings, "google_refresh_token", "")
    monkeypatch.setattr(settings, "encryption_key", "")


@pytest_asyncio.fixture()
async def db_session():
    """Create a fresh in-memory SQLite database for each test"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with session_factory() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture()
async def seed_user(db_session):
    """Insert the signed-in test user"""
    user = User(email=TEST_EMAIL, name="Test User", google_connected=True)
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture()
async def client(db_session, seed_user):
    """Authenticated httpx AsyncClient bound to the FastAPI app"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    token = create_access_token(seed_user.email)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        ac.headers["Authorization"] = f"Bearer {token}"
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauth_client(db_session):
    """Unauthenticated httpx AsyncClient"""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
