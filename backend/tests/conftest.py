# tests/conftest.py
import os

# Point settings at an in-memory database before the app is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock
from fastapi import WebSocket
from fastapi.websockets import WebSocketState
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from switchboard.main import app
from switchboard.models import Base, User, TelephonyCredentials
from switchboard.db.database import get_db
from switchboard.auth.auth import AuthService
from switchboard.core.presence_hub import PresenceHub

TEST_DATABASE_URL = "sqlite+aiosqlite://"
TEST_PASSWORD = "password123"


@pytest_asyncio.fixture
async def test_db_engine():
    """In-memory SQLite engine shared by the test and the app."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_db_engine):
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def hub():
    """A fresh presence hub installed on the app for the duration of a test."""
    previous = app.state.presence_hub
    app.state.presence_hub = PresenceHub()
    yield app.state.presence_hub
    app.state.presence_hub = previous


@pytest_asyncio.fixture
async def client(session_factory, hub):
    """HTTP client wired to the test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    """Factory inserting users directly."""
    counter = {"n": 0}

    async def _make_user(role="user", is_active=True, email=None, extension=None, full_name=None,
                         password=TEST_PASSWORD):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            full_name=full_name or f"Test {role.title()} {n}",
            email=email or f"{role}{n}@example.com",
            phone=f"555000{n:04d}",
            extension=extension or f"{100 + n}",
            role=role,
            hashed_password=AuthService.get_password_hash(password),
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user

    return _make_user


@pytest_asyncio.fixture
async def admin_user(make_user):
    return await make_user(role="admin", full_name="Alice Admin")


@pytest_asyncio.fixture
async def manager_user(make_user):
    return await make_user(role="manager", full_name="Morgan Manager")


@pytest_asyncio.fixture
async def regular_user(make_user):
    return await make_user(role="user", full_name="Uma User")


@pytest.fixture
def login(client):
    """Log in through the API and return auth headers."""
    async def _login(user, password=TEST_PASSWORD):
        response = await client.post("/api/auth/login", json={"email": user.email, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['token']}"}

    return _login


@pytest_asyncio.fixture
async def telephony_credentials(db_session):
    credentials = TelephonyCredentials(
        account_sid="AC" + "a" * 32,
        api_key="SK" + "b" * 32,
        api_secret="real-api-secret",
        app_sid="AP" + "c" * 32,
        phone_number="+15550001111",
    )
    db_session.add(credentials)
    await db_session.commit()
    await db_session.refresh(credentials)
    return credentials


@pytest.fixture
def mock_websocket():
    """Factory for open websocket doubles."""
    def _mock_websocket(state=WebSocketState.CONNECTED):
        websocket = AsyncMock(spec=WebSocket)
        websocket.client_state = state
        return websocket

    return _mock_websocket
