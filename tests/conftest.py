import pytest
from typing import AsyncGenerator
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.pool import StaticPool

from liftsync.config import settings
from liftsync.database import Base, create_engine_for, get_db, make_session_factory
from liftsync.main import app
from liftsync.models import Exercise
from liftsync.services.user_service import UserService

MEMORY_URL = "sqlite+aiosqlite://"


async def _memory_engine():
    engine = create_engine_for(MEMORY_URL, poolclass=StaticPool, connect_args={"check_same_thread": False})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return engine


@pytest.fixture(scope="function")
async def device_engine():
    engine = await _memory_engine()
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def device_factory(device_engine):
    return make_session_factory(device_engine)


@pytest.fixture(scope="function")
async def db_session(device_factory) -> AsyncGenerator[AsyncSession, None]:
    async with device_factory() as session:
        yield session


@pytest.fixture(scope="function")
async def server_engine():
    engine = await _memory_engine()
    yield engine
    await engine.dispose()


@pytest.fixture(scope="function")
def server_factory(server_engine):
    return make_session_factory(server_engine)


@pytest.fixture(scope="function")
async def client(server_factory) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        async with server_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def device_user(device_factory):
    async with device_factory() as db:
        return await UserService.create_user(db, "lifter")


@pytest.fixture
async def exercises(device_factory):
    """Three user exercises in the device store, keyed by name."""
    rows = {name: Exercise(name=name) for name in ("Squat", "Bench Press", "Deadlift")}
    async with device_factory() as db:
        db.add_all(rows.values())
        await db.commit()
    return {name: row.id for name, row in rows.items()}


@pytest.fixture
async def auth_headers(client):
    response = await client.post(
        f"{settings.API_V1_STR}/users/token",
        json={"id": "user-1", "username": "lifter", "createdAt": "2026-01-01T00:00:00Z"},
    )
    token = response.json()["data"]["accessToken"]
    return {"Authorization": f"Bearer {token}"}
