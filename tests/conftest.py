import os

import pytest
import httpx

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

# the package import registers every model on Base.metadata
from app.models import Base

from app.main import app
from app.core.db import get_db
from app.services.reference_data import seed_reference_codes

from tests.fixtures_seed import buyer, geo, owner  # noqa: F401


def _test_db_url() -> str | None:
    # PostgreSQL when set, otherwise a private in-memory SQLite per test
    return os.getenv("DATABASE_URL_TEST")


def _make_engine():
    url = _test_db_url()
    if url:
        return create_async_engine(url, pool_pre_ping=True)

    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _sqlite_pragmas(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    return engine


@pytest.fixture
async def async_engine():
    engine = _make_engine()
    try:
        async with engine.begin() as conn:
            if engine.dialect.name == "postgresql":
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)

        async with AsyncSession(engine) as s:
            await seed_reference_codes(s)
            await s.commit()

        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    """
    HTTP client backed by the test engine; every request gets its own session,
    as it would in production.
    """
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
