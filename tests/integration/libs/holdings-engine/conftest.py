# tests/integration/libs/holdings-engine/conftest.py
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from holdings_engine import database_models  # noqa: F401  registers the tables
from holdings_engine.db_base import Base


@pytest_asyncio.fixture
async def session_factory():
    """
    A fresh in-memory SQLite database per test, with the schema created from
    the ORM metadata. StaticPool keeps every session on the same connection.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)

    await engine.dispose()
