"""
Global pytest configuration and fixtures for Flagpole tests.

Every test gets its own in-memory SQLite database through aiosqlite.
"""

import os

# Must be set before flagpole.settings is imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE__URL", "sqlite:///./pytest.db")
os.environ.setdefault("OBSERVABILITY__LOG_FORMAT", "text")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy import func, select  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import flagpole.feature_flags.models  # noqa: F401,E402
from flagpole.db import Base  # noqa: E402
from flagpole.feature_flags.service import FeatureService  # noqa: E402


@pytest_asyncio.fixture
async def async_db_engine():
    """Fresh in-memory database with the catalog schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(async_db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        bind=async_db_engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,
    )


@pytest.fixture
def feature_service(session_factory):
    """Feature service opening one session per operation."""
    return FeatureService(session_factory=session_factory)


@pytest.fixture
def count_rows(session_factory):
    """Count the rows of a mapped table."""

    async def _count(model) -> int:
        async with session_factory() as session:
            result = await session.execute(select(func.count()).select_from(model))
            return result.scalar_one()

    return _count
