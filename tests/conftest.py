"""Shared pytest fixtures for Featur tests."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("CLOUD_SQL_USE_UNIX_SOCKET", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from featur.database import Base
from featur.models import UserProfile


@pytest.fixture
async def engine(tmp_path):
    """A fresh file-backed SQLite database per test.

    File-backed so that separate sessions get separate connections, which
    the concurrency and subscription tests rely on.
    """
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'featur.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db_session):
    """Insert and commit a profile; keyword arguments become columns."""

    async def _make(user_id, **fields):
        fields.setdefault("display_name", user_id.title())
        profile = UserProfile(id=user_id, **fields)
        db_session.add(profile)
        await db_session.commit()
        return profile

    return _make


@pytest.fixture
async def alice_and_bob(make_user):
    alice = await make_user("alice", content_styles=["Music", "Comedy"], interests=["Gaming"])
    bob = await make_user("bob", content_styles=["Music"], interests=["Gaming", "Travel"])
    return alice, bob
