"""
Featur — Store engine, sessions and conditional writes

The engine is built once at import time from ``Settings``:

* When ``CLOUD_SQL_USE_UNIX_SOCKET`` is set and an instance connection name
  is configured, connections are opened by ``cloud-sql-python-connector``
  with IAM auth.
* Otherwise ``DATABASE_URL`` is used as-is (``postgresql+asyncpg://`` in
  deployments, ``sqlite+aiosqlite://`` under test).

Match and conversation creation depend on ``insert_if_absent`` for their
one-row-per-pair guarantee.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, AsyncGenerator

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from featur.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Declarative base shared by every table in ``featur.models``."""


# Lists and nested documents are JSONB on PostgreSQL and JSON elsewhere.
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    """Timezone-aware "now" used for every timestamp the service writes."""
    return datetime.now(timezone.utc)


# ------------------------------------------------------------------ #
# Engine
# ------------------------------------------------------------------ #

_PG_POOL = {
    "pool_size": 10,
    "max_overflow": 5,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def _normalise_url(url: str) -> str:
    # Accept bare postgresql:// URLs from managed-DB consoles.
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def _connector_engine(settings: Settings) -> AsyncEngine:
    from google.cloud.sql.connector import Connector

    connector = Connector()
    instance = settings.CLOUD_SQL_INSTANCE_CONNECTION

    async def _connect():
        return await connector.connect_async(
            instance,
            "asyncpg",
            user=settings.DB_USER,
            password=settings.DB_PASSWORD,
            db=settings.DB_NAME,
            enable_iam_auth=True,
        )

    logger.info("Store engine: Cloud SQL connector for %s", instance)
    return create_async_engine(
        "postgresql+asyncpg://",
        async_creator=_connect,
        echo=settings.LOG_LEVEL == "DEBUG",
        **_PG_POOL,
    )


def _url_engine(settings: Settings) -> AsyncEngine:
    url = _normalise_url(settings.DATABASE_URL)
    is_sqlite = url.startswith("sqlite")

    logger.info("Store engine: %s via DATABASE_URL", url.split(":", 1)[0])
    return create_async_engine(
        url,
        echo=settings.LOG_LEVEL == "DEBUG",
        **({} if is_sqlite else _PG_POOL),
    )


def build_engine(settings: Settings | None = None) -> AsyncEngine:
    settings = settings or get_settings()
    if settings.CLOUD_SQL_USE_UNIX_SOCKET and settings.CLOUD_SQL_INSTANCE_CONNECTION:
        return _connector_engine(settings)
    return _url_engine(settings)


engine = build_engine()

async_session_factory: async_sessionmaker[AsyncSession] = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ------------------------------------------------------------------ #
# Conditional writes
# ------------------------------------------------------------------ #

async def insert_if_absent(
    session: AsyncSession,
    model: type[Base],
    values: dict[str, Any],
    index_elements: list[str],
) -> bool:
    """Insert ``values`` into ``model``'s table unless a row with the same
    ``index_elements`` already exists.

    One ``INSERT ... ON CONFLICT DO NOTHING`` statement does both the check
    and the write.  Returns True when this call created the row, False when
    it was already present.
    """
    dialect = session.get_bind().dialect.name

    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise RuntimeError(f"insert_if_absent is not supported on {dialect!r}")

    stmt = (
        insert(model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=index_elements)
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


# ------------------------------------------------------------------ #
# FastAPI dependencies
# ------------------------------------------------------------------ #

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session.  Commits when the handler returns and rolls
    back when it raises."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """For handlers that open their own sessions, such as long-lived
    WebSocket streams."""
    return async_session_factory
