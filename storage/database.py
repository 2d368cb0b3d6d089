"""
Storage - Database.

============================================================
RESPONSIBILITY
============================================================
Manages async database engines and sessions for the audit
store.

- Creates the async engine from DATABASE_URL
- Provides the session factory
- Creates tables only when explicitly asked

============================================================
DESIGN PRINCIPLES
============================================================
- Async by default
- No implicit schema creation: the engine never calls
  create_tables(); operators and tests do
- Credentials never logged

============================================================
"""

import logging
import os
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.exceptions import ConfigurationError
from storage.models.base import Base
from trust_engine.config import StorageConfig


logger = logging.getLogger(__name__)


def get_database_url(config: Optional[StorageConfig] = None) -> str:
    """
    Resolve the async database URL.

    Order: config.database_url, then DATABASE_URL (after .env).

    Raises:
        ConfigurationError: no URL configured
    """
    if config is not None and config.database_url:
        return config.database_url

    load_dotenv()
    url = os.getenv("DATABASE_URL")
    if not url:
        raise ConfigurationError(
            "DATABASE_URL is not set and no database_url configured",
            config_key="DATABASE_URL",
        )
    return url


def create_engine(
    config: Optional[StorageConfig] = None,
    url: Optional[str] = None,
) -> AsyncEngine:
    """
    Create an async SQLAlchemy engine.

    In-memory SQLite URLs get a StaticPool so every session
    shares the one database.

    Args:
        config: Storage configuration
        url: Explicit URL, overrides config and environment

    Returns:
        AsyncEngine
    """
    config = config or StorageConfig()
    database_url = url or get_database_url(config)

    logger.info(f"Creating async database engine for: {database_url.split('@')[-1]}")

    if database_url.startswith("sqlite") and ":memory:" in database_url:
        return create_async_engine(
            database_url,
            echo=config.echo_sql,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )

    return create_async_engine(database_url, echo=config.echo_sql, pool_pre_ping=True)


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to an engine."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_tables(engine: AsyncEngine) -> None:
    """
    Create the audit tables if they do not exist.

    Explicit operator call; nothing in the engine invokes it.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Audit tables created")


async def drop_tables(engine: AsyncEngine) -> None:
    """Drop the audit tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.warning("Audit tables dropped")
