"""
Database Session Management

Provides the async SQLAlchemy engine and session factory for the project
store. The engine is created lazily so that the service can run without a
database (in-memory project repository) when `database_url` is unset.
"""

from __future__ import annotations

from functools import lru_cache

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

from ..config import settings


class DatabaseNotConfiguredError(RuntimeError):
    """Raised when a database session is requested without DATABASE_URL."""


@lru_cache
def get_async_engine() -> AsyncEngine:
    if not settings.database_url:
        raise DatabaseNotConfiguredError("DATABASE_URL is not configured.")
    return create_async_engine(
        settings.database_url,
        echo=False,  # Set True for SQL debugging
        pool_pre_ping=True,
    )


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=get_async_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

