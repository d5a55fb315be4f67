"""
Database configuration with SQLAlchemy async support.
Uses SQLite for development, easily switchable to PostgreSQL for production.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import DATABASE_URL, SQL_DEBUG
from app.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    DATABASE_URL,
    echo=SQL_DEBUG,
    future=True,
)

# Session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


def enable_sqlite_pragmas(sync_engine) -> None:
    """Register the connect hook that turns on SQLite foreign keys."""
    if sync_engine.dialect.name != "sqlite":
        return

    @event.listens_for(sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA secure_delete=ON")
        cursor.close()


enable_sqlite_pragmas(engine.sync_engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    """Dependency for getting a request-scoped database session."""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


@asynccontextmanager
async def unit_of_work(session: AsyncSession) -> AsyncIterator[AsyncSession]:
    """
    All-or-nothing block on an existing session.

    Commits on normal exit, rolls back on any exception and re-raises it.
    Nothing written inside the block is visible to other sessions until
    the commit.
    """
    try:
        yield session
        await session.commit()
    except BaseException:
        await session.rollback()
        raise


@asynccontextmanager
async def store_errors(action: str) -> AsyncIterator[None]:
    """Log SQLAlchemy failures and re-raise them as ExternalServiceError."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("%s failed: %s", action, e, exc_info=True)
        raise ExternalServiceError(f"{action} failed", original_error=e) from e


async def init_db():
    """Initialize the database tables."""
    # Register mappers before create_all
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()
