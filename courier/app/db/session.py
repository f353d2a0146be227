"""
Database session configuration.

This module handles database engine creation and session management
using SQLAlchemy with async support for PostgreSQL.
"""

import logging
from contextlib import asynccontextmanager

from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from courier.app.core.config import settings
from courier.app.core.exceptions import StoreUnavailableError

logger = logging.getLogger("courier.db")

# Create async engine
engine = create_async_engine(
    settings.database_url,
    echo=settings.db_echo,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_max_overflow,
    future=True,
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

# Create declarative base for models
Base = declarative_base()


async def get_db():
    """
    FastAPI dependency for database sessions.

    Yields an async database session and ensures it's properly closed.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


# Driver-level failures that mean the store itself is unreachable or too slow.
# IntegrityError is not listed: constraint violations map to domain errors.
STORE_FAILURES = (OperationalError, InterfaceError, PoolTimeoutError, TimeoutError)


@asynccontextmanager
async def store_errors(operation: str):
    """
    Translate connectivity and timeout failures into StoreUnavailableError.

    The core never retries these; the caller owns the retry policy.
    """
    try:
        yield
    except STORE_FAILURES as exc:
        logger.error("Store unavailable during %s: %s", operation, exc)
        raise StoreUnavailableError(
            message=f"Data store unavailable during {operation}",
            details={"operation": operation}
        ) from exc


@asynccontextmanager
async def unit_of_work(db: AsyncSession, operation: str):
    """
    Run a block as a single store transaction.

    Commits when the block finishes, rolls back when it raises.
    """
    async with store_errors(operation):
        try:
            yield db
        except BaseException:
            await db.rollback()
            raise
        await db.commit()
