"""
Database engine configuration for FlirtMarket API

Async SQLAlchemy 2.0 setup with connection pooling
"""

import logging
from typing import AsyncGenerator

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool

from config.config import (
    DATABASE_URL,
    DATABASE_ECHO,
    DATABASE_POOL_SIZE,
    DATABASE_MAX_OVERFLOW,
    ENVIRONMENT,
)
from src.core.exceptions import MonetizationError
from src.database.models import Base

logger = logging.getLogger(__name__)


# Global engine and session maker
engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def create_engine_for_url(url: str) -> AsyncEngine:
    """
    Build an async engine; pool settings only apply to server databases

    Args:
        url: SQLAlchemy async URL (postgresql+asyncpg://, sqlite+aiosqlite://)
    """
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=DATABASE_ECHO)

    return create_async_engine(
        url,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=DATABASE_POOL_SIZE,
        max_overflow=DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,  # Recycle connections every hour
        echo=DATABASE_ECHO,
        echo_pool=False,
        connect_args={
            "statement_cache_size": 0,
            "server_settings": {"application_name": "flirtmarket_api"},
        },
    )


def get_engine() -> AsyncEngine:
    """
    Create and configure async database engine

    Returns:
        Configured AsyncEngine instance
    """
    global engine

    if engine is None:
        engine = create_engine_for_url(DATABASE_URL)
        logger.info(f"Database engine created - Environment: {ENVIRONMENT}")

    return engine


def create_session_maker(eng: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        eng,
        class_=AsyncSession,
        expire_on_commit=False,  # Important for async!
        autoflush=False,
    )


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """
    Create async session maker

    Returns:
        Configured async_sessionmaker instance
    """
    global AsyncSessionLocal

    if AsyncSessionLocal is None:
        AsyncSessionLocal = create_session_maker(get_engine())
        logger.info("Session maker created")

    return AsyncSessionLocal


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database session

    Usage in handlers:
        async def handler(session: AsyncSession = Depends(get_session)):
            ...

    Yields:
        AsyncSession instance
    """
    session_maker = get_session_maker()
    async with session_maker() as session:
        try:
            yield session
        except MonetizationError:
            await session.rollback()
            raise
        except Exception as e:
            await session.rollback()
            logger.error(f"Session error: {e}", exc_info=True)
            raise


async def init_db() -> None:
    """
    Initialize database - create all tables

    WARNING: For production, use Alembic migrations instead.
    """
    eng = get_engine()

    logger.info("Creating database tables...")

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created successfully")


async def dispose_engine() -> None:
    """
    Dispose database engine and close all connections

    Call this on application shutdown
    """
    global engine, AsyncSessionLocal

    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")
        engine = None
        AsyncSessionLocal = None


async def check_connection() -> bool:
    """
    Check database connection

    Returns:
        True if connection successful, False otherwise
    """
    try:
        eng = get_engine()
        async with eng.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}", exc_info=True)
        return False
