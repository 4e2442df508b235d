"""
Pytest configuration and fixtures for FlirtMarket API tests
"""

import os

# Before any config import: no .env in tests
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import itertools
from typing import AsyncGenerator

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from src.cache import MemoryCache
from src.core.enums import TransactionType, UserRole
from src.database.crud import create_user
from src.database.models import Base
from src.services.ledger_service import LedgerService


# Test database URL (in-memory SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_telegram_ids = itertools.count(100000)


@pytest.fixture(scope="function")
async def test_db_engine():
    """
    Create test database engine
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite: своё управление транзакциями ломает SAVEPOINT, BEGIN шлём сами
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(test_db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create test database session
    """
    async_session_maker = async_sessionmaker(
        test_db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )

    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def cache() -> MemoryCache:
    return MemoryCache()


@pytest.fixture
def ledger(cache) -> LedgerService:
    return LedgerService(cache)


@pytest.fixture
def make_user(db_session, ledger):
    """
    Factory: create a user and fund it through the ledger (one purchase row)

    Usage:
        user = await make_user(role=UserRole.PERFORMER, message_price=35)
        user = await make_user(coins=100)
    """

    async def _make_user(
        role: UserRole = UserRole.REGULAR,
        coins: int = 0,
        message_price: int = None,
        first_name: str = None,
        **kwargs,
    ):
        telegram_id = kwargs.pop("telegram_id", next(_telegram_ids))
        user = await create_user(
            db_session,
            telegram_id=telegram_id,
            first_name=first_name or f"{UserRole(role).value.title()} {telegram_id}",
            role=role,
            message_price=message_price,
            **kwargs,
        )
        if coins:
            await ledger.credit(
                db_session,
                user.id,
                coins,
                "Test top-up",
                transaction_type=TransactionType.PURCHASE,
            )
        return user

    return _make_user


@pytest.fixture
async def regular_user(make_user):
    return await make_user(role=UserRole.REGULAR, coins=100, first_name="Alice")


@pytest.fixture
async def performer(make_user):
    return await make_user(role=UserRole.PERFORMER, message_price=35, first_name="Bella")
