"""
Tests for background jobs
"""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.cache import MemoryCache
from src.core.enums import SubscriptionStatus
from src.database.models import Boost, Subscription
from src.services.subscription_service import SubscriptionService
from src.tasks.scheduler import MonetizationScheduler, cleanup_expired_boosts
from src.utils.dates import utcnow


@pytest.fixture
def session_maker(test_db_engine):
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def scheduler(ledger, session_maker):
    clock_cache = MemoryCache(clock=lambda: 0.0)
    return MonetizationScheduler(clock_cache, SubscriptionService(ledger), session_maker=session_maker)


@pytest.mark.asyncio
async def test_cleanup_expired_boosts(db_session, regular_user):
    now = utcnow()
    db_session.add_all([
        Boost(user_id=regular_user.id, expires_at=now - timedelta(hours=1), source="lootbox"),
        Boost(user_id=regular_user.id, expires_at=now + timedelta(hours=1), source="task"),
    ])
    await db_session.commit()

    assert await cleanup_expired_boosts(db_session) == 1

    remaining = (await db_session.execute(select(Boost))).scalars().all()
    assert [b.source for b in remaining] == ["task"]


@pytest.mark.asyncio
async def test_cache_sweep_job(scheduler):
    await scheduler.cache.set("k", 1, ttl=10)
    scheduler.cache._clock = lambda: 100.0

    assert await scheduler._job_cache_sweep() == 1
    assert len(scheduler.cache) == 0


@pytest.mark.asyncio
async def test_subscription_expiry_job(scheduler, db_session, make_user, performer):
    subscriber = await make_user()
    now = utcnow()
    db_session.add(Subscription(
        performer_id=performer.id,
        subscriber_id=subscriber.id,
        start_date=now - timedelta(days=2),
        end_date=now - timedelta(days=1),
        price=100,
        status=SubscriptionStatus.ACTIVE.value,
    ))
    await db_session.commit()

    assert await scheduler._job_expire_subscriptions() == 1
    assert await scheduler._job_expire_subscriptions() == 0


@pytest.mark.asyncio
async def test_boost_cleanup_job(scheduler, db_session, regular_user):
    db_session.add(Boost(user_id=regular_user.id, expires_at=utcnow() - timedelta(minutes=5)))
    await db_session.commit()

    assert await scheduler._job_cleanup_boosts() == 1


@pytest.mark.asyncio
async def test_job_errors_are_logged_not_raised(ledger):
    def _broken_session_maker():
        raise RuntimeError("database unavailable")

    scheduler = MonetizationScheduler(MemoryCache(), SubscriptionService(ledger), session_maker=_broken_session_maker)

    assert await scheduler._job_expire_subscriptions() == 0
    assert await scheduler._job_cleanup_boosts() == 0


@pytest.mark.asyncio
async def test_start_registers_jobs(scheduler):
    scheduler.start()
    try:
        assert scheduler.running is True
        job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
        assert job_ids == {"cache_sweep", "subscription_expiry", "boost_cleanup"}

        # Повторный запуск игнорируется
        scheduler.start()
        assert len(scheduler.scheduler.get_jobs()) == 3
    finally:
        scheduler.stop()

    assert scheduler.running is False
