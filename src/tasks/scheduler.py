"""
Monetization Scheduler

APScheduler jobs:
- Cache sweep: каждые CACHE_SWEEP_INTERVAL сек (default 60)
- Subscription expiry: каждый час в :00
- Boost cleanup: каждый час в :30
"""
from typing import Optional

from loguru import logger
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config.cache_config import CacheConfig
from src.cache import MemoryCache
from src.database.engine import get_session_maker
from src.database.models import Boost
from src.services.subscription_service import SubscriptionService
from src.utils.dates import utcnow


async def cleanup_expired_boosts(session: AsyncSession) -> int:
    """
    Delete boosts whose expires_at has passed

    Returns:
        Number of deleted boosts
    """
    result = await session.execute(
        delete(Boost)
        .where(Boost.expires_at <= utcnow())
        .execution_options(synchronize_session=False)
    )
    await session.commit()
    return result.rowcount or 0


class MonetizationScheduler:
    """
    APScheduler для фоновых задач монетизации.

    Jobs:
    - cache_sweep: удаление просроченных записей кэша
    - subscription_expiry: перевод истекших подписок в expired
    - boost_cleanup: удаление истекших бустов
    """

    def __init__(
        self,
        cache: MemoryCache,
        subscriptions: SubscriptionService,
        session_maker: Optional[async_sessionmaker] = None,
    ):
        self.cache = cache
        self.subscriptions = subscriptions
        self._session_maker = session_maker
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    @property
    def session_maker(self) -> async_sessionmaker:
        return self._session_maker or get_session_maker()

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Запустить scheduler."""
        if self._running:
            logger.warning("Monetization scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()

        # 1. Cache sweep
        self.scheduler.add_job(
            self._job_cache_sweep,
            IntervalTrigger(seconds=CacheConfig.SWEEP_INTERVAL_SECONDS),
            id="cache_sweep",
            name="Cache Sweep",
            replace_existing=True
        )

        # 2. Subscription expiry: каждый час
        self.scheduler.add_job(
            self._job_expire_subscriptions,
            CronTrigger(minute=0),
            id="subscription_expiry",
            name="Subscription Expiry",
            replace_existing=True
        )

        # 3. Boost cleanup: каждый час в :30
        self.scheduler.add_job(
            self._job_cleanup_boosts,
            CronTrigger(minute=30),
            id="boost_cleanup",
            name="Boost Cleanup",
            replace_existing=True
        )

        self.scheduler.start()
        self._running = True

        logger.info(
            f"Monetization scheduler started: cache sweep every "
            f"{CacheConfig.SWEEP_INTERVAL_SECONDS}s, subscription expiry hourly, boost cleanup hourly"
        )

    def stop(self):
        """Остановить scheduler."""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Monetization scheduler stopped")

    async def _job_cache_sweep(self) -> int:
        """Job: очистка кэша."""
        removed = self.cache.sweep()
        if removed:
            logger.debug(f"Cache sweep: {removed} expired entries removed, {len(self.cache)} left")
        return removed

    async def _job_expire_subscriptions(self) -> int:
        """Job: истекшие подписки."""
        try:
            async with self.session_maker() as session:
                return await self.subscriptions.process_expired_subscriptions(session)
        except Exception as e:
            logger.error(f"Subscription expiry job failed: {e}")
            return 0

    async def _job_cleanup_boosts(self) -> int:
        """Job: истекшие бусты."""
        try:
            async with self.session_maker() as session:
                removed = await cleanup_expired_boosts(session)
                if removed:
                    logger.info(f"Boost cleanup: {removed} expired boosts removed")
                return removed
        except Exception as e:
            logger.error(f"Boost cleanup job failed: {e}")
            return 0
