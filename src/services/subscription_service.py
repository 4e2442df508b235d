# coding: utf-8
"""
Subscription Service

price = SUBSCRIPTION_BASE_PRICE_PER_DAY * days, performer receives the price
minus the platform fee. An active subscription is extended in place:
end_date moves forward and price accumulates.
"""

from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.monetization_config import (
    SUBSCRIPTION_BASE_PRICE_PER_DAY,
    SUBSCRIPTION_EXTEND_ATTEMPTS,
    SUBSCRIPTION_MAX_DAYS,
    SUBSCRIPTION_PLATFORM_FEE_PERCENTAGE,
)
from src.core.enums import SubscriptionStatus, TransactionType, UserRole
from src.core.exceptions import AuthorizationError, InvalidRequestError, NotFoundError
from src.database import crud
from src.database.models import Subscription, User
from src.services.ledger_service import LedgerService
from src.services.telegram_notifier import TelegramNotifier
from src.utils.coins import net_after_fee_percentage
from src.utils.dates import ensure_utc, utcnow


def subscription_price(days: int) -> int:
    return SUBSCRIPTION_BASE_PRICE_PER_DAY * days


def serialize_subscription(subscription: Subscription) -> Dict:
    return {
        "id": subscription.id,
        "performer_id": subscription.performer_id,
        "subscriber_id": subscription.subscriber_id,
        "start_date": ensure_utc(subscription.start_date).isoformat(),
        "end_date": ensure_utc(subscription.end_date).isoformat(),
        "price": subscription.price,
        "status": subscription.status,
    }


class SubscriptionService:
    """Service for performer subscriptions"""

    def __init__(self, ledger: LedgerService, notifier: Optional[TelegramNotifier] = None):
        self.ledger = ledger
        self.notifier = notifier or TelegramNotifier()

    @staticmethod
    async def get_active_subscription(
        session: AsyncSession, subscriber_id: int, performer_id: int, lock: bool = False
    ) -> Optional[Subscription]:
        """
        Active, not yet lapsed subscription of the pair

        Args:
            lock: SELECT ... FOR UPDATE and overwrite the identity map copy
        """
        stmt = (
            select(Subscription)
            .where(
                Subscription.subscriber_id == subscriber_id,
                Subscription.performer_id == performer_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.end_date >= utcnow(),
            )
            .order_by(Subscription.end_date.desc())
            .limit(1)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def _extend_or_create(
        self,
        session: AsyncSession,
        subscriber_id: int,
        performer_id: int,
        duration_days: int,
        price: int,
    ) -> Tuple[Subscription, bool]:
        """
        Stage the paid period inside the caller's transaction

        Extension is a conditional UPDATE guarded by the cumulative price:
        price grows with every extension, so a mismatch means another
        extension landed first and the row is re-read.

        Returns:
            (subscription, extended)
        """
        for _ in range(SUBSCRIPTION_EXTEND_ATTEMPTS):
            existing = await self.get_active_subscription(session, subscriber_id, performer_id, lock=True)
            if existing is None:
                break

            result = await session.execute(
                update(Subscription)
                .where(
                    Subscription.id == existing.id,
                    Subscription.status == SubscriptionStatus.ACTIVE.value,
                    Subscription.price == existing.price,
                )
                .values(
                    end_date=ensure_utc(existing.end_date) + timedelta(days=duration_days),
                    price=Subscription.price + price,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                subscription = await session.get(Subscription, existing.id, populate_existing=True)
                return subscription, True
            logger.warning(f"Subscription {existing.id} changed concurrently, re-reading")
        else:
            raise InvalidRequestError("Subscription is being updated, please retry")

        # Просроченная, но ещё не обработанная планировщиком подписка
        await session.execute(
            update(Subscription)
            .where(
                Subscription.subscriber_id == subscriber_id,
                Subscription.performer_id == performer_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.end_date < utcnow(),
            )
            .values(status=SubscriptionStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )

        now = utcnow()
        subscription = Subscription(
            performer_id=performer_id,
            subscriber_id=subscriber_id,
            start_date=now,
            end_date=now + timedelta(days=duration_days),
            price=price,
            status=SubscriptionStatus.ACTIVE.value,
        )
        session.add(subscription)
        try:
            await session.flush()
        except IntegrityError:
            # uq_active_subscription: параллельная первая подписка
            logger.warning(f"Concurrent subscription blocked: {subscriber_id} -> {performer_id}")
            raise InvalidRequestError("Subscription is being updated, please retry")
        return subscription, False

    async def subscribe(
        self,
        session: AsyncSession,
        subscriber: User,
        performer_id: int,
        duration_days: int,
    ) -> Dict:
        """
        Buy or extend a subscription

        Args:
            session: Database session
            subscriber: Paying user
            performer_id: Performer to subscribe to
            duration_days: 1..SUBSCRIPTION_MAX_DAYS

        Returns:
            Serialized subscription

        Raises:
            InvalidRequestError: bad duration or subscribing to yourself
            NotFoundError: performer missing
            InsufficientFundsError: subscriber cannot pay
        """
        if isinstance(duration_days, bool) or not isinstance(duration_days, int) or not 0 < duration_days <= SUBSCRIPTION_MAX_DAYS:
            raise InvalidRequestError(f"Duration must be between 1 and {SUBSCRIPTION_MAX_DAYS} days")

        performer = await crud.get_user_by_id(session, performer_id)
        if performer is None or UserRole(performer.role) is not UserRole.PERFORMER:
            raise NotFoundError("Performer", performer_id)
        if performer.id == subscriber.id:
            raise InvalidRequestError("Cannot subscribe to yourself")

        price = subscription_price(duration_days)
        earnings, fee = net_after_fee_percentage(price, SUBSCRIPTION_PLATFORM_FEE_PERCENTAGE)
        subscriber_name, performer_telegram_id = subscriber.display_name, performer.telegram_id

        async with self.ledger.atomic(session):
            await self.ledger.debit(
                session,
                subscriber.id,
                price,
                f"Subscription to {performer.display_name} for {duration_days} days",
                related_user_id=performer.id,
                metadata={"duration_days": duration_days},
                commit=False,
            )
            if earnings > 0:
                await self.ledger.credit(
                    session,
                    performer.id,
                    earnings,
                    f"Subscription from {subscriber_name} for {duration_days} days",
                    transaction_type=TransactionType.EARN,
                    related_user_id=subscriber.id,
                    metadata={"gross": price, "platform_fee": fee, "duration_days": duration_days},
                    commit=False,
                )

            subscription, extended = await self._extend_or_create(
                session, subscriber.id, performer.id, duration_days, price
            )

        logger.info(
            f"Subscription {subscription.id} {'extended' if extended else 'created'}: "
            f"{subscriber.id} -> {performer.id} {duration_days}d price={price}"
        )
        await self.notifier.new_subscriber(performer_telegram_id, subscriber_name, duration_days, earnings)
        return serialize_subscription(subscription)

    @staticmethod
    async def get_user_subscriptions(session: AsyncSession, subscriber_id: int) -> List[Dict]:
        stmt = (
            select(Subscription)
            .where(Subscription.subscriber_id == subscriber_id)
            .order_by(Subscription.end_date.desc(), Subscription.id.desc())
        )
        return [serialize_subscription(s) for s in (await session.execute(stmt)).scalars().all()]

    @staticmethod
    async def get_performer_subscriber_count(session: AsyncSession, performer_id: int) -> int:
        stmt = select(func.count(func.distinct(Subscription.subscriber_id))).where(
            Subscription.performer_id == performer_id,
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.end_date >= utcnow(),
        )
        return int((await session.execute(stmt)).scalar_one())

    @staticmethod
    async def cancel_subscription(session: AsyncSession, user: User, subscription_id: int) -> Dict:
        """
        Stop an active subscription. No refund: the paid period was already
        split between the performer and the platform.
        """
        subscription = await session.get(Subscription, subscription_id)
        if subscription is None:
            raise NotFoundError("Subscription", subscription_id)
        if subscription.subscriber_id != user.id:
            raise AuthorizationError()
        if subscription.status != SubscriptionStatus.ACTIVE.value:
            raise InvalidRequestError("Subscription is not active")

        subscription.status = SubscriptionStatus.CANCELLED.value
        await session.commit()
        logger.info(f"Subscription {subscription_id} cancelled by user {user.id}")
        return serialize_subscription(subscription)

    async def process_expired_subscriptions(self, session: AsyncSession) -> int:
        """
        Mark active subscriptions past end_date as expired and notify subscribers

        Returns:
            Number of expired subscriptions
        """
        now = utcnow()
        stmt = select(Subscription).where(
            Subscription.status == SubscriptionStatus.ACTIVE.value,
            Subscription.end_date < now,
        )
        expired = list((await session.execute(stmt)).scalars().all())
        if not expired:
            return 0

        ids = [s.id for s in expired]
        await session.execute(
            update(Subscription)
            .where(Subscription.id.in_(ids), Subscription.status == SubscriptionStatus.ACTIVE.value)
            .values(status=SubscriptionStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        await session.commit()

        user_ids = {s.subscriber_id for s in expired} | {s.performer_id for s in expired}
        users_result = await session.execute(select(User).where(User.id.in_(user_ids)))
        users = {u.id: u for u in users_result.scalars().all()}
        for subscription in expired:
            subscriber = users.get(subscription.subscriber_id)
            performer = users.get(subscription.performer_id)
            if subscriber and performer:
                await self.notifier.subscription_expired(subscriber.telegram_id, performer.display_name)

        logger.info(f"Expired {len(ids)} subscriptions")
        return len(ids)
