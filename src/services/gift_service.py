# coding: utf-8
"""
Gift Service

Sender pays the gift price, the performer receives the price minus the
platform fee. Both ledger rows and the GiftTransaction history row commit
together.
"""

from typing import Dict, List, Optional

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.catalog_config import DEFAULT_GIFTS
from config.monetization_config import GIFT_PLATFORM_FEE_PERCENTAGE, GIFT_LEADERBOARD_SIZE
from src.core.enums import LeaderboardPeriod, TaskAction, TransactionType, UserRole
from src.core.exceptions import InvalidRequestError, NotFoundError
from src.database import crud
from src.database.models import Gift, GiftTransaction, User
from src.services.ledger_service import LedgerService
from src.services.task_service import TaskService
from src.services.telegram_notifier import TelegramNotifier
from src.utils.coins import net_after_fee_percentage
from src.utils.dates import period_start


def serialize_gift_transaction(record: GiftTransaction, gift: Gift) -> Dict:
    return {
        "id": record.id,
        "gift_id": gift.id,
        "gift_name": gift.name,
        "sender_id": record.sender_id,
        "recipient_id": record.recipient_id,
        "message_id": record.message_id,
        "price": record.price,
        "recipient_earnings": record.recipient_earnings,
        "created_at": record.created_at.isoformat() if record.created_at else None,
    }


class GiftService:
    """Service for the gift catalogue and gift payments"""

    def __init__(
        self,
        ledger: LedgerService,
        tasks: Optional[TaskService] = None,
        notifier: Optional[TelegramNotifier] = None,
    ):
        self.ledger = ledger
        self.notifier = notifier or TelegramNotifier()
        self.tasks = tasks or TaskService(ledger, self.notifier)

    @staticmethod
    async def get_available_gifts(session: AsyncSession) -> List[Gift]:
        stmt = select(Gift).where(Gift.is_active.is_(True)).order_by(Gift.price.asc(), Gift.id)
        return list((await session.execute(stmt)).scalars().all())

    async def send_gift(
        self,
        session: AsyncSession,
        sender: User,
        recipient_id: int,
        gift_id: int,
        message_id: Optional[int] = None,
    ) -> Dict:
        """
        Buy a gift for a performer

        Args:
            session: Database session
            sender: Paying user
            recipient_id: Performer receiving the gift
            gift_id: Gift from the catalogue
            message_id: Optional message the gift is attached to

        Returns:
            Serialized GiftTransaction

        Raises:
            NotFoundError: gift missing or inactive
            InvalidRequestError: recipient missing, not a performer, or the sender
            InsufficientFundsError: sender cannot afford the gift
        """
        gift = await session.get(Gift, gift_id)
        if gift is None or not gift.is_active:
            raise NotFoundError("Gift", gift_id)

        recipient = await crud.get_user_by_id(session, recipient_id)
        if recipient is None or UserRole(recipient.role) is not UserRole.PERFORMER:
            raise InvalidRequestError("Invalid recipient")
        if recipient.id == sender.id:
            raise InvalidRequestError("Invalid recipient")

        earnings, fee = net_after_fee_percentage(gift.price, GIFT_PLATFORM_FEE_PERCENTAGE)
        sender_name, recipient_telegram_id = sender.display_name, recipient.telegram_id

        async with self.ledger.atomic(session):
            spend = await self.ledger.debit(
                session,
                sender.id,
                gift.price,
                f'Sent "{gift.name}" gift to {recipient.display_name}',
                related_user_id=recipient.id,
                metadata={"gift_id": gift.id},
                commit=False,
            )
            earn = None
            if earnings > 0:
                earn = await self.ledger.credit(
                    session,
                    recipient.id,
                    earnings,
                    f'Received "{gift.name}" gift from {sender_name}',
                    transaction_type=TransactionType.EARN,
                    related_user_id=sender.id,
                    metadata={"gift_id": gift.id, "gross": gift.price, "platform_fee": fee},
                    commit=False,
                )
            record = GiftTransaction(
                gift_id=gift.id,
                sender_id=sender.id,
                recipient_id=recipient.id,
                message_id=message_id,
                price=gift.price,
                recipient_earnings=earnings,
                spend_transaction_id=spend.transaction.id,
                earn_transaction_id=earn.transaction.id if earn else None,
            )
            session.add(record)
            await session.flush()

        logger.info(f"Gift {gift.id} sent: {sender.id} -> {recipient.id} (price={gift.price}, earned={earnings})")

        await self.tasks.track_progress(session, sender, TaskAction.SEND_GIFT)
        await self.notifier.gift_received(recipient_telegram_id, sender_name, gift.name, earnings)
        return serialize_gift_transaction(record, gift)

    @staticmethod
    async def get_user_gift_history(
        session: AsyncSession, user_id: int, limit: int = 50
    ) -> List[Dict]:
        """Gifts sent or received by a user, newest first"""
        stmt = (
            select(GiftTransaction, Gift)
            .join(Gift, Gift.id == GiftTransaction.gift_id)
            .where((GiftTransaction.sender_id == user_id) | (GiftTransaction.recipient_id == user_id))
            .order_by(GiftTransaction.created_at.desc(), GiftTransaction.id.desc())
            .limit(limit)
        )
        rows = (await session.execute(stmt)).all()
        return [serialize_gift_transaction(record, gift) for record, gift in rows]

    @staticmethod
    async def get_leaderboard(
        session: AsyncSession, period: LeaderboardPeriod = LeaderboardPeriod.WEEKLY
    ) -> List[Dict]:
        """
        Top performers by value of gifts received in the period

        Returns:
            [{"user_id", "first_name", "username", "gift_count", "total_value"}]
        """
        period = LeaderboardPeriod(period)
        since = period_start(period.value)

        total_value = func.sum(GiftTransaction.price).label("total_value")
        stmt = (
            select(
                GiftTransaction.recipient_id,
                func.count(GiftTransaction.id).label("gift_count"),
                total_value,
            )
            .where(GiftTransaction.created_at >= since)
            .group_by(GiftTransaction.recipient_id)
            .order_by(desc(total_value), GiftTransaction.recipient_id)
            .limit(GIFT_LEADERBOARD_SIZE)
        )
        rows = (await session.execute(stmt)).all()
        if not rows:
            return []

        users_result = await session.execute(select(User).where(User.id.in_([r.recipient_id for r in rows])))
        users = {u.id: u for u in users_result.scalars().all()}

        return [
            {
                "user_id": row.recipient_id,
                "first_name": users[row.recipient_id].first_name if row.recipient_id in users else None,
                "username": users[row.recipient_id].username if row.recipient_id in users else None,
                "gift_count": row.gift_count,
                "total_value": int(row.total_value or 0),
            }
            for row in rows
        ]

    @staticmethod
    async def initialize_default_gifts(session: AsyncSession) -> int:
        existing = (await session.execute(select(Gift.id).limit(1))).scalar_one_or_none()
        if existing is not None:
            return 0
        for gift_data in DEFAULT_GIFTS:
            session.add(Gift(**gift_data))
        await session.commit()
        logger.info(f"Default gifts initialized ({len(DEFAULT_GIFTS)})")
        return len(DEFAULT_GIFTS)
