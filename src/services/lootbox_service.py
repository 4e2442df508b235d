# coding: utf-8
"""
Lootbox Service

Opening = pay the box price (nothing for the daily free box) + weighted
random reward + reward payout + opening record, all in one transaction.
"""

import random
from datetime import timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.catalog_config import DEFAULT_LOOTBOXES
from config.monetization_config import DEFAULT_BOOST_MULTIPLIER
from src.core.enums import BoostType, LootboxRewardType, TransactionType
from src.core.exceptions import InvalidRequestError, NotEligibleError, NotFoundError
from src.database.models import Boost, Lootbox, LootboxOpening, LootboxReward, Task, User
from src.services.ledger_service import LedgerService
from src.services.task_service import TaskService
from src.utils.dates import utc_today, utcnow


def select_reward(rewards: Sequence[LootboxReward], rng: random.Random) -> LootboxReward:
    """
    Weighted random choice. Weights are normalised by their sum, they do not
    have to add up to 100.

    Raises:
        InvalidRequestError: empty table or non-positive total weight
    """
    total = sum(max(r.probability, 0) for r in rewards)
    if not rewards or total <= 0:
        raise InvalidRequestError("Lootbox has no rewards")

    roll = rng.randrange(total)
    cumulative = 0
    for reward in rewards:
        cumulative += max(reward.probability, 0)
        if roll < cumulative:
            return reward
    return rewards[-1]


def describe_reward(reward_type: LootboxRewardType, amount: int, task_title: Optional[str] = None) -> str:
    reward_type = LootboxRewardType(reward_type)
    if reward_type is LootboxRewardType.COINS:
        return f"{amount} coins"
    if reward_type is LootboxRewardType.BOOST:
        return f"{amount}-hour profile boost"
    if reward_type is LootboxRewardType.TASK_PROGRESS:
        return f"+{amount} progress on \"{task_title}\"" if task_title else f"+{amount} task progress"
    if reward_type is LootboxRewardType.MESSAGE_DISCOUNT:
        return f"{amount}% message discount"
    raise ValueError(f"Unhandled reward type: {reward_type}")


class LootboxService:
    """Service for lootbox catalogue and openings"""

    def __init__(
        self,
        ledger: LedgerService,
        tasks: Optional[TaskService] = None,
        rng: Optional[random.Random] = None,
    ):
        self.ledger = ledger
        self.tasks = tasks or TaskService(ledger)
        self.rng = rng or random.SystemRandom()

    @staticmethod
    async def get_available_lootboxes(session: AsyncSession) -> List[Lootbox]:
        stmt = select(Lootbox).where(Lootbox.is_active.is_(True)).order_by(Lootbox.price, Lootbox.id)
        return list((await session.execute(stmt)).scalars().all())

    @staticmethod
    async def can_open_free_lootbox(session: AsyncSession, user_id: int, lootbox_id: int) -> bool:
        """True if the user has not opened this free box today (UTC)"""
        stmt = select(LootboxOpening.id).where(
            LootboxOpening.user_id == user_id,
            LootboxOpening.lootbox_id == lootbox_id,
            LootboxOpening.free_claim_date == utc_today(),
        )
        return (await session.execute(stmt)).scalar_one_or_none() is None

    async def open_lootbox(self, session: AsyncSession, user: User, lootbox_id: int) -> Dict:
        """
        Open a lootbox

        Args:
            session: Database session
            user: User opening the box
            lootbox_id: Lootbox ID

        Returns:
            Formatted reward: {"id", "type", "amount", "description", "lootbox_id"}

        Raises:
            NotFoundError: box missing or inactive
            InvalidRequestError: box without rewards
            NotEligibleError: free box already opened today
            InsufficientFundsError: cannot pay the box price
        """
        lootbox = await session.get(Lootbox, lootbox_id)
        if lootbox is None or not lootbox.is_active:
            raise NotFoundError("Lootbox", lootbox_id)

        stmt = select(LootboxReward).where(LootboxReward.lootbox_id == lootbox.id).order_by(LootboxReward.id)
        rewards = list((await session.execute(stmt)).scalars().all())

        is_free = lootbox.is_free
        if is_free and not await self.can_open_free_lootbox(session, user.id, lootbox.id):
            raise NotEligibleError("Free lootbox already opened today")

        reward = select_reward(rewards, self.rng)
        reward_type = LootboxRewardType(reward.reward_type)
        user_id, lootbox_name, lootbox_price = user.id, lootbox.name, lootbox.price
        task_title = None

        try:
            async with self.ledger.atomic(session):
                payment = None
                if not is_free:
                    payment = await self.ledger.debit(
                        session,
                        user_id,
                        lootbox_price,
                        f'Opened "{lootbox_name}" lootbox',
                        metadata={"lootbox_id": lootbox_id},
                        commit=False,
                    )

                task_title = await self._apply_reward(session, user_id, reward, reward_type)

                session.add(LootboxOpening(
                    user_id=user_id,
                    lootbox_id=lootbox_id,
                    reward_id=reward.id,
                    price_paid=lootbox_price,
                    free_claim_date=utc_today() if is_free else None,
                    transaction_id=payment.transaction.id if payment else None,
                ))
                await session.flush()
        except IntegrityError:
            # uq_free_lootbox_per_day: параллельное открытие бесплатного бокса
            logger.warning(f"Concurrent free lootbox opening blocked: user {user_id} box {lootbox_id}")
            raise NotEligibleError("Free lootbox already opened today")

        formatted = {
            "id": reward.id,
            "type": reward_type.value,
            "amount": reward.reward_amount,
            "description": describe_reward(reward_type, reward.reward_amount, task_title),
            "lootbox_id": lootbox_id,
        }
        logger.info(f"Lootbox {lootbox_id} opened by user {user_id}: {formatted['description']}")
        return formatted

    async def _apply_reward(
        self,
        session: AsyncSession,
        user_id: int,
        reward: LootboxReward,
        reward_type: LootboxRewardType,
    ) -> Optional[str]:
        """Stage the reward payout; returns the task title for task rewards"""
        if reward_type is LootboxRewardType.COINS:
            await self.ledger.credit(
                session,
                user_id,
                reward.reward_amount,
                f"Lootbox reward: {reward.reward_amount} coins",
                transaction_type=TransactionType.EARN,
                metadata={"lootbox_reward_id": reward.id},
                commit=False,
            )
        elif reward_type is LootboxRewardType.BOOST:
            session.add(Boost(
                user_id=user_id,
                type=BoostType.PROFILE.value,
                multiplier=DEFAULT_BOOST_MULTIPLIER,
                source="lootbox",
                expires_at=utcnow() + timedelta(hours=reward.reward_amount),
            ))
        elif reward_type is LootboxRewardType.TASK_PROGRESS:
            task = await session.get(Task, reward.reward_id) if reward.reward_id else None
            if task is None:
                logger.warning(f"Lootbox reward {reward.id} points to a missing task")
                return None
            await self.tasks.add_progress(session, user_id, task, reward.reward_amount)
            return task.title
        elif reward_type is LootboxRewardType.MESSAGE_DISCOUNT:
            # Described to the user, not stored and not applied to message prices
            logger.info(f"Message discount {reward.reward_amount}% rolled for user {user_id}")
        else:
            raise ValueError(f"Unhandled reward type: {reward_type}")
        return None

    @staticmethod
    async def initialize_default_lootboxes(session: AsyncSession) -> int:
        """
        Seed DEFAULT_LOOTBOXES on an empty lootboxes table

        Returns:
            Number of lootboxes created
        """
        existing = (await session.execute(select(Lootbox.id).limit(1))).scalar_one_or_none()
        if existing is not None:
            return 0

        for box in DEFAULT_LOOTBOXES:
            lootbox = Lootbox(
                name=box["name"],
                description=box["description"],
                price=box["price"],
                image_url=box["image_url"],
            )
            session.add(lootbox)
            await session.flush()
            for reward_type, amount, weight in box["rewards"]:
                session.add(LootboxReward(
                    lootbox_id=lootbox.id,
                    reward_type=LootboxRewardType(reward_type).value,
                    reward_amount=amount,
                    probability=weight,
                ))
        await session.commit()
        logger.info(f"Default lootboxes initialized ({len(DEFAULT_LOOTBOXES)})")
        return len(DEFAULT_LOOTBOXES)
