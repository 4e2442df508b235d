# coding: utf-8
"""
Referral bonus

One bonus per (referrer, referred) pair. The pair is encoded in the
ledger idempotency key, the unique index on transactions.idempotency_key
rejects a second award even from concurrent auth requests.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.monetization_config import REFERRAL_BONUS_AMOUNT, REFERRAL_BONUS_PERFORMERS_ONLY
from src.core.enums import TaskAction, TransactionType, UserRole
from src.core.exceptions import DuplicateOperationError
from src.database import crud
from src.database.models import User
from src.services.ledger_service import LedgerService, UpdatedBalance
from src.services.task_service import TaskService


def referral_key(referrer_id: int, referred_id: int) -> str:
    return f"referral:{referrer_id}:{referred_id}"


class ReferralService:
    """Service for referral bonuses"""

    def __init__(self, ledger: LedgerService, tasks: Optional[TaskService] = None):
        self.ledger = ledger
        self.tasks = tasks or TaskService(ledger)

    async def award_referral_bonus(
        self, session: AsyncSession, referred: User
    ) -> Optional[UpdatedBalance]:
        """
        Credit the referrer of a freshly created user

        Args:
            session: Database session
            referred: New user with referred_by_id set

        Returns:
            UpdatedBalance of the referrer, or None when no bonus is due
            (no referrer, self-referral, referrer role, already awarded)
        """
        if not referred.referred_by_id:
            return None

        referred_id, referred_name = referred.id, referred.display_name
        if referred.referred_by_id == referred_id:
            logger.warning(f"Self-referral blocked: user {referred_id}")
            return None

        referrer = await crud.get_user_by_id(session, referred.referred_by_id)
        if referrer is None:
            return None
        referrer_id = referrer.id

        if REFERRAL_BONUS_PERFORMERS_ONLY and UserRole(referrer.role) is not UserRole.PERFORMER:
            logger.debug(f"Referrer {referrer_id} is not a performer, no bonus")
            return None

        try:
            result = await self.ledger.credit(
                session,
                referrer_id,
                REFERRAL_BONUS_AMOUNT,
                f"Referral bonus for inviting {referred_name}",
                transaction_type=TransactionType.REFERRAL,
                related_user_id=referred_id,
                idempotency_key=referral_key(referrer_id, referred_id),
            )
        except DuplicateOperationError:
            logger.warning(f"Duplicate referral bonus blocked: {referrer_id} -> {referred_id}")
            return None

        if result.duplicate:
            logger.debug(f"Referral bonus {referrer_id} -> {referred_id} already awarded")
            return None

        logger.info(f"Referral bonus {REFERRAL_BONUS_AMOUNT} credited: {referrer_id} for {referred_id}")
        await self.tasks.track_progress(session, referrer, TaskAction.REFERRAL)
        return result
