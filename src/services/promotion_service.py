# coding: utf-8
"""
Promotion Service

Time-boxed discount campaigns, global (target_user_ids is NULL) or
targeted at a list of users. Used by coin package pricing.
"""

from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from src.core.enums import PromotionType
from src.core.exceptions import InvalidRequestError
from src.database.models import Promotion
from src.utils.dates import ensure_utc, utcnow


class PromotionService:
    """Service for promotions"""

    @staticmethod
    async def create_promotion(
        session: AsyncSession,
        promotion_type: PromotionType,
        discount_percentage: int,
        duration_hours: int,
        target_user_ids: Optional[List[int]] = None,
        start_time: Optional[datetime] = None,
    ) -> Promotion:
        """
        Create a promotion starting now (or at start_time)

        Raises:
            InvalidRequestError: discount outside 1..100 or non-positive duration
        """
        if not 0 < discount_percentage <= 100:
            raise InvalidRequestError("Discount must be between 1 and 100 percent")
        if duration_hours <= 0:
            raise InvalidRequestError("Duration must be positive")

        start = ensure_utc(start_time) if start_time else utcnow()
        promotion = Promotion(
            type=PromotionType(promotion_type).value,
            discount_percentage=discount_percentage,
            start_time=start,
            end_time=start + timedelta(hours=duration_hours),
            target_user_ids=list(target_user_ids) if target_user_ids else None,
            is_active=True,
        )
        session.add(promotion)
        await session.commit()
        await session.refresh(promotion)

        logger.info(
            f"Promotion {promotion.id} created: {promotion.type} -{discount_percentage}% "
            f"for {duration_hours}h (targets={len(target_user_ids or [])})"
        )
        return promotion

    @staticmethod
    async def get_user_promotions(session: AsyncSession, user_id: int) -> List[Promotion]:
        """
        Active promotions that apply to the user (global + targeted)
        """
        now = utcnow()
        stmt = (
            select(Promotion)
            .where(
                Promotion.is_active.is_(True),
                Promotion.start_time <= now,
                Promotion.end_time > now,
            )
            .order_by(Promotion.discount_percentage.desc(), Promotion.id)
        )
        promotions = (await session.execute(stmt)).scalars().all()
        # JSON membership is filtered in Python, the same query works on SQLite and PostgreSQL
        return [p for p in promotions if p.targets(user_id)]

    @classmethod
    async def get_best_discount(cls, session: AsyncSession, user_id: int) -> int:
        promotions = await cls.get_user_promotions(session, user_id)
        return max((p.discount_percentage for p in promotions), default=0)
