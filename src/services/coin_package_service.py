# coding: utf-8
"""
Coin Package Service

Package bonus shown and credited:
    package bonus_percentage
    + FIRST_PURCHASE_BONUS_PERCENT for the first purchase
    + WEEKEND_BONUS_PERCENT on Saturday/Sunday (UTC)
    + best active promotion discount
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.catalog_config import DEFAULT_COIN_PACKAGES
from config.monetization_config import FIRST_PURCHASE_BONUS_PERCENT, WEEKEND_BONUS_PERCENT
from src.core.enums import TransactionType
from src.core.exceptions import NotFoundError
from src.database.models import CoinPackage, User
from src.services.ledger_service import LedgerService
from src.services.promotion_service import PromotionService
from src.utils.coins import percent_of
from src.utils.dates import utcnow


def is_weekend(now: Optional[datetime] = None) -> bool:
    return (now or utcnow()).weekday() >= 5


def package_bonus_percent(
    package: CoinPackage, first_purchase: bool, weekend: bool, promotion_discount: int
) -> int:
    percent = package.bonus_percentage
    if first_purchase:
        percent += FIRST_PURCHASE_BONUS_PERCENT
    if weekend:
        percent += WEEKEND_BONUS_PERCENT
    return percent + promotion_discount


class CoinPackageService:
    """Service for coin packages with dynamic bonuses"""

    def __init__(self, ledger: LedgerService):
        self.ledger = ledger

    @staticmethod
    async def _pricing_context(session: AsyncSession, user: User, now: Optional[datetime]) -> Dict:
        return {
            "first_purchase": user.purchase_count == 0,
            "weekend": is_weekend(now),
            "promotion_discount": await PromotionService.get_best_discount(session, user.id),
        }

    async def get_coin_packages(
        self, session: AsyncSession, user: User, now: Optional[datetime] = None
    ) -> List[Dict]:
        """
        Active packages with the bonus this user would get right now
        """
        stmt = select(CoinPackage).where(CoinPackage.is_active.is_(True)).order_by(CoinPackage.amount)
        packages = (await session.execute(stmt)).scalars().all()
        context = await self._pricing_context(session, user, now)

        items = []
        for package in packages:
            bonus_percent = package_bonus_percent(package, **context)
            items.append({
                "id": package.id,
                "name": package.name,
                "amount": package.amount,
                "price": package.price,
                "bonus_percentage": bonus_percent,
                "bonus_coins": percent_of(package.amount, bonus_percent),
                "is_first_purchase": context["first_purchase"],
                "is_weekend": context["weekend"],
            })
        return items

    async def purchase_package(
        self,
        session: AsyncSession,
        user: User,
        package_id: int,
        payment_method: str,
        now: Optional[datetime] = None,
    ) -> Dict:
        """
        Credit a package (purchase row) and its bonus (earn row) atomically

        Returns:
            {"package_id", "amount", "bonus", "total", "coins"}
        """
        package = await session.get(CoinPackage, package_id)
        if package is None or not package.is_active:
            raise NotFoundError("Coin package", package_id)

        context = await self._pricing_context(session, user, now)
        bonus_percent = package_bonus_percent(package, **context)
        bonus = percent_of(package.amount, bonus_percent)
        user_id = user.id

        async with self.ledger.atomic(session):
            purchase = await self.ledger.credit(
                session,
                user_id,
                package.amount,
                f"Purchase of {package.name} coin package via {payment_method}"
                + (" with first-time bonus" if context["first_purchase"] else ""),
                transaction_type=TransactionType.PURCHASE,
                metadata={"package_id": package.id, "price": package.price, "payment_method": payment_method},
                commit=False,
            )
            balance = purchase.balance
            if bonus > 0:
                bonus_result = await self.ledger.credit(
                    session,
                    user_id,
                    bonus,
                    f"{package.name} package bonus ({bonus_percent}%)",
                    transaction_type=TransactionType.EARN,
                    metadata={"package_id": package.id, "purchase_transaction_id": purchase.transaction.id},
                    commit=False,
                )
                balance = bonus_result.balance
            await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(
                    total_purchased=User.total_purchased + package.amount,
                    purchase_count=User.purchase_count + 1,
                    last_purchase_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )

        # purchase_count changed behind the identity map
        await session.get(User, user_id, populate_existing=True)
        logger.info(f"Package {package.id} bought by user {user_id}: {package.amount} + {bonus} bonus")
        return {
            "package_id": package.id,
            "amount": package.amount,
            "bonus": bonus,
            "total": package.amount + bonus,
            "coins": balance,
        }

    @staticmethod
    async def initialize_default_packages(session: AsyncSession) -> int:
        existing = (await session.execute(select(CoinPackage.id).limit(1))).scalar_one_or_none()
        if existing is not None:
            return 0
        for package_data in DEFAULT_COIN_PACKAGES:
            session.add(CoinPackage(**package_data))
        await session.commit()
        logger.info(f"Default coin packages initialized ({len(DEFAULT_COIN_PACKAGES)})")
        return len(DEFAULT_COIN_PACKAGES)
