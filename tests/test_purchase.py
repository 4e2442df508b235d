"""
Tests for coin purchases, loyalty bonuses and coin packages
"""

from datetime import datetime, UTC

import pytest
from sqlalchemy import select

from config.monetization_config import calculate_purchase_bonus_percent
from src.core.enums import PromotionType, TransactionType
from src.core.exceptions import InvalidRequestError, NotFoundError
from src.database.models import CoinPackage, Transaction
from src.services.coin_package_service import CoinPackageService, is_weekend, package_bonus_percent
from src.services.ledger_service import LedgerService
from src.services.promotion_service import PromotionService


SATURDAY = datetime(2026, 10, 17, 12, 0, tzinfo=UTC)
WEDNESDAY = datetime(2026, 10, 14, 12, 0, tzinfo=UTC)


# ===========================
# BONUS TIERS
# ===========================


@pytest.mark.parametrize(
    "amount, spent, transactions, expected",
    [
        (100, 0, 0, 5),
        (1000, 0, 0, 10),  # порог размера покупки включительно
        (5000, 0, 0, 15),
        (100, 1000, 0, 5),  # порог трат строгий
        (100, 1001, 0, 7),
        (100, 5001, 11, 10),
        (5000, 10001, 51, 23),
    ],
)
def test_purchase_bonus_tiers(amount, spent, transactions, expected):
    assert calculate_purchase_bonus_percent(amount, spent, transactions) == expected


# ===========================
# PURCHASE
# ===========================


@pytest.mark.asyncio
async def test_first_purchase_gets_base_bonus(db_session, ledger, make_user):
    user = await make_user()

    result = await ledger.purchase_coins(db_session, user.id, 100, "card")

    assert result.bonus_percent == 5
    assert result.bonus.transaction.amount == 5
    assert result.total_credited == 105
    assert result.user.coins == 105
    assert result.user.purchase_count == 1
    assert result.user.total_purchased == 100
    assert result.purchase.transaction.type == TransactionType.PURCHASE.value
    assert result.purchase.transaction.description == "Purchase of 100 coins via card"
    assert result.bonus.transaction.type == TransactionType.EARN.value


@pytest.mark.asyncio
async def test_purchase_with_payment_id_is_idempotent(db_session, ledger, make_user):
    user = await make_user()

    first = await ledger.purchase_coins(db_session, user.id, 100, "card", payment_id="pay_1")
    second = await ledger.purchase_coins(db_session, user.id, 100, "card", payment_id="pay_1")

    assert first.purchase.duplicate is False
    assert second.purchase.duplicate is True
    assert second.bonus is None
    assert second.user.coins == 105
    assert second.user.purchase_count == 1
    assert await LedgerService.get_balance(db_session, user.id) == 105


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -10, 100001])
async def test_purchase_amount_limits(db_session, ledger, regular_user, amount):
    with pytest.raises(InvalidRequestError):
        await ledger.purchase_coins(db_session, regular_user.id, amount, "card")


@pytest.mark.asyncio
async def test_purchase_bonus_grows_with_spending(db_session, ledger, make_user, performer):
    user = await make_user(coins=2000)
    await ledger.debit(db_session, user.id, 1500, "Spending", related_user_id=performer.id)

    result = await ledger.purchase_coins(db_session, user.id, 100, "card")

    # 5 base + 2 за траты > 1000
    assert result.bonus_percent == 7
    assert result.bonus.transaction.amount == 7


# ===========================
# COIN PACKAGES
# ===========================


@pytest.fixture
def package_service(ledger):
    return CoinPackageService(ledger)


@pytest.fixture
async def popular_package(db_session):
    package = CoinPackage(name="Popular", amount=500, price=449, bonus_percentage=10)
    db_session.add(package)
    await db_session.commit()
    return package


def test_is_weekend():
    assert is_weekend(SATURDAY) is True
    assert is_weekend(WEDNESDAY) is False


def test_package_bonus_percent():
    package = CoinPackage(name="Popular", amount=500, price=449, bonus_percentage=10)
    assert package_bonus_percent(package, False, False, 0) == 10
    assert package_bonus_percent(package, True, False, 0) == 60
    assert package_bonus_percent(package, True, True, 15) == 85


@pytest.mark.asyncio
async def test_coin_packages_for_new_user_on_weekend(db_session, package_service, make_user, popular_package):
    user = await make_user()

    packages = await package_service.get_coin_packages(db_session, user, now=SATURDAY)

    assert len(packages) == 1
    assert packages[0]["bonus_percentage"] == 10 + 50 + 10
    assert packages[0]["bonus_coins"] == 350
    assert packages[0]["is_first_purchase"] is True
    assert packages[0]["is_weekend"] is True


@pytest.mark.asyncio
async def test_coin_packages_include_promotion(db_session, package_service, make_user, popular_package):
    user = await make_user()
    other = await make_user()
    await PromotionService.create_promotion(db_session, PromotionType.FLASH, 5, 24)
    await PromotionService.create_promotion(
        db_session, PromotionType.PERSONAL, 20, 24, target_user_ids=[other.id]
    )

    assert await PromotionService.get_best_discount(db_session, user.id) == 5
    assert await PromotionService.get_best_discount(db_session, other.id) == 20

    packages = await package_service.get_coin_packages(db_session, user, now=WEDNESDAY)
    assert packages[0]["bonus_percentage"] == 10 + 50 + 5


@pytest.mark.asyncio
async def test_purchase_package_first_time_bonus(db_session, package_service, make_user, popular_package):
    user = await make_user()

    result = await package_service.purchase_package(db_session, user, popular_package.id, "card", now=WEDNESDAY)

    assert result == {
        "package_id": popular_package.id,
        "amount": 500,
        "bonus": 300,
        "total": 800,
        "coins": 800,
    }
    rows = (
        await db_session.execute(
            select(Transaction).where(Transaction.user_id == user.id).order_by(Transaction.id)
        )
    ).scalars().all()
    assert [r.type for r in rows] == ["purchase", "earn"]
    assert rows[0].description == "Purchase of Popular coin package via card with first-time bonus"
    assert rows[1].description == "Popular package bonus (60%)"

    # Второй пакет без бонуса первой покупки
    second = await package_service.purchase_package(db_session, user, popular_package.id, "card", now=WEDNESDAY)
    assert second["bonus"] == 50
    assert second["coins"] == 800 + 550


@pytest.mark.asyncio
async def test_purchase_unknown_package(db_session, package_service, regular_user):
    with pytest.raises(NotFoundError):
        await package_service.purchase_package(db_session, regular_user, 9999, "card")


@pytest.mark.asyncio
async def test_create_promotion_validation(db_session):
    with pytest.raises(InvalidRequestError):
        await PromotionService.create_promotion(db_session, PromotionType.FLASH, 0, 24)
    with pytest.raises(InvalidRequestError):
        await PromotionService.create_promotion(db_session, PromotionType.FLASH, 101, 24)
    with pytest.raises(InvalidRequestError):
        await PromotionService.create_promotion(db_session, PromotionType.FLASH, 10, 0)
