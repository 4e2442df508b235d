"""
Tests for referral bonuses
"""

import pytest
from sqlalchemy import select

from src.core.enums import TransactionType, UserRole
from src.database import crud
from src.database.models import Transaction
from src.services.ledger_service import LedgerService
from src.services.referral_service import ReferralService, referral_key


@pytest.fixture
def referral_service(ledger):
    return ReferralService(ledger)


def test_referral_key():
    assert referral_key(3, 7) == "referral:3:7"


@pytest.mark.asyncio
async def test_performer_referrer_gets_bonus_once(db_session, referral_service, make_user, performer):
    referred = await make_user(referred_by_id=performer.id)

    result = await referral_service.award_referral_bonus(db_session, referred)

    assert result is not None
    assert result.balance == 50
    assert result.transaction.type == TransactionType.REFERRAL.value
    assert result.transaction.related_user_id == referred.id
    assert result.transaction.idempotency_key == referral_key(performer.id, referred.id)

    assert await referral_service.award_referral_bonus(db_session, referred) is None
    assert await LedgerService.get_balance(db_session, performer.id) == 50

    rows = (
        await db_session.execute(select(Transaction).where(Transaction.user_id == performer.id))
    ).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_regular_referrer_gets_nothing(db_session, referral_service, make_user, regular_user):
    referred = await make_user(referred_by_id=regular_user.id)

    assert await referral_service.award_referral_bonus(db_session, referred) is None
    assert await LedgerService.get_balance(db_session, regular_user.id) == 100


@pytest.mark.asyncio
async def test_no_referrer(db_session, referral_service, make_user):
    user = await make_user()

    assert await referral_service.award_referral_bonus(db_session, user) is None


@pytest.mark.asyncio
async def test_referral_code_links_new_user(db_session, performer):
    user, created = await crud.get_or_create_user(
        db_session, telegram_id=777001, first_name="New", referral_code=performer.referral_code
    )

    assert created is True
    assert user.referred_by_id == performer.id

    # Повторный вход: код игнорируется
    again, created = await crud.get_or_create_user(
        db_session, telegram_id=777001, referral_code=performer.referral_code
    )
    assert created is False
    assert again.id == user.id


@pytest.mark.asyncio
async def test_unknown_referral_code_is_ignored(db_session):
    user, created = await crud.get_or_create_user(db_session, telegram_id=777002, referral_code="NOPE1234")

    assert created is True
    assert user.referred_by_id is None
    assert UserRole(user.role) is UserRole.REGULAR
