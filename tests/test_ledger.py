"""
Unit tests for the coin ledger primitives
"""

import json

import pytest
from sqlalchemy import select, func

from config.monetization_config import MAX_COIN_BALANCE
from src.core.enums import TransactionType
from src.core.exceptions import (
    BalanceOverflowError,
    InsufficientFundsError,
    InvalidRequestError,
    NotFoundError,
)
from src.database.models import Transaction
from src.services.ledger_service import LedgerService


async def count_transactions(session, user_id, transaction_type=None) -> int:
    stmt = select(func.count(Transaction.id)).where(Transaction.user_id == user_id)
    if transaction_type:
        stmt = stmt.where(Transaction.type == transaction_type.value)
    return (await session.execute(stmt)).scalar_one()


@pytest.mark.asyncio
async def test_credit_adds_coins_and_writes_row(db_session, ledger, make_user):
    user = await make_user()

    result = await ledger.credit(
        db_session, user.id, 25, "Bonus", transaction_type=TransactionType.EARN, metadata={"source": "test"}
    )

    assert result.balance == 25
    assert result.transaction.amount == 25
    assert result.transaction.balance_after == 25
    assert result.transaction.type == "earn"
    assert json.loads(result.transaction.metadata_json) == {"source": "test"}
    assert await LedgerService.get_balance(db_session, user.id) == 25


@pytest.mark.asyncio
async def test_debit_writes_negative_spend_row(db_session, ledger, make_user):
    user = await make_user(coins=100)

    result = await ledger.debit(db_session, user.id, 35, "Message to Bella", related_user_id=None)

    assert result.balance == 65
    assert result.transaction.type == "spend"
    assert result.transaction.amount == -35
    assert await count_transactions(db_session, user.id, TransactionType.SPEND) == 1


@pytest.mark.asyncio
async def test_debit_insufficient_is_noop(db_session, ledger, make_user):
    """Failed debit: balance unchanged, no ledger row, required/available reported"""
    user = await make_user(coins=20)
    user_id = user.id
    rows_before = await count_transactions(db_session, user_id)

    with pytest.raises(InsufficientFundsError) as exc_info:
        await ledger.debit(db_session, user_id, 35, "Message")

    assert exc_info.value.required == 35
    assert exc_info.value.available == 20
    assert exc_info.value.to_dict() == {"detail": "Insufficient coins", "required": 35, "available": 20}
    assert await LedgerService.get_balance(db_session, user_id) == 20
    assert await count_transactions(db_session, user_id) == rows_before


@pytest.mark.asyncio
async def test_balance_never_negative(db_session, ledger, make_user):
    user = await make_user(coins=50)
    user_id = user.id

    for amount in (20, 20, 20, 5, 5):
        try:
            result = await ledger.debit(db_session, user_id, amount, "Spend")
            assert result.balance >= 0
        except InsufficientFundsError:
            pass
        assert await LedgerService.get_balance(db_session, user_id) >= 0

    assert await LedgerService.get_balance(db_session, user_id) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -5, 1.5, True])
async def test_invalid_amounts_rejected(db_session, ledger, make_user, amount):
    user = await make_user(coins=10)

    with pytest.raises(InvalidRequestError):
        await ledger.credit(db_session, user.id, amount, "Bad")
    with pytest.raises(InvalidRequestError):
        await ledger.debit(db_session, user.id, amount, "Bad")


@pytest.mark.asyncio
async def test_spend_is_not_a_credit_type(db_session, ledger, make_user):
    user = await make_user()

    with pytest.raises(InvalidRequestError):
        await ledger.credit(db_session, user.id, 10, "Wrong", transaction_type=TransactionType.SPEND)


@pytest.mark.asyncio
async def test_unknown_user(db_session, ledger):
    with pytest.raises(NotFoundError):
        await ledger.credit(db_session, 9999, 10, "Ghost")
    with pytest.raises(NotFoundError):
        await ledger.debit(db_session, 9999, 10, "Ghost")


@pytest.mark.asyncio
async def test_credit_overflow_guard(db_session, ledger, make_user):
    user = await make_user(coins=MAX_COIN_BALANCE - 5)
    user_id = user.id

    with pytest.raises(BalanceOverflowError):
        await ledger.credit(db_session, user_id, 10, "Too much")

    assert await LedgerService.get_balance(db_session, user_id) == MAX_COIN_BALANCE - 5

    result = await ledger.credit(db_session, user_id, 5, "Exactly to the limit")
    assert result.balance == MAX_COIN_BALANCE


@pytest.mark.asyncio
async def test_idempotency_key_returns_first_result(db_session, ledger, make_user):
    user = await make_user()

    first = await ledger.credit(
        db_session, user.id, 40, "Payment", transaction_type=TransactionType.PURCHASE, idempotency_key="purchase:abc"
    )
    second = await ledger.credit(
        db_session, user.id, 40, "Payment", transaction_type=TransactionType.PURCHASE, idempotency_key="purchase:abc"
    )

    assert second.duplicate is True
    assert second.transaction.id == first.transaction.id
    assert await LedgerService.get_balance(db_session, user.id) == 40
    assert await count_transactions(db_session, user.id, TransactionType.PURCHASE) == 1


@pytest.mark.asyncio
async def test_atomic_rolls_back_all_staged_mutations(db_session, ledger, make_user):
    """A failure inside atomic() undoes every primitive staged before it"""
    payer = await make_user(coins=30)
    payee = await make_user()
    payer_id, payee_id = payer.id, payee.id

    with pytest.raises(InsufficientFundsError):
        async with ledger.atomic(db_session):
            await ledger.credit(db_session, payee_id, 10, "Earn", commit=False)
            await ledger.debit(db_session, payer_id, 50, "Spend", commit=False)

    assert await LedgerService.get_balance(db_session, payer_id) == 30
    assert await LedgerService.get_balance(db_session, payee_id) == 0
    assert await count_transactions(db_session, payee_id) == 0


@pytest.mark.asyncio
async def test_transaction_history_newest_first_and_stable(db_session, ledger, make_user):
    user = await make_user(coins=100)
    await ledger.debit(db_session, user.id, 10, "First spend")
    await ledger.credit(db_session, user.id, 5, "Refund-like earn")
    await ledger.debit(db_session, user.id, 1, "Last spend")

    history = await LedgerService.get_transaction_history(db_session, user.id)
    again = await LedgerService.get_transaction_history(db_session, user.id)

    assert [t.description for t in history] == ["Last spend", "Refund-like earn", "First spend", "Test top-up"]
    assert [t.id for t in history] == [t.id for t in again]


@pytest.mark.asyncio
async def test_balance_reconstructable_from_ledger(db_session, ledger, make_user):
    user = await make_user(coins=100)
    await ledger.debit(db_session, user.id, 35, "Spend")
    await ledger.credit(db_session, user.id, 10, "Earn")

    total = (
        await db_session.execute(select(func.sum(Transaction.amount)).where(Transaction.user_id == user.id))
    ).scalar_one()
    assert total == await LedgerService.get_balance(db_session, user.id) == 75


@pytest.mark.asyncio
async def test_adjust_coins(db_session, ledger, make_user):
    user = await make_user(coins=10)
    user_id = user.id

    updated = await ledger.adjust_coins(db_session, user_id, 15, reason="Compensation", admin_id=1)
    assert updated.coins == 25

    updated = await ledger.adjust_coins(db_session, user_id, -5, admin_id=1)
    assert updated.coins == 20

    with pytest.raises(InvalidRequestError):
        await ledger.adjust_coins(db_session, user_id, 0)

    with pytest.raises(InsufficientFundsError):
        await ledger.adjust_coins(db_session, user_id, -100)
    assert await LedgerService.get_balance(db_session, user_id) == 20
