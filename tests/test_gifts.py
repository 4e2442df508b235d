"""
Tests for gift payments and the gift leaderboard
"""

import pytest
from sqlalchemy import select, func

from src.core.enums import LeaderboardPeriod, UserRole
from src.core.exceptions import InsufficientFundsError, InvalidRequestError, NotFoundError
from src.database.models import Gift, GiftTransaction
from src.services.gift_service import GiftService
from src.services.ledger_service import LedgerService
from src.services.task_service import TaskService


@pytest.fixture
def gift_service(ledger):
    return GiftService(ledger)


@pytest.fixture
async def rose(db_session):
    gift = Gift(name="Rose", description="A single rose", price=100)
    db_session.add(gift)
    await db_session.commit()
    return gift


@pytest.mark.asyncio
async def test_send_gift_splits_price(db_session, gift_service, make_user, performer, rose):
    sender = await make_user(coins=150)

    record = await gift_service.send_gift(db_session, sender, performer.id, rose.id)

    assert record["price"] == 100
    assert record["recipient_earnings"] == 80
    assert record["gift_name"] == "Rose"
    assert await LedgerService.get_balance(db_session, sender.id) == 50
    assert await LedgerService.get_balance(db_session, performer.id) == 80

    stored = (await db_session.execute(select(GiftTransaction))).scalar_one()
    assert stored.spend_transaction_id is not None
    assert stored.earn_transaction_id is not None


@pytest.mark.asyncio
async def test_send_gift_to_regular_user_rejected(db_session, gift_service, make_user, rose):
    sender = await make_user(coins=150)
    other = await make_user()

    with pytest.raises(InvalidRequestError):
        await gift_service.send_gift(db_session, sender, other.id, rose.id)

    with pytest.raises(InvalidRequestError):
        await gift_service.send_gift(db_session, sender, 9999, rose.id)

    assert await LedgerService.get_balance(db_session, sender.id) == 150


@pytest.mark.asyncio
async def test_send_unknown_gift(db_session, gift_service, regular_user, performer):
    with pytest.raises(NotFoundError):
        await gift_service.send_gift(db_session, regular_user, performer.id, 9999)


@pytest.mark.asyncio
async def test_send_gift_insufficient_funds(db_session, gift_service, make_user, performer, rose):
    sender = await make_user(coins=60)
    sender_id, performer_id, gift_id = sender.id, performer.id, rose.id

    with pytest.raises(InsufficientFundsError) as exc_info:
        await gift_service.send_gift(db_session, sender, performer_id, gift_id)

    assert exc_info.value.to_dict() == {"detail": "Insufficient coins", "required": 100, "available": 60}
    assert await LedgerService.get_balance(db_session, sender_id) == 60
    assert await LedgerService.get_balance(db_session, performer_id) == 0
    count = (await db_session.execute(select(func.count(GiftTransaction.id)))).scalar_one()
    assert count == 0


@pytest.mark.asyncio
async def test_gift_history_for_both_sides(db_session, gift_service, make_user, performer, rose):
    sender = await make_user(coins=300)
    await gift_service.send_gift(db_session, sender, performer.id, rose.id)
    await gift_service.send_gift(db_session, sender, performer.id, rose.id)

    sent = await gift_service.get_user_gift_history(db_session, sender.id)
    received = await gift_service.get_user_gift_history(db_session, performer.id)

    assert len(sent) == 2
    assert [r["id"] for r in sent] == [r["id"] for r in received]
    assert sent[0]["id"] > sent[1]["id"]


@pytest.mark.asyncio
async def test_leaderboard_orders_by_total_value(db_session, gift_service, make_user, rose):
    first = await make_user(role=UserRole.PERFORMER, first_name="Top")
    second = await make_user(role=UserRole.PERFORMER, first_name="Runner-up")
    sender = await make_user(coins=1000)

    await gift_service.send_gift(db_session, sender, second.id, rose.id)
    await gift_service.send_gift(db_session, sender, first.id, rose.id)
    await gift_service.send_gift(db_session, sender, first.id, rose.id)

    board = await gift_service.get_leaderboard(db_session, LeaderboardPeriod.WEEKLY)

    assert [row["user_id"] for row in board] == [first.id, second.id]
    assert board[0]["gift_count"] == 2
    assert board[0]["total_value"] == 200
    assert board[0]["first_name"] == "Top"


@pytest.mark.asyncio
async def test_initialize_default_gifts_is_idempotent(db_session):
    created = await GiftService.initialize_default_gifts(db_session)
    assert created > 0
    assert await GiftService.initialize_default_gifts(db_session) == 0

    gifts = await GiftService.get_available_gifts(db_session)
    assert len(gifts) == created
    assert [g.price for g in gifts] == sorted(g.price for g in gifts)


@pytest.mark.asyncio
async def test_send_gift_survives_task_tracking_failure(
    db_session, gift_service, make_user, performer, rose, monkeypatch
):
    await TaskService.initialize_default_tasks(db_session)

    async def broken_add_progress(self, session, user_id, task, count=1):
        raise RuntimeError("task store down")

    monkeypatch.setattr(TaskService, "add_progress", broken_add_progress)
    sender = await make_user(coins=100)

    record = await gift_service.send_gift(db_session, sender, performer.id, rose.id)

    assert record["gift_name"] == "Rose"
    assert record["recipient_earnings"] == 80
    assert await LedgerService.get_balance(db_session, sender.id) == 0
