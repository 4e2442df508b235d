"""
Tests for CRUD operations
"""

import pytest

from config.monetization_config import REFERRAL_CODE_ALPHABET, REFERRAL_CODE_LENGTH
from src.core.enums import UserRole
from src.database import crud


@pytest.mark.asyncio
async def test_create_user_defaults(db_session):
    user = await crud.create_user(db_session, telegram_id=123, first_name="Test")

    assert user.coins == 0
    assert user.role == UserRole.REGULAR.value
    assert len(user.referral_code) == REFERRAL_CODE_LENGTH
    assert set(user.referral_code) <= set(REFERRAL_CODE_ALPHABET)
    assert await crud.get_user_by_telegram_id(db_session, 123) is user
    assert await crud.get_user_by_referral_code(db_session, user.referral_code) is user


@pytest.mark.asyncio
async def test_get_or_create_user_returns_existing(db_session):
    user, created = await crud.get_or_create_user(db_session, telegram_id=321, first_name="A")
    same, created_again = await crud.get_or_create_user(db_session, telegram_id=321, first_name="B")

    assert created is True
    assert created_again is False
    assert same.id == user.id
    assert same.first_name == "A"


@pytest.mark.asyncio
async def test_get_or_create_conversation(db_session, regular_user, performer):
    conversation, created = await crud.get_or_create_conversation(db_session, regular_user.id, performer.id)
    same, created_again = await crud.get_or_create_conversation(db_session, regular_user.id, performer.id)

    assert created is True
    assert created_again is False
    assert same.id == conversation.id
    assert conversation.has_participant(regular_user.id)
    assert conversation.has_participant(performer.id)
    assert conversation.other_participant(regular_user.id) == performer.id


@pytest.mark.asyncio
async def test_list_user_conversations(db_session, make_user, regular_user, performer):
    other_performer = await make_user(role=UserRole.PERFORMER, message_price=20)
    first, _ = await crud.get_or_create_conversation(db_session, regular_user.id, performer.id)
    second, _ = await crud.get_or_create_conversation(db_session, regular_user.id, other_performer.id)

    await crud.add_message(db_session, first, regular_user.id, performer.id, "Hello", cost=35)
    await crud.add_message(db_session, first, performer.id, regular_user.id, "Hi!", cost=0)
    await db_session.commit()

    items = await crud.list_user_conversations(db_session, regular_user.id)

    assert [item["conversation"].id for item in items] == [first.id, second.id]
    assert items[0]["other_user"].id == performer.id
    assert items[0]["last_message"].content == "Hi!"
    assert items[0]["unread_count"] == 1
    assert items[1]["last_message"] is None
    assert items[1]["unread_count"] == 0

    performer_items = await crud.list_user_conversations(db_session, performer.id)
    assert len(performer_items) == 1
    assert performer_items[0]["other_user"].id == regular_user.id


@pytest.mark.asyncio
async def test_mark_messages_read(db_session, regular_user, performer):
    conversation, _ = await crud.get_or_create_conversation(db_session, regular_user.id, performer.id)
    await crud.add_message(db_session, conversation, regular_user.id, performer.id, "One", cost=35)
    await crud.add_message(db_session, conversation, regular_user.id, performer.id, "Two", cost=35)
    await db_session.commit()

    assert await crud.mark_messages_read(db_session, conversation.id, regular_user.id) == 0
    assert await crud.mark_messages_read(db_session, conversation.id, performer.id) == 2
    assert await crud.mark_messages_read(db_session, conversation.id, performer.id) == 0

    messages = await crud.get_conversation_messages(db_session, conversation.id)
    assert [m.content for m in messages] == ["One", "Two"]
    assert all(m.read for m in messages)


@pytest.mark.asyncio
async def test_list_performers(db_session, make_user, regular_user, performer):
    await make_user(role=UserRole.ADMIN)

    performers = await crud.list_performers(db_session)

    assert [p.id for p in performers] == [performer.id]
