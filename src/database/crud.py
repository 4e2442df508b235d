"""
CRUD operations for FlirtMarket API

Async database operations using SQLAlchemy 2.0.

Nothing here touches users.coins - balance changes go through
src.services.ledger_service.LedgerService.
"""

import logging
import secrets
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update, func, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config.monetization_config import REFERRAL_CODE_ALPHABET, REFERRAL_CODE_LENGTH
from src.core.enums import UserRole
from src.database.models import User, Conversation, Message
from src.utils.dates import utcnow

logger = logging.getLogger(__name__)


# ===========================
# USER OPERATIONS
# ===========================


async def get_user_by_id(session: AsyncSession, user_id: int) -> Optional[User]:
    """
    Get user by internal ID

    Args:
        session: Database session
        user_id: User ID

    Returns:
        User model or None
    """
    return await session.get(User, user_id)


async def get_user_by_telegram_id(
    session: AsyncSession, telegram_id: int
) -> Optional[User]:
    stmt = select(User).where(User.telegram_id == telegram_id)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_referral_code(
    session: AsyncSession, referral_code: str
) -> Optional[User]:
    stmt = select(User).where(User.referral_code == referral_code.upper())
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def generate_referral_code(session: AsyncSession) -> str:
    """
    Generate unique referral code

    Returns:
        Unique referral code (8 characters, no 0/O/1/I)
    """
    while True:
        code = "".join(
            secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(REFERRAL_CODE_LENGTH)
        )

        stmt = select(User.id).where(User.referral_code == code)
        result = await session.execute(stmt)
        if result.scalar_one_or_none() is None:
            return code


async def create_user(
    session: AsyncSession,
    telegram_id: Optional[int],
    username: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    photo_url: Optional[str] = None,
    role: UserRole = UserRole.REGULAR,
    message_price: Optional[int] = None,
    referred_by_id: Optional[int] = None,
) -> User:
    """
    Create new user with zero balance and a fresh referral code

    Args:
        session: Database session
        telegram_id: Telegram user ID
        username: Telegram username
        first_name: User first name
        last_name: User last name
        photo_url: Avatar URL
        role: User role
        message_price: Price per inbound message (performers)
        referred_by_id: Referrer user ID

    Returns:
        Created User model
    """
    user = User(
        telegram_id=telegram_id,
        username=username,
        first_name=first_name,
        last_name=last_name,
        photo_url=photo_url,
        role=UserRole(role).value,
        coins=0,
        message_price=message_price,
        referral_code=await generate_referral_code(session),
        referred_by_id=referred_by_id,
    )
    session.add(user)
    await session.commit()
    await session.refresh(user)

    logger.info(f"User created: id={user.id} telegram_id={telegram_id} role={user.role}")
    return user


async def get_or_create_user(
    session: AsyncSession,
    telegram_id: int,
    username: Optional[str] = None,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    photo_url: Optional[str] = None,
    referral_code: Optional[str] = None,
) -> Tuple[User, bool]:
    """
    Get existing user or create new one

    Args:
        session: Database session
        telegram_id: Telegram user ID
        username: Telegram username
        first_name: User first name
        last_name: User last name
        photo_url: Avatar URL
        referral_code: Referral code from the start parameter (new users only)

    Returns:
        Tuple of (User, created)
    """
    user = await get_user_by_telegram_id(session, telegram_id)
    if user:
        return user, False

    referrer = None
    if referral_code:
        referrer = await get_user_by_referral_code(session, referral_code)
        if referrer is None:
            logger.warning(f"Unknown referral code {referral_code} for telegram_id={telegram_id}")

    try:
        user = await create_user(
            session,
            telegram_id=telegram_id,
            username=username,
            first_name=first_name,
            last_name=last_name,
            photo_url=photo_url,
            referred_by_id=referrer.id if referrer else None,
        )
    except IntegrityError:
        # Параллельная авторизация того же пользователя
        await session.rollback()
        user = await get_user_by_telegram_id(session, telegram_id)
        if user is None:
            raise
        return user, False

    return user, True


async def update_user_profile(
    session: AsyncSession,
    user: User,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    bio: Optional[str] = None,
    photo_url: Optional[str] = None,
    message_price: Optional[int] = None,
) -> User:
    """
    Update editable profile fields and refresh last_active

    Returns:
        Updated User model
    """
    values: Dict = {"last_active": utcnow()}
    if first_name is not None:
        values["first_name"] = first_name
    if last_name is not None:
        values["last_name"] = last_name
    if bio is not None:
        values["bio"] = bio
    if photo_url is not None:
        values["photo_url"] = photo_url
    if message_price is not None:
        values["message_price"] = message_price

    await session.execute(update(User).where(User.id == user.id).values(**values))
    await session.commit()
    await session.refresh(user)

    logger.info(f"Profile updated: user_id={user.id} fields={sorted(values)}")
    return user


async def set_user_role(session: AsyncSession, user: User, role: UserRole) -> User:
    await session.execute(
        update(User).where(User.id == user.id).values(role=UserRole(role).value, last_active=utcnow())
    )
    await session.commit()
    await session.refresh(user)
    logger.info(f"Role changed: user_id={user.id} role={user.role}")
    return user


async def list_performers(
    session: AsyncSession, limit: int = 20, offset: int = 0
) -> List[User]:
    stmt = (
        select(User)
        .where(User.role == UserRole.PERFORMER.value)
        .order_by(User.last_active.desc(), User.id.desc())
        .limit(limit)
        .offset(offset)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ===========================
# CONVERSATION OPERATIONS
# ===========================


async def get_conversation(
    session: AsyncSession, conversation_id: int
) -> Optional[Conversation]:
    return await session.get(Conversation, conversation_id)


async def get_conversation_between(
    session: AsyncSession, regular_user_id: int, performer_id: int
) -> Optional[Conversation]:
    stmt = select(Conversation).where(
        Conversation.regular_user_id == regular_user_id,
        Conversation.performer_id == performer_id,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def get_or_create_conversation(
    session: AsyncSession, regular_user_id: int, performer_id: int
) -> Tuple[Conversation, bool]:
    """
    Get the conversation of a regular user with a performer, create it if missing

    Args:
        session: Database session
        regular_user_id: Paying side
        performer_id: Earning side

    Returns:
        Tuple of (Conversation, created)
    """
    conversation = await get_conversation_between(session, regular_user_id, performer_id)
    if conversation:
        return conversation, False

    conversation = Conversation(regular_user_id=regular_user_id, performer_id=performer_id)
    session.add(conversation)
    try:
        await session.commit()
    except IntegrityError:
        # uq_conversation_pair: another request created it first
        await session.rollback()
        conversation = await get_conversation_between(session, regular_user_id, performer_id)
        if conversation is None:
            raise
        return conversation, False

    await session.refresh(conversation)
    logger.info(
        f"Conversation created: id={conversation.id} regular={regular_user_id} performer={performer_id}"
    )
    return conversation, True


async def list_user_conversations(session: AsyncSession, user_id: int) -> List[Dict]:
    """
    Conversations of a user, most recent first, with the other participant,
    the last message and the unread counter

    Returns:
        List of dicts: {conversation, other_user, last_message, unread_count}
    """
    stmt = (
        select(Conversation)
        .where(or_(Conversation.regular_user_id == user_id, Conversation.performer_id == user_id))
        .order_by(Conversation.last_message_at.desc(), Conversation.id.desc())
    )
    conversations = list((await session.execute(stmt)).scalars().all())
    if not conversations:
        return []

    conversation_ids = [c.id for c in conversations]
    other_ids = {c.other_participant(user_id) for c in conversations}

    users_result = await session.execute(select(User).where(User.id.in_(other_ids)))
    users = {u.id: u for u in users_result.scalars().all()}

    unread_stmt = (
        select(Message.conversation_id, func.count(Message.id))
        .where(
            Message.conversation_id.in_(conversation_ids),
            Message.recipient_id == user_id,
            Message.read.is_(False),
        )
        .group_by(Message.conversation_id)
    )
    unread = dict((await session.execute(unread_stmt)).all())

    # Последнее сообщение каждого диалога
    last_ids_stmt = (
        select(func.max(Message.id))
        .where(Message.conversation_id.in_(conversation_ids))
        .group_by(Message.conversation_id)
    )
    last_ids = [row[0] for row in (await session.execute(last_ids_stmt)).all()]
    last_messages: Dict[int, Message] = {}
    if last_ids:
        result = await session.execute(select(Message).where(Message.id.in_(last_ids)))
        last_messages = {m.conversation_id: m for m in result.scalars().all()}

    return [
        {
            "conversation": c,
            "other_user": users.get(c.other_participant(user_id)),
            "last_message": last_messages.get(c.id),
            "unread_count": unread.get(c.id, 0),
        }
        for c in conversations
    ]


# ===========================
# MESSAGE OPERATIONS
# ===========================


async def add_message(
    session: AsyncSession,
    conversation: Conversation,
    sender_id: int,
    recipient_id: int,
    content: str,
    cost: Optional[int],
    transaction_id: Optional[int] = None,
    sent_at: Optional[datetime] = None,
) -> Message:
    """
    Stage a message and bump conversation.last_message_at

    Does not commit: the caller owns the transaction so the message and its
    ledger rows land together.
    """
    sent_at = sent_at or utcnow()
    message = Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        recipient_id=recipient_id,
        content=content,
        cost=cost,
        read=False,
        transaction_id=transaction_id,
        created_at=sent_at,
    )
    session.add(message)
    await session.execute(
        update(Conversation)
        .where(Conversation.id == conversation.id)
        .values(last_message_at=sent_at)
    )
    await session.flush()
    return message


async def get_conversation_messages(
    session: AsyncSession, conversation_id: int, limit: int = 200
) -> List[Message]:
    """
    Messages of a conversation in chronological order (latest `limit`)
    """
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(reversed(result.scalars().all()))


async def get_last_message(session: AsyncSession, conversation_id: int) -> Optional[Message]:
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def has_sent_messages(session: AsyncSession, conversation_id: int, sender_id: int) -> bool:
    """Whether sender_id already wrote in the conversation"""
    stmt = (
        select(Message.id)
        .where(Message.conversation_id == conversation_id, Message.sender_id == sender_id)
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none() is not None


async def mark_messages_read(
    session: AsyncSession, conversation_id: int, reader_id: int
) -> int:
    """
    Mark all messages addressed to reader_id in the conversation as read

    Returns:
        Number of messages updated
    """
    stmt = (
        update(Message)
        .where(
            and_(
                Message.conversation_id == conversation_id,
                Message.recipient_id == reader_id,
                Message.read.is_(False),
            )
        )
        .values(read=True)
    )
    result = await session.execute(stmt)
    await session.commit()
    return result.rowcount or 0
