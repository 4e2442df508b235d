# coding: utf-8
"""
Message Monetization Service

Turns a chat message into a ledger operation:

- regular -> performer: paid send, sender is debited the performer's price
- performer -> regular: compensated reply, performer is credited
  floor(price * (1 - MESSAGE_COMMISSION_RATE))

The message row and its ledger row are committed together.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.cache_config import CacheTTL
from config.monetization_config import (
    DEFAULT_MESSAGE_PRICE,
    MESSAGE_COMMISSION_RATE,
    MAX_MESSAGE_LENGTH,
    QUICK_REPLY_WINDOW_MINUTES,
)
from src.cache import CacheKeys, MemoryCache
from src.core.enums import MessageDirection, TaskAction, TransactionType, UserRole
from src.core.exceptions import AuthorizationError, InvalidRequestError, NotFoundError
from src.database import crud
from src.database.models import Conversation, Message, User
from src.services.ledger_service import LedgerService
from src.services.task_service import TaskService
from src.services.telegram_notifier import TelegramNotifier
from src.utils.coins import net_after_commission
from src.utils.dates import ensure_utc, utcnow


@dataclass
class SendResult:
    message: Message
    direction: MessageDirection
    # Sender balance after a paid send, None for replies
    updated_coins: Optional[int] = None
    earned: int = 0


def resolve_direction(role: UserRole) -> MessageDirection:
    """
    Money direction of a message by sender role

    Raises:
        AuthorizationError: admins do not take part in conversations
    """
    role = UserRole(role)
    if role is UserRole.REGULAR:
        return MessageDirection.PAID_SEND
    if role is UserRole.PERFORMER:
        return MessageDirection.COMPENSATED_REPLY
    if role is UserRole.ADMIN:
        raise AuthorizationError("Admins cannot send messages")
    raise ValueError(f"Unhandled role: {role}")


def message_price(performer: User) -> int:
    """Coins per inbound message of a performer (platform default when unset)"""
    return performer.message_price or DEFAULT_MESSAGE_PRICE


def is_quick_reply(last_message: Optional[Message], replied_to_id: int, now: Optional[datetime] = None) -> bool:
    """Reply to an unanswered message of replied_to_id within QUICK_REPLY_WINDOW_MINUTES"""
    if last_message is None or last_message.sender_id != replied_to_id:
        return False
    elapsed = (now or utcnow()) - ensure_utc(last_message.created_at)
    return elapsed <= timedelta(minutes=QUICK_REPLY_WINDOW_MINUTES)


def serialize_message(message: Message) -> Dict:
    return {
        "id": message.id,
        "conversation_id": message.conversation_id,
        "sender_id": message.sender_id,
        "recipient_id": message.recipient_id,
        "content": message.content,
        "cost": message.cost,
        "read": message.read,
        "created_at": message.created_at.isoformat() if message.created_at else None,
    }


class MessageService:
    """Service for sending and reading monetized messages"""

    def __init__(
        self,
        ledger: LedgerService,
        cache: MemoryCache,
        tasks: Optional[TaskService] = None,
        notifier: Optional[TelegramNotifier] = None,
    ):
        self.ledger = ledger
        self.cache = cache
        self.notifier = notifier or TelegramNotifier()
        self.tasks = tasks or TaskService(ledger, self.notifier)

    # ===========================
    # ACCESS
    # ===========================

    @staticmethod
    async def get_accessible_conversation(
        session: AsyncSession, conversation_id: int, user: User
    ) -> Conversation:
        """
        Raises:
            NotFoundError: conversation does not exist
            AuthorizationError: user is not a participant
        """
        conversation = await crud.get_conversation(session, conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation", conversation_id)
        if not conversation.has_participant(user.id):
            raise AuthorizationError()
        return conversation

    @staticmethod
    async def start_conversation(
        session: AsyncSession, user: User, performer_id: int
    ) -> tuple:
        """
        Open (or return the existing) conversation of a regular user with a performer

        Returns:
            Tuple of (Conversation, created)
        """
        if UserRole(user.role) is not UserRole.REGULAR:
            raise AuthorizationError("Only regular users can start conversations")

        performer = await crud.get_user_by_id(session, performer_id)
        if performer is None or UserRole(performer.role) is not UserRole.PERFORMER:
            raise NotFoundError("Performer", performer_id)

        return await crud.get_or_create_conversation(session, user.id, performer.id)

    # ===========================
    # SEND
    # ===========================

    async def send_message(
        self,
        session: AsyncSession,
        conversation_id: int,
        sender: User,
        content: str,
    ) -> SendResult:
        """
        Send a message, charging or paying according to the sender role

        Args:
            session: Database session
            conversation_id: Conversation ID
            sender: Authenticated sender
            content: Message text

        Returns:
            SendResult

        Raises:
            NotFoundError: conversation or recipient missing
            AuthorizationError: sender not a participant, or admin
            InvalidRequestError: empty/oversized content, role does not match side
            InsufficientFundsError: paid send without enough coins (nothing is written)
        """
        conversation = await self.get_accessible_conversation(session, conversation_id, sender)

        content = (content or "").strip()
        if not content:
            raise InvalidRequestError("Message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise InvalidRequestError(f"Message is longer than {MAX_MESSAGE_LENGTH} characters")

        direction = resolve_direction(sender.role)
        expected_sender = (
            conversation.regular_user_id
            if direction is MessageDirection.PAID_SEND
            else conversation.performer_id
        )
        if sender.id != expected_sender:
            raise InvalidRequestError("Sender role does not match the conversation side")

        recipient_id = conversation.other_participant(sender.id)
        recipient = await crud.get_user_by_id(session, recipient_id)
        if recipient is None:
            raise NotFoundError("User", recipient_id)

        sender_id, sender_name = sender.id, sender.display_name
        recipient_telegram_id = recipient.telegram_id

        if direction is MessageDirection.PAID_SEND:
            opens_chat = not await crud.has_sent_messages(session, conversation.id, sender_id)
            result = await self._paid_send(session, conversation, sender, recipient, content)
        elif direction is MessageDirection.COMPENSATED_REPLY:
            quick = is_quick_reply(await crud.get_last_message(session, conversation.id), recipient_id)
            result = await self._compensated_reply(session, conversation, sender, recipient, content)
        else:
            raise ValueError(f"Unhandled direction: {direction}")

        await self.cache.delete(CacheKeys.messages(conversation.id))

        if direction is MessageDirection.PAID_SEND:
            await self.tasks.track_progress(session, sender, TaskAction.SEND_MESSAGE)
            if opens_chat:
                # Первое сообщение этого пользователя исполнителю
                await self.tasks.track_progress(session, recipient, TaskAction.UNIQUE_CHATS)
            await self.notifier.new_paid_message(recipient_telegram_id, sender_name)
        else:
            await self.tasks.track_progress(session, sender, TaskAction.REPLY_MESSAGE)
            if quick:
                await self.tasks.track_progress(session, sender, TaskAction.QUICK_REPLY)

        logger.info(
            f"Message {result.message.id} {direction.value}: {sender_id} -> {recipient_id} "
            f"in conversation {conversation.id}"
        )
        return result

    async def _paid_send(
        self,
        session: AsyncSession,
        conversation: Conversation,
        sender: User,
        performer: User,
        content: str,
    ) -> SendResult:
        price = message_price(performer)
        async with self.ledger.atomic(session):
            debit = await self.ledger.debit(
                session,
                sender.id,
                price,
                f"Message to {performer.display_name}",
                related_user_id=performer.id,
                metadata={"conversation_id": conversation.id},
                commit=False,
            )
            message = await crud.add_message(
                session,
                conversation,
                sender_id=sender.id,
                recipient_id=performer.id,
                content=content,
                cost=price,
                transaction_id=debit.transaction.id,
            )

        return SendResult(
            message=message,
            direction=MessageDirection.PAID_SEND,
            updated_coins=debit.balance,
        )

    async def _compensated_reply(
        self,
        session: AsyncSession,
        conversation: Conversation,
        performer: User,
        recipient: User,
        content: str,
    ) -> SendResult:
        gross = message_price(performer)
        earnings, fee = net_after_commission(gross, MESSAGE_COMMISSION_RATE)

        async with self.ledger.atomic(session):
            credit = None
            if earnings > 0:
                credit = await self.ledger.credit(
                    session,
                    performer.id,
                    earnings,
                    f"Earnings for responding to {recipient.display_name}",
                    transaction_type=TransactionType.EARN,
                    related_user_id=recipient.id,
                    metadata={"conversation_id": conversation.id, "gross": gross, "platform_fee": fee},
                    commit=False,
                )
            message = await crud.add_message(
                session,
                conversation,
                sender_id=performer.id,
                recipient_id=recipient.id,
                content=content,
                cost=0,
                transaction_id=credit.transaction.id if credit else None,
            )

        return SendResult(
            message=message,
            direction=MessageDirection.COMPENSATED_REPLY,
            earned=earnings,
        )

    async def send_direct(
        self,
        session: AsyncSession,
        sender: User,
        recipient_id: int,
        content: str,
    ) -> SendResult:
        """
        Send to a user without a conversation id; the conversation is created
        lazily for a regular user writing to a performer
        """
        direction = resolve_direction(sender.role)
        if direction is MessageDirection.PAID_SEND:
            conversation, _ = await self.start_conversation(session, sender, recipient_id)
        else:
            conversation = await crud.get_conversation_between(session, recipient_id, sender.id)
            if conversation is None:
                raise NotFoundError("Conversation")
        return await self.send_message(session, conversation.id, sender, content)

    # ===========================
    # READ
    # ===========================

    async def get_messages(
        self, session: AsyncSession, conversation_id: int, user: User
    ) -> List[Dict]:
        """
        Messages of a conversation (cached), marks incoming ones as read

        Returns:
            List of serialized messages
        """
        conversation = await self.get_accessible_conversation(session, conversation_id, user)
        key = CacheKeys.messages(conversation.id)

        marked = await crud.mark_messages_read(session, conversation.id, user.id)
        if marked:
            await self.cache.delete(key)

        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        messages = await crud.get_conversation_messages(session, conversation.id)
        payload = [serialize_message(m) for m in messages]
        await self.cache.set(key, payload, ttl=CacheTTL.MESSAGES)
        return payload
