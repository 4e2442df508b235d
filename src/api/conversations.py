# coding: utf-8
"""
Conversations & Messages API Endpoints
Paid messaging between regular users and performers
"""

from typing import Dict, List, Optional, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import get_current_user
from src.api.dependencies import get_message_service
from src.database import crud
from src.database.engine import get_session
from src.database.models import Conversation, User
from src.services.message_service import MessageService, SendResult, serialize_message
from src.services.user_service import serialize_public_user

router = APIRouter(tags=["conversations"])


# ===========================
# REQUEST / RESPONSE MODELS
# ===========================


class CreateConversationRequest(BaseModel):
    performer_id: int


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1)


class DirectMessageRequest(BaseModel):
    recipient_id: int
    content: str = Field(..., min_length=1)


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    recipient_id: int
    content: str
    cost: Optional[int]
    read: bool
    created_at: Optional[str]


class SendMessageResponse(BaseModel):
    """updatedCoins is present for paid sends only"""

    model_config = ConfigDict(populate_by_name=True)

    message: MessageResponse
    updated_coins: Optional[int] = Field(None, alias="updatedCoins")
    earned: Optional[int] = None


class ConversationResponse(BaseModel):
    id: int
    regular_user_id: int
    performer_id: int
    last_message_at: Optional[str]
    created_at: Optional[str]
    other_user: Optional[Dict[str, Any]] = None
    last_message: Optional[MessageResponse] = None
    unread_count: int = 0


def _conversation_payload(
    conversation: Conversation,
    other_user: Optional[User] = None,
    last_message=None,
    unread_count: int = 0,
) -> ConversationResponse:
    return ConversationResponse(
        id=conversation.id,
        regular_user_id=conversation.regular_user_id,
        performer_id=conversation.performer_id,
        last_message_at=conversation.last_message_at.isoformat() if conversation.last_message_at else None,
        created_at=conversation.created_at.isoformat() if conversation.created_at else None,
        other_user=serialize_public_user(other_user) if other_user else None,
        last_message=MessageResponse(**serialize_message(last_message)) if last_message else None,
        unread_count=unread_count,
    )


def _send_payload(result: SendResult) -> SendMessageResponse:
    return SendMessageResponse(
        message=MessageResponse(**serialize_message(result.message)),
        updated_coins=result.updated_coins,
        earned=result.earned or None,
    )


# ===========================
# ENDPOINTS
# ===========================


@router.get("/conversations", response_model=List[ConversationResponse])
async def list_conversations(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """
    Conversations of the current user, most recent first
    """
    items = await crud.list_user_conversations(session, user.id)
    return [
        _conversation_payload(
            item["conversation"],
            other_user=item["other_user"],
            last_message=item["last_message"],
            unread_count=item["unread_count"],
        )
        for item in items
    ]


@router.post("/conversations", response_model=ConversationResponse)
async def create_conversation(
    request: CreateConversationRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    messages: MessageService = Depends(get_message_service),
):
    """
    Open a conversation with a performer (regular users only).
    Returns the existing one when it already exists.

    Errors:
        403: Caller is not a regular user
        404: Performer not found
    """
    conversation, _ = await messages.start_conversation(session, user, request.performer_id)
    performer = await crud.get_user_by_id(session, conversation.performer_id)
    return _conversation_payload(conversation, other_user=performer)


@router.get("/conversations/{conversation_id}/messages", response_model=List[MessageResponse])
async def get_messages(
    conversation_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    messages: MessageService = Depends(get_message_service),
):
    """
    Messages in chronological order; incoming messages are marked as read
    """
    return await messages.get_messages(session, conversation_id, user)


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=SendMessageResponse,
    response_model_exclude_none=True,
)
async def send_message(
    conversation_id: int,
    request: SendMessageRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    messages: MessageService = Depends(get_message_service),
):
    """
    Send a message. Regular users pay the performer's price,
    performers earn for replying.

    Returns:
        {"message": {...}, "updatedCoins": 65}

    Errors:
        400: Insufficient coins ({"detail", "required", "available"})
        403: Access denied
        404: Conversation not found
    """
    result = await messages.send_message(session, conversation_id, user, request.content)
    return _send_payload(result)


@router.post("/messages/send", response_model=SendMessageResponse, response_model_exclude_none=True)
async def send_direct_message(
    request: DirectMessageRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    messages: MessageService = Depends(get_message_service),
):
    """
    Send by recipient id; the conversation is created on the first paid message
    """
    result = await messages.send_direct(session, user, request.recipient_id, request.content)
    return _send_payload(result)
