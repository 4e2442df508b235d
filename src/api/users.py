# coding: utf-8
"""
Users API Endpoints
Own profile and the performer directory
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.auth import get_current_user
from src.api.dependencies import get_user_service
from src.database.engine import get_session
from src.database.models import User
from src.services.user_service import UserService

router = APIRouter(tags=["users"])


class ProfileUpdateRequest(BaseModel):
    first_name: Optional[str] = Field(None, max_length=255)
    last_name: Optional[str] = Field(None, max_length=255)
    bio: Optional[str] = Field(None, max_length=2000)
    photo_url: Optional[str] = Field(None, max_length=512)
    message_price: Optional[int] = None


@router.get("/users/me")
async def get_me(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    """Own profile including balance"""
    return await users.get_profile(session, user.id)


@router.patch("/users/me")
async def update_me(
    request: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    users: UserService = Depends(get_user_service),
) -> Dict[str, Any]:
    """
    Edit profile. message_price is accepted from performers only.
    """
    return await users.update_profile(session, user, **request.model_dump(exclude_none=True))


@router.get("/performers")
async def list_performers(
    session: AsyncSession = Depends(get_session),
    users: UserService = Depends(get_user_service),
    user: User = Depends(get_current_user),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> List[Dict[str, Any]]:
    """Performer directory page"""
    return await users.list_performers(session, limit=limit, offset=offset)
