# coding: utf-8
"""
User Service

Cached profile reads and profile edits.

Cached keys:
    user:<id>                 own profile (balance included), evicted by every ledger commit
    performers:<limit>:<off>  performer directory page
"""

from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from loguru import logger

from config.cache_config import CacheTTL
from config.monetization_config import MIN_MESSAGE_PRICE, MAX_MESSAGE_PRICE
from src.cache import CacheKeys, MemoryCache
from src.core.enums import UserRole
from src.core.exceptions import InvalidRequestError, NotFoundError
from src.database import crud
from src.database.models import User
from src.services.message_service import message_price


def serialize_user(user: User) -> Dict:
    return {
        "id": user.id,
        "telegram_id": user.telegram_id,
        "username": user.username,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "photo_url": user.photo_url,
        "bio": user.bio,
        "role": user.role,
        "coins": user.coins,
        "message_price": user.message_price,
        "referral_code": user.referral_code,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "last_active": user.last_active.isoformat() if user.last_active else None,
    }


def serialize_public_user(user: User) -> Dict:
    """Public card, no balance. message_price only for performers."""
    is_performer = UserRole(user.role) is UserRole.PERFORMER
    return {
        "id": user.id,
        "username": user.username,
        "first_name": user.first_name,
        "photo_url": user.photo_url,
        "bio": user.bio,
        "role": user.role,
        "message_price": message_price(user) if is_performer else None,
    }


class UserService:
    """Service for profile reads and edits"""

    def __init__(self, cache: MemoryCache):
        self.cache = cache

    async def get_profile(self, session: AsyncSession, user_id: int) -> Dict:
        """
        Get user profile (cached)

        Raises:
            NotFoundError: user does not exist
        """
        key = CacheKeys.user(user_id)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        user = await crud.get_user_by_id(session, user_id)
        if user is None:
            raise NotFoundError("User", user_id)

        # identity map may hold a copy loaded before the last ledger update
        await session.refresh(user)
        payload = serialize_user(user)
        await self.cache.set(key, payload, ttl=CacheTTL.USER)
        return payload

    async def update_profile(
        self,
        session: AsyncSession,
        user: User,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        bio: Optional[str] = None,
        photo_url: Optional[str] = None,
        message_price: Optional[int] = None,
    ) -> Dict:
        """
        Edit own profile; only performers may set message_price

        Raises:
            InvalidRequestError: price set by non-performer or out of range
        """
        if message_price is not None:
            if UserRole(user.role) is not UserRole.PERFORMER:
                raise InvalidRequestError("Only performers can set a message price")
            if not MIN_MESSAGE_PRICE <= message_price <= MAX_MESSAGE_PRICE:
                raise InvalidRequestError(
                    f"Message price must be between {MIN_MESSAGE_PRICE} and {MAX_MESSAGE_PRICE}"
                )

        user = await crud.update_user_profile(
            session,
            user,
            first_name=first_name,
            last_name=last_name,
            bio=bio,
            photo_url=photo_url,
            message_price=message_price,
        )

        await self.cache.delete(CacheKeys.user(user.id))
        if UserRole(user.role) is UserRole.PERFORMER:
            await self.cache.delete_pattern(CacheKeys.performers_pattern())

        payload = serialize_user(user)
        await self.cache.set(CacheKeys.user(user.id), payload, ttl=CacheTTL.USER)
        return payload

    async def set_role(self, session: AsyncSession, user: User, role: UserRole) -> Dict:
        user = await crud.set_user_role(session, user, role)
        await self.cache.delete(CacheKeys.user(user.id))
        await self.cache.delete_pattern(CacheKeys.performers_pattern())
        logger.info(f"User {user.id} role set to {user.role}")
        return serialize_user(user)

    async def list_performers(
        self, session: AsyncSession, limit: int = 20, offset: int = 0
    ) -> List[Dict]:
        """Performer directory page (cached)"""
        key = CacheKeys.performers(limit, offset)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        performers = await crud.list_performers(session, limit=limit, offset=offset)
        payload = [serialize_public_user(p) for p in performers]
        await self.cache.set(key, payload, ttl=CacheTTL.PERFORMERS)
        return payload
