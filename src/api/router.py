"""
FastAPI Router для Telegram Mini App API
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from config.config import BOT_TOKEN
from src.api.auth import authenticate_telegram_user, create_access_token, validate_telegram_init_data
from src.api.dependencies import get_ledger
from src.database.engine import get_session
from src.services.user_service import serialize_user

# Import sub-routers
from src.api.admin import router as admin_router
from src.api.coins import router as coins_router
from src.api.conversations import router as conversations_router
from src.api.monetization import router as monetization_router
from src.api.users import router as users_router


# Создаем главный router
router = APIRouter(tags=["mini-app"])

router.include_router(conversations_router)  # Conversations + paid messages
router.include_router(coins_router)  # Purchases, balance, transaction history
router.include_router(users_router)  # Profile, performer directory
router.include_router(monetization_router)  # Gifts, subscriptions, lootboxes, tasks, packages
router.include_router(admin_router)  # Admin balance adjustments, promotions, seeding


@router.post("/auth/telegram")
async def authenticate_telegram(
    request: Request,
    authorization: str = Header(...),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    """
    Authenticate user via Telegram initData and issue a dashboard JWT

    Headers:
        Authorization: tma <initDataRaw>

    Returns:
        {"success": true, "access_token": "...", "token_type": "bearer", "user": {...}}

    Errors:
        401: Invalid or expired initData
    """
    if not authorization.startswith("tma "):
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    init_data = validate_telegram_init_data(authorization[4:], BOT_TOKEN)
    user = await authenticate_telegram_user(session, init_data, get_ledger(request))

    return {
        "success": True,
        "access_token": create_access_token(user.id),
        "token_type": "bearer",
        "user": serialize_user(user),
    }
