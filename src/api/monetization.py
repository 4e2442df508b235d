# coding: utf-8
"""
Monetization API Endpoints
Gifts, subscriptions, lootboxes, tasks, promotions and coin packages
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from config.monetization_config import SUBSCRIPTION_MAX_DAYS
from src.api.auth import get_current_user
from src.api.dependencies import (
    get_coin_package_service,
    get_gift_service,
    get_lootbox_service,
    get_subscription_service,
    get_task_service,
)
from src.core.enums import LeaderboardPeriod
from src.database.engine import get_session
from src.database.models import User
from src.services.coin_package_service import CoinPackageService
from src.services.gift_service import GiftService
from src.services.lootbox_service import LootboxService
from src.services.promotion_service import PromotionService
from src.services.subscription_service import SubscriptionService
from src.services.task_service import TaskService
from src.utils.dates import ensure_utc

router = APIRouter(prefix="/monetization", tags=["monetization"])


# ===========================
# REQUEST MODELS
# ===========================


class SendGiftRequest(BaseModel):
    recipient_id: int
    gift_id: int
    message_id: Optional[int] = None


class SubscribeRequest(BaseModel):
    performer_id: int
    duration_days: int = Field(..., ge=1, le=SUBSCRIPTION_MAX_DAYS)


class OpenLootboxRequest(BaseModel):
    lootbox_id: int


class ClaimTaskRequest(BaseModel):
    user_task_id: int


class PurchasePackageRequest(BaseModel):
    package_id: int
    payment_method: str = Field("card", max_length=50)


# ===========================
# GIFTS
# ===========================


@router.get("/gifts")
async def list_gifts(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    gifts = await GiftService.get_available_gifts(session)
    return [
        {
            "id": g.id,
            "name": g.name,
            "description": g.description,
            "price": g.price,
            "image_url": g.image_url,
        }
        for g in gifts
    ]


@router.post("/send-gift")
async def send_gift(
    request: SendGiftRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    gifts: GiftService = Depends(get_gift_service),
) -> Dict[str, Any]:
    """
    Buy a gift for a performer

    Errors:
        400: Insufficient coins / Invalid recipient
        404: Gift not found
    """
    return await gifts.send_gift(
        session, user, request.recipient_id, request.gift_id, message_id=request.message_id
    )


@router.get("/gift-history")
async def gift_history(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    limit: int = Query(50, ge=1, le=100),
) -> List[Dict[str, Any]]:
    return await GiftService.get_user_gift_history(session, user.id, limit=limit)


@router.get("/gift-leaderboard")
async def gift_leaderboard(
    period: LeaderboardPeriod = Query(LeaderboardPeriod.WEEKLY),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    """Top performers by value of gifts received"""
    return await GiftService.get_leaderboard(session, period)


# ===========================
# SUBSCRIPTIONS
# ===========================


@router.post("/subscribe")
async def subscribe(
    request: SubscribeRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> Dict[str, Any]:
    """
    Subscribe to a performer or extend the active subscription

    Errors:
        400: Insufficient coins
        404: Performer not found
    """
    return await subscriptions.subscribe(session, user, request.performer_id, request.duration_days)


@router.get("/subscriptions")
async def list_subscriptions(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    return await SubscriptionService.get_user_subscriptions(session, user.id)


@router.post("/subscriptions/{subscription_id}/cancel")
async def cancel_subscription(
    subscription_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    return await SubscriptionService.cancel_subscription(session, user, subscription_id)


@router.get("/performers/{performer_id}/subscribers")
async def subscriber_count(
    performer_id: int,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, int]:
    count = await SubscriptionService.get_performer_subscriber_count(session, performer_id)
    return {"performer_id": performer_id, "subscribers": count}


# ===========================
# LOOTBOXES
# ===========================


@router.get("/lootboxes")
async def list_lootboxes(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    """
    Active lootboxes; free boxes carry can_open (one free opening per UTC day)
    """
    lootboxes = await LootboxService.get_available_lootboxes(session)
    items = []
    for box in lootboxes:
        can_open = True
        if box.is_free:
            can_open = await LootboxService.can_open_free_lootbox(session, user.id, box.id)
        items.append({
            "id": box.id,
            "name": box.name,
            "description": box.description,
            "price": box.price,
            "image_url": box.image_url,
            "is_free": box.is_free,
            "can_open": can_open,
        })
    return items


@router.post("/open-lootbox")
async def open_lootbox(
    request: OpenLootboxRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    lootboxes: LootboxService = Depends(get_lootbox_service),
) -> Dict[str, Any]:
    """
    Returns:
        {"id", "type", "amount", "description", "lootbox_id"}

    Errors:
        400: Insufficient coins / free box already opened today
        404: Lootbox not found
    """
    return await lootboxes.open_lootbox(session, user, request.lootbox_id)


# ===========================
# TASKS
# ===========================


@router.get("/tasks")
async def list_tasks(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    return await TaskService.get_user_tasks(session, user)


@router.post("/claim-task-reward")
async def claim_task_reward(
    request: ClaimTaskRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    tasks: TaskService = Depends(get_task_service),
) -> Dict[str, Any]:
    """
    Returns:
        {"claimed": true, "reward_type", "reward_amount"}

    Errors:
        400: Task not completed or reward already claimed
    """
    return await tasks.claim_reward(session, user, request.user_task_id)


# ===========================
# PROMOTIONS & PACKAGES
# ===========================


@router.get("/promotions")
async def list_promotions(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> List[Dict[str, Any]]:
    promotions = await PromotionService.get_user_promotions(session, user.id)
    return [
        {
            "id": p.id,
            "type": p.type,
            "discount_percentage": p.discount_percentage,
            "start_time": ensure_utc(p.start_time).isoformat(),
            "end_time": ensure_utc(p.end_time).isoformat(),
            "targeted": bool(p.target_user_ids),
        }
        for p in promotions
    ]


@router.get("/coin-packages")
async def list_coin_packages(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    packages: CoinPackageService = Depends(get_coin_package_service),
) -> List[Dict[str, Any]]:
    """Packages with the bonus the current user would receive now"""
    return await packages.get_coin_packages(session, user)


@router.post("/purchase-package")
async def purchase_package(
    request: PurchasePackageRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    packages: CoinPackageService = Depends(get_coin_package_service),
) -> Dict[str, Any]:
    return await packages.purchase_package(session, user, request.package_id, request.payment_method)
